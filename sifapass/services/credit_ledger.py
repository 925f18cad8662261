"""
SifaPass Billing - Credit Ledger and Usage Metering

Every mutation here is a single conditional UPDATE on the organization
row, so concurrent requests cannot double-spend credits or lose counter
increments:

- debit: pay-as-you-go credential issuance (fails atomically below zero)
- credit: apply a paid credit purchase
- record_usage: bump monthly and lifetime counters

Current-month counters belong to the month stored in
``usage_period_start``; the first write in a new UTC month resets them
as part of the same UPDATE.
"""

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import and_, case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sifapass.models.enums import PlanType, UsageMetric
from sifapass.models.organization import Organization, UsageCounters
from sifapass.utils.error_handling import OrganizationNotFoundException, ValidationException
from sifapass.utils.timeutils import month_start, utcnow

logger = logging.getLogger(__name__)


class DebitOutcome(str, Enum):
    DEBITED = "debited"
    NOT_APPLICABLE = "not_applicable"
    INSUFFICIENT_CREDITS = "insufficient_credits"


@dataclass
class DebitResult:
    outcome: DebitOutcome
    amount: int
    remaining_credits: int

    @property
    def debited(self) -> bool:
        return self.outcome == DebitOutcome.DEBITED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "amount": self.amount,
            "remainingCredits": self.remaining_credits,
        }


# (current-month column, lifetime column) per metric
_COUNTER_COLUMNS = {
    UsageMetric.CREDENTIALS_ISSUED: ("month_credentials_issued", "lifetime_credentials_issued"),
    UsageMetric.EVENTS_CREATED: ("month_events_created", "lifetime_events_created"),
    UsageMetric.PARTICIPANTS_ADDED: ("month_participants_added", "lifetime_participants_added"),
}


def usage_increments(increments: Dict[UsageMetric, int]) -> Dict[str, Any]:
    """
    SET clauses that add ``increments`` to the usage counters.

    Month counters restart from zero when the stored period is older than
    the current UTC month.
    """
    period = month_start()
    in_period = and_(
        Organization.usage_period_start.is_not(None),
        Organization.usage_period_start >= period,
    )

    values: Dict[str, Any] = {"usage_period_start": period}
    for metric, (month_column, lifetime_column) in _COUNTER_COLUMNS.items():
        amount = increments.get(metric, 0)
        month_attr = getattr(Organization, month_column)
        values[month_column] = case((in_period, month_attr + amount), else_=amount)
        if amount:
            values[lifetime_column] = getattr(Organization, lifetime_column) + amount
    return values


class CreditLedger:
    """Atomic ledger and usage-counter operations. Callers own the transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load_plan_state(self, organization_id: uuid.UUID) -> Optional[tuple]:
        result = await self.db.execute(
            select(Organization.plan_type, Organization.credits_available)
            .where(Organization.id == organization_id)
        )
        return result.one_or_none()

    async def debit(self, organization_id: uuid.UUID, amount: int = 1) -> DebitResult:
        """
        Consume ``amount`` prepaid credits for credential issuance.

        Only pay-as-you-go organizations are debited. The balance check and
        the decrement happen in one statement.

        Raises:
            ValidationException: If amount is not positive
            OrganizationNotFoundException: If the organization does not exist
        """
        if amount <= 0:
            raise ValidationException("Debit amount must be a positive integer", field="amount")

        values = usage_increments({UsageMetric.CREDENTIALS_ISSUED: amount})
        values.update(
            credits_available=Organization.credits_available - amount,
            credits_used=Organization.credits_used + amount,
            version=Organization.version + 1,
        )

        result = await self.db.execute(
            update(Organization)
            .where(
                Organization.id == organization_id,
                Organization.plan_type == PlanType.PAY_AS_YOU_GO,
                Organization.credits_available >= amount,
            )
            .values(**values)
            .returning(Organization.credits_available)
            .execution_options(synchronize_session=False)
        )
        remaining = result.scalar_one_or_none()
        if remaining is not None:
            logger.info(f"Debited {amount} credit(s) from organization {organization_id}; {remaining} left")
            return DebitResult(DebitOutcome.DEBITED, amount, remaining)

        state = await self._load_plan_state(organization_id)
        if state is None:
            raise OrganizationNotFoundException(organization_id)

        plan_type, available = state
        if plan_type != PlanType.PAY_AS_YOU_GO:
            return DebitResult(DebitOutcome.NOT_APPLICABLE, 0, available)

        logger.warning(f"Organization {organization_id} has {available} credit(s); {amount} required")
        return DebitResult(DebitOutcome.INSUFFICIENT_CREDITS, 0, available)

    async def credit(self, organization_id: uuid.UUID, amount: int) -> int:
        """
        Add purchased credits and switch the organization to pay-as-you-go.

        Returns:
            The new available balance
        """
        if amount < 0:
            raise ValidationException("Credit amount cannot be negative", field="amount")

        result = await self.db.execute(
            update(Organization)
            .where(Organization.id == organization_id)
            .values(
                credits_available=Organization.credits_available + amount,
                plan_type=PlanType.PAY_AS_YOU_GO,
                version=Organization.version + 1,
            )
            .returning(Organization.credits_available)
            .execution_options(synchronize_session=False)
        )
        available = result.scalar_one_or_none()
        if available is None:
            raise OrganizationNotFoundException(organization_id)

        logger.info(f"Credited {amount} credit(s) to organization {organization_id}; {available} available")
        return available

    async def record_usage(
        self,
        organization_id: uuid.UUID,
        metric: UsageMetric,
        amount: int = 1,
    ) -> UsageCounters:
        """
        Increment a usage counter (current month and lifetime).

        Returns:
            The organization's current-month counters after the increment
        """
        if amount <= 0:
            raise ValidationException("Usage amount must be a positive integer", field="amount")

        result = await self.db.execute(
            update(Organization)
            .where(Organization.id == organization_id)
            .values(**usage_increments({UsageMetric(metric): amount}))
            .returning(
                Organization.month_credentials_issued,
                Organization.month_events_created,
                Organization.month_participants_added,
            )
            .execution_options(synchronize_session=False)
        )
        row = result.one_or_none()
        if row is None:
            raise OrganizationNotFoundException(organization_id)

        return UsageCounters(
            credentials_issued=row[0],
            events_created=row[1],
            participants_added=row[2],
        )

    async def roll_over_usage(self, organization_id: uuid.UUID) -> bool:
        """
        Reset stale current-month counters.

        Returns:
            True if the counters belonged to an earlier month and were reset
        """
        period = month_start(utcnow())
        result = await self.db.execute(
            update(Organization)
            .where(
                Organization.id == organization_id,
                (Organization.usage_period_start.is_(None)) | (Organization.usage_period_start < period),
            )
            .values(
                usage_period_start=period,
                month_credentials_issued=0,
                month_events_created=0,
                month_participants_added=0,
            )
            .execution_options(synchronize_session=False)
        )
        rolled = result.rowcount == 1
        if rolled:
            logger.info(f"Usage counters rolled over for organization {organization_id}")
        return rolled
