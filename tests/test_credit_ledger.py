"""
SifaPass Billing - Credit Ledger Tests

Atomic debit/credit of prepaid credits and usage metering, including
concurrent debits racing for the last credits.
"""

import asyncio
import uuid
from datetime import timedelta

import pytest

from sifapass.models.enums import PlanType, UsageMetric
from sifapass.services.accounts import AccountService
from sifapass.services.credit_ledger import CreditLedger, DebitOutcome
from sifapass.utils.error_handling import OrganizationNotFoundException, ValidationException
from sifapass.utils.timeutils import month_start


async def _fund(db_session, organization, credits: int):
    await CreditLedger(db_session).credit(organization.id, credits)
    await db_session.commit()


async def _reload(db_session, organization):
    return await AccountService(db_session).get_organization(organization.id)


# =============================================================================
# DEBIT
# =============================================================================

class TestDebit:

    @pytest.mark.asyncio
    async def test_debit_decrements_and_counts(self, db_session, organization):
        await _fund(db_session, organization, 10)

        result = await CreditLedger(db_session).debit(organization.id, 3)
        await db_session.commit()

        assert result.outcome == DebitOutcome.DEBITED
        assert result.debited is True
        assert result.remaining_credits == 7

        org = await _reload(db_session, organization)
        assert org.credits_available == 7
        assert org.credits_used == 3
        assert org.current_month_usage().credentials_issued == 3
        assert org.lifetime_usage.credentials_issued == 3

    @pytest.mark.asyncio
    async def test_debit_never_goes_negative(self, db_session, organization):
        await _fund(db_session, organization, 2)

        result = await CreditLedger(db_session).debit(organization.id, 3)
        await db_session.commit()

        assert result.outcome == DebitOutcome.INSUFFICIENT_CREDITS
        assert result.remaining_credits == 2

        org = await _reload(db_session, organization)
        assert org.credits_available == 2
        assert org.credits_used == 0

    @pytest.mark.asyncio
    async def test_subscription_organizations_are_not_debited(self, db_session, organization, plans, subscribe):
        await _fund(db_session, organization, 5)
        await subscribe(organization, plans["Basic"])

        result = await CreditLedger(db_session).debit(organization.id, 1)
        await db_session.commit()

        assert result.outcome == DebitOutcome.NOT_APPLICABLE
        assert (await _reload(db_session, organization)).credits_available == 5

    @pytest.mark.asyncio
    async def test_invalid_amount(self, db_session, organization):
        with pytest.raises(ValidationException):
            await CreditLedger(db_session).debit(organization.id, 0)

    @pytest.mark.asyncio
    async def test_unknown_organization(self, db_session):
        with pytest.raises(OrganizationNotFoundException):
            await CreditLedger(db_session).debit(uuid.uuid4(), 1)

    @pytest.mark.asyncio
    async def test_concurrent_debits_never_overspend(self, db_session, session_maker, organization):
        await _fund(db_session, organization, 5)

        async def debit_once():
            async with session_maker() as session:
                result = await CreditLedger(session).debit(organization.id, 1)
                await session.commit()
                return result

        results = await asyncio.gather(*(debit_once() for _ in range(8)))

        debited = [r for r in results if r.outcome == DebitOutcome.DEBITED]
        refused = [r for r in results if r.outcome == DebitOutcome.INSUFFICIENT_CREDITS]
        assert len(debited) == 5
        assert len(refused) == 3

        org = await _reload(db_session, organization)
        assert org.credits_available == 0
        assert org.credits_used == 5


# =============================================================================
# CREDIT
# =============================================================================

class TestCredit:

    @pytest.mark.asyncio
    async def test_credit_switches_to_pay_as_you_go(self, db_session, organization, plans, subscribe):
        await subscribe(organization, plans["Basic"])

        available = await CreditLedger(db_session).credit(organization.id, 2800)
        await db_session.commit()

        assert available == 2800
        org = await _reload(db_session, organization)
        assert org.plan_type == PlanType.PAY_AS_YOU_GO
        assert org.credits_available == 2800

    @pytest.mark.asyncio
    async def test_negative_credit_rejected(self, db_session, organization):
        with pytest.raises(ValidationException):
            await CreditLedger(db_session).credit(organization.id, -1)


# =============================================================================
# USAGE METERING
# =============================================================================

class TestUsage:

    @pytest.mark.asyncio
    async def test_record_usage(self, db_session, organization):
        ledger = CreditLedger(db_session)

        await ledger.record_usage(organization.id, UsageMetric.EVENTS_CREATED)
        counters = await ledger.record_usage(organization.id, UsageMetric.PARTICIPANTS_ADDED, 40)
        await db_session.commit()

        assert counters.events_created == 1
        assert counters.participants_added == 40
        org = await _reload(db_session, organization)
        assert org.lifetime_usage.participants_added == 40

    @pytest.mark.asyncio
    async def test_new_month_resets_month_counters(self, db_session, organization):
        organization.usage_period_start = month_start() - timedelta(days=40)
        organization.month_events_created = 9
        organization.lifetime_events_created = 9
        await db_session.commit()

        org = await _reload(db_session, organization)
        assert org.usage_is_stale() is True
        assert org.current_month_usage().events_created == 0

        counters = await CreditLedger(db_session).record_usage(organization.id, UsageMetric.EVENTS_CREATED)
        await db_session.commit()

        assert counters.events_created == 1
        org = await _reload(db_session, organization)
        assert org.usage_is_stale() is False
        assert org.lifetime_usage.events_created == 10

    @pytest.mark.asyncio
    async def test_roll_over_usage(self, db_session, organization):
        organization.usage_period_start = None
        organization.month_participants_added = 12
        await db_session.commit()

        ledger = CreditLedger(db_session)
        assert await ledger.roll_over_usage(organization.id) is True
        assert await ledger.roll_over_usage(organization.id) is False
        await db_session.commit()

        org = await _reload(db_session, organization)
        assert org.month_participants_added == 0

    @pytest.mark.asyncio
    async def test_concurrent_usage_increments_are_not_lost(self, session_maker, db_session, organization):
        async def add_participant():
            async with session_maker() as session:
                await CreditLedger(session).record_usage(organization.id, UsageMetric.PARTICIPANTS_ADDED)
                await session.commit()

        await asyncio.gather(*(add_participant() for _ in range(10)))

        org = await _reload(db_session, organization)
        assert org.current_month_usage().participants_added == 10
        assert org.lifetime_usage.participants_added == 10
