"""
SifaPass Billing - Plan Catalog Service

Read-mostly catalog of subscription tiers. The catalog is the source of
truth for prices, feature flags and quota ceilings.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from sifapass.models.enums import AnalyticsLevel, BillingCycle, PlanName, TemplateTier
from sifapass.models.invoice import Invoice
from sifapass.models.organization import Organization
from sifapass.models.plan import Plan, PlanFeatures, UNLIMITED
from sifapass.schemas.billing import PlanCreate, PlanUpdate
from sifapass.utils.error_handling import ConflictException, PlanNotFoundException

logger = logging.getLogger(__name__)


# ===========================================
# DEFAULT CATALOG
# ===========================================

DEFAULT_PLANS: List[Dict[str, Any]] = [
    {
        "name": PlanName.BASIC.value,
        "description": "For small teams issuing certificates for a handful of events",
        "price": 15000,
        "currency": "NGN",
        "billing_cycle": BillingCycle.MONTHLY,
        "features": PlanFeatures(
            max_participants=500,
            max_events_per_month=10,
            templates=TemplateTier.BASIC,
            email_delivery=True,
            analytics=AnalyticsLevel.BASIC,
        ),
        "is_active": True,
        "is_popular": False,
        "sort_order": 1,
    },
    {
        "name": PlanName.STANDARD.value,
        "description": "Bulk issuance and premium templates for growing organizations",
        "price": 45000,
        "currency": "NGN",
        "billing_cycle": BillingCycle.MONTHLY,
        "features": PlanFeatures(
            max_participants=2000,
            max_events_per_month=50,
            templates=TemplateTier.PREMIUM,
            email_delivery=True,
            bulk_generation=True,
            analytics=AnalyticsLevel.ADVANCED,
            priority_support=True,
        ),
        "is_active": True,
        "is_popular": True,
        "sort_order": 2,
    },
    {
        "name": PlanName.PROFESSIONAL.value,
        "description": "Unlimited events, API access and white-label credentials",
        "price": 85000,
        "currency": "NGN",
        "billing_cycle": BillingCycle.MONTHLY,
        "features": PlanFeatures(
            max_participants=10000,
            max_events_per_month=UNLIMITED,
            templates=TemplateTier.CUSTOM,
            email_delivery=True,
            bulk_generation=True,
            analytics=AnalyticsLevel.ADVANCED,
            priority_support=True,
            api_access=True,
            team_collaboration=True,
            custom_branding=True,
            white_label=True,
        ),
        "is_active": True,
        "is_popular": False,
        "sort_order": 3,
    },
]


class PlanCatalog:
    """Service for reading and curating subscription plans."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_plans(self, active_only: bool = True) -> List[Plan]:
        """List plans ordered by price."""
        query = select(Plan).order_by(Plan.price, Plan.sort_order)
        if active_only:
            query = query.where(Plan.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_plan(self, plan_id: uuid.UUID) -> Optional[Plan]:
        result = await self.db.execute(select(Plan).where(Plan.id == plan_id))
        return result.scalar_one_or_none()

    async def get_plan(self, plan_id: uuid.UUID) -> Plan:
        """
        Get a plan by id.

        Raises:
            PlanNotFoundException: If the plan does not exist
        """
        plan = await self.find_plan(plan_id)
        if plan is None:
            raise PlanNotFoundException(plan_id)
        return plan

    async def get_by_name(self, name: str) -> Optional[Plan]:
        result = await self.db.execute(select(Plan).where(Plan.name == name))
        return result.scalar_one_or_none()

    # ===========================================
    # ADMINISTRATION
    # ===========================================

    async def create_plan(self, data: PlanCreate) -> Plan:
        if await self.get_by_name(data.name):
            raise ConflictException(f"A plan named '{data.name}' already exists", resource_type="Plan")

        values = data.model_dump(exclude={"features"})
        values.update(data.features.model_dump())
        plan = Plan(**values)
        self.db.add(plan)
        await self.db.commit()
        await self.db.refresh(plan)

        logger.info(f"Plan created: {plan.name} ({plan.price} {plan.currency})")
        return plan

    async def update_plan(self, plan_id: uuid.UUID, data: PlanUpdate) -> Plan:
        plan = await self.get_plan(plan_id)

        values = data.model_dump(exclude_unset=True, exclude={"features"})
        if data.features is not None:
            values.update(data.features.model_dump())
        if "name" in values and values["name"] != plan.name:
            if await self.get_by_name(values["name"]):
                raise ConflictException(f"A plan named '{values['name']}' already exists", resource_type="Plan")

        for field, value in values.items():
            setattr(plan, field, value)

        await self.db.commit()
        await self.db.refresh(plan)

        logger.info(f"Plan updated: {plan.name} fields={sorted(values)}")
        return plan

    async def delete_plan(self, plan_id: uuid.UUID) -> bool:
        """
        Remove a plan from the catalog.

        A plan still referenced by an organization or an invoice is only
        deactivated, so billing history keeps its plan.

        Returns:
            True if the row was deleted, False if it was deactivated
        """
        plan = await self.get_plan(plan_id)

        referenced = await self.db.scalar(
            select(
                or_(
                    exists().where(Organization.current_plan_id == plan.id),
                    exists().where(Invoice.plan_id == plan.id),
                )
            )
        )
        if referenced:
            plan.is_active = False
            await self.db.commit()
            logger.info(f"Plan {plan.name} is referenced; deactivated instead of deleted")
            return False

        await self.db.delete(plan)
        await self.db.commit()
        logger.info(f"Plan deleted: {plan.name}")
        return True

    async def seed_plans(self, definitions: Optional[List[Dict[str, Any]]] = None) -> List[Plan]:
        """
        Upsert the default catalog by plan name.

        Plans not named in ``definitions`` are deactivated.
        """
        definitions = definitions or DEFAULT_PLANS
        names = set()
        seeded = []

        for definition in definitions:
            values = {k: v for k, v in definition.items() if k != "features"}
            values.update(definition["features"].as_columns())
            names.add(values["name"])

            plan = await self.get_by_name(values["name"])
            if plan is None:
                plan = Plan(**values)
                self.db.add(plan)
            else:
                for field, value in values.items():
                    setattr(plan, field, value)
            seeded.append(plan)

        for plan in await self.list_plans(active_only=True):
            if plan.name not in names:
                plan.is_active = False

        await self.db.commit()
        for plan in seeded:
            await self.db.refresh(plan)

        logger.info(f"Seeded {len(seeded)} plans: {', '.join(sorted(names))}")
        return seeded
