"""
SifaPass Billing - Account Resolution

Resolves an authenticated admin to the organization that is billed.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sifapass.config import settings
from sifapass.models.admin import Admin
from sifapass.models.enums import PlanType, SubscriptionStatus
from sifapass.models.organization import Organization
from sifapass.utils.error_handling import AdminNotFoundException, OrganizationNotFoundException
from sifapass.utils.timeutils import month_start

logger = logging.getLogger(__name__)


class AccountService:
    """Admin and organization lookups shared by the billing services."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_admin(self, admin_id: uuid.UUID) -> Admin:
        admin = await self.db.get(Admin, admin_id)
        if admin is None:
            raise AdminNotFoundException(admin_id)
        return admin

    async def find_organization(self, organization_id: Optional[uuid.UUID]) -> Optional[Organization]:
        """Load an organization straight from the database, never from the identity map."""
        if organization_id is None:
            return None
        result = await self.db.execute(
            select(Organization)
            .where(Organization.id == organization_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_organization(self, organization_id: uuid.UUID) -> Organization:
        organization = await self.find_organization(organization_id)
        if organization is None:
            raise OrganizationNotFoundException(organization_id)
        return organization

    async def organization_for_admin(self, admin: Admin) -> Organization:
        """
        Raises:
            OrganizationNotFoundException: If the admin has no organization
        """
        organization = await self.find_organization(admin.organization_id)
        if organization is None:
            raise OrganizationNotFoundException(message="Organization not found for this admin")
        return organization

    async def ensure_organization_for_admin(self, admin: Admin) -> Organization:
        """
        Return the admin's organization, creating an empty pay-as-you-go
        organization when the admin has none yet. Flushes, does not commit.
        """
        organization = await self.find_organization(admin.organization_id)
        if organization is not None:
            return organization

        result = await self.db.execute(
            select(Organization).where(Organization.email == admin.email)
        )
        organization = result.scalar_one_or_none()

        if organization is None:
            organization = Organization(
                name=admin.full_name or "Organization",
                email=admin.email,
                plan_type=PlanType.PAY_AS_YOU_GO,
                credits_available=0,
                credits_used=0,
                credit_rate=settings.default_credit_rate,
                subscription_status=SubscriptionStatus.INACTIVE,
                usage_period_start=month_start(),
            )
            self.db.add(organization)
            await self.db.flush()
            logger.info(f"Created billing organization {organization.id} for admin {admin.email}")

        admin.organization_id = organization.id
        await self.db.flush()
        return organization
