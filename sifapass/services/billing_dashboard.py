"""
SifaPass Billing - Billing Dashboard Query

Read-only projections of an organization's billing state. Every read goes
to the database with ``populate_existing`` so a dashboard request that
follows a payment verification never sees stale credits.
"""

import logging
import math
import uuid
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from sifapass.config import settings
from sifapass.models.admin import Admin
from sifapass.models.enums import InvoiceStatus, PlanType, SubscriptionStatus
from sifapass.models.invoice import Invoice
from sifapass.models.organization import CreditBalance, Organization, SubscriptionState, UsageCounters
from sifapass.models.plan import UNLIMITED, Plan
from sifapass.services.accounts import AccountService
from sifapass.services.invoice_store import InvoiceStore
from sifapass.services.plan_catalog import PlanCatalog
from sifapass.utils.timeutils import isoformat, utcnow

logger = logging.getLogger(__name__)


def _percentage(used: int, limit: int) -> float:
    if limit in (UNLIMITED, 0):
        return 0
    return min(100, used / limit * 100)


def usage_percentages(plan: Plan, usage: UsageCounters) -> Dict[str, float]:
    """Share of the plan's monthly limits consumed; credentials are bounded by participants."""
    return {
        "credentials": _percentage(usage.credentials_issued, plan.max_participants),
        "events": _percentage(usage.events_created, plan.max_events_per_month),
        "participants": _percentage(usage.participants_added, plan.max_participants),
    }


def invoice_history_item(invoice: Invoice) -> Dict[str, Any]:
    item = invoice.summary()
    item["paymentMethod"] = (
        {"type": invoice.card_type, "lastFour": invoice.last_four_digits}
        if invoice.card_type
        else None
    )
    return item


def _empty_billing() -> Dict[str, Any]:
    return {
        "planType": PlanType.NONE.value,
        "currentPlan": None,
        "credits": CreditBalance(credit_rate=settings.default_credit_rate).to_dict(),
        "subscription": SubscriptionState().to_dict(),
        "usage": {
            "currentMonth": UsageCounters().to_dict(),
            "lifetime": UsageCounters().to_dict(),
            "percentages": None,
        },
        "paymentMethod": None,
    }


class BillingDashboardQuery:
    """Dashboard, invoice history and usage reads for the authenticated admin."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.accounts = AccountService(db)
        self.catalog = PlanCatalog(db)
        self.invoices = InvoiceStore(db)

    async def _organization(self, admin_id: uuid.UUID) -> Optional[Organization]:
        admin: Admin = await self.accounts.get_admin(admin_id)
        return await self.accounts.find_organization(admin.organization_id)

    # ===========================================
    # DASHBOARD
    # ===========================================

    async def get_dashboard(self, admin_id: uuid.UUID) -> Dict[str, Any]:
        organization = await self._organization(admin_id)
        plans = await self.catalog.list_plans()

        if organization is None:
            logger.info(f"No organization linked to admin {admin_id}; returning empty dashboard")
            return {
                "organization": None,
                "billing": _empty_billing(),
                "plans": [dict(plan.to_dict(), isCurrent=False) for plan in plans],
                "invoices": [],
                "statistics": {
                    "totalSpent": 0,
                    "activeSubscription": False,
                    "creditsRemaining": 0,
                    "invoicesCount": {"total": 0, "paid": 0, "pending": 0, "overdue": 0},
                },
            }

        current_plan = organization.current_plan
        current_month = organization.current_month_usage()

        percentages = None
        if organization.plan_type == PlanType.SUBSCRIPTION and current_plan is not None:
            percentages = usage_percentages(current_plan, current_month)

        subscription = organization.subscription.to_dict()
        subscription["nextBillingDate"] = isoformat(organization.next_billing_date)

        payment_method = organization.payment_method
        recent = await self.invoices.recent(organization.id, limit=10)
        stats = await self.invoices.statistics(organization.id)

        return {
            "organization": {
                "id": str(organization.id),
                "name": organization.name,
                "email": organization.email,
            },
            "billing": {
                "planType": PlanType(organization.plan_type).value,
                "currentPlan": current_plan.to_dict() if current_plan else None,
                "credits": organization.credits.to_dict(),
                "subscription": subscription,
                "usage": {
                    "currentMonth": current_month.to_dict(),
                    "lifetime": organization.lifetime_usage.to_dict(),
                    "percentages": percentages,
                },
                "paymentMethod": payment_method.to_dict() if payment_method else None,
            },
            "plans": [
                dict(plan.to_dict(), isCurrent=current_plan is not None and plan.id == current_plan.id)
                for plan in plans
            ],
            "invoices": [invoice.summary() for invoice in recent],
            "statistics": {
                "totalSpent": stats["total_spent"],
                "activeSubscription": organization.has_active_subscription,
                "creditsRemaining": organization.credits_available,
                "invoicesCount": {
                    "total": stats["total"],
                    "paid": stats["paid"],
                    "pending": stats["pending"],
                    "overdue": stats["overdue"],
                },
            },
        }

    # ===========================================
    # INVOICE HISTORY
    # ===========================================

    async def get_invoice_history(
        self,
        admin_id: uuid.UUID,
        page: int = 1,
        limit: int = 20,
        status: Optional[InvoiceStatus] = None,
    ) -> Dict[str, Any]:
        organization = await self._organization(admin_id)
        if organization is None:
            return {
                "invoices": [],
                "pagination": {"page": page, "limit": limit, "total": 0, "pages": 0},
            }

        invoices, total = await self.invoices.list_for_organization(
            organization.id, page=page, limit=limit, status=status
        )
        return {
            "invoices": [invoice_history_item(invoice) for invoice in invoices],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if limit else 0,
            },
        }

    # ===========================================
    # USAGE
    # ===========================================

    async def get_usage_stats(self, admin_id: uuid.UUID) -> Dict[str, Any]:
        organization = await self._organization(admin_id)
        if organization is None:
            return {
                "planType": PlanType.NONE.value,
                "currentMonth": UsageCounters().to_dict(),
                "lifetime": UsageCounters().to_dict(),
                "limits": {},
            }

        current_month = organization.current_month_usage()
        plan = organization.current_plan
        limits: Dict[str, Any] = {}

        if organization.plan_type == PlanType.SUBSCRIPTION and plan is not None:
            limits = {
                "participants": {
                    "used": current_month.participants_added,
                    "limit": plan.max_participants,
                    "percentage": _percentage(current_month.participants_added, plan.max_participants),
                },
                "events": {
                    "used": current_month.events_created,
                    "limit": "Unlimited" if plan.max_events_per_month == UNLIMITED else plan.max_events_per_month,
                    "percentage": _percentage(current_month.events_created, plan.max_events_per_month),
                },
                "credentials": {
                    "used": current_month.credentials_issued,
                    "limit": "Based on participants",
                },
            }
        elif organization.plan_type == PlanType.PAY_AS_YOU_GO:
            limits = {
                "credits": {
                    "available": organization.credits_available,
                    "used": organization.credits_used,
                    "rate": organization.credit_rate,
                }
            }

        return {
            "planType": PlanType(organization.plan_type).value,
            "currentMonth": current_month.to_dict(),
            "lifetime": organization.lifetime_usage.to_dict(),
            "limits": limits,
        }

    # ===========================================
    # STATUS
    # ===========================================

    async def check_billing_status(self, organization_id: Optional[uuid.UUID]) -> Dict[str, Any]:
        """Whether an organization still needs billing setup, credits or a renewal."""
        organization = await self.accounts.find_organization(organization_id)
        if organization is None:
            return {"needsSetup": True, "reason": "Organization not found"}

        if organization.plan_type == PlanType.NONE:
            return {"needsSetup": True, "reason": "Billing not configured"}

        if organization.plan_type == PlanType.PAY_AS_YOU_GO and organization.credits_available <= 0:
            return {"needsSetup": False, "needsCredits": True, "reason": "No credits available"}

        if organization.plan_type == PlanType.SUBSCRIPTION:
            subscription = organization.subscription
            if subscription.status != SubscriptionStatus.ACTIVE:
                return {"needsSetup": False, "needsRenewal": True, "reason": "Subscription inactive"}
            if subscription.end_date is not None and subscription.end_date < utcnow():
                return {"needsSetup": False, "needsRenewal": True, "reason": "Subscription expired"}

        return {"needsSetup": False, "status": "ok"}
