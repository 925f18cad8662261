"""
SifaPass Billing - Billing Router

API endpoints for the billing dashboard, plan switching, invoices,
usage and Paystack payments. Successful responses use the envelope
``{"success": true, "message"?, "data"}``; errors are rendered by the
handlers in utils.error_handling.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sifapass.database import get_db
from sifapass.dependencies import get_billing_coordinator, get_current_admin
from sifapass.models.admin import Admin
from sifapass.models.enums import InvoiceStatus
from sifapass.schemas.billing import (
    ActivatePaidSubscriptionRequest,
    CancelSubscriptionRequest,
    CreditPurchaseInitializeRequest,
    SubscriptionInitializeRequest,
    SwitchPlanRequest,
)
from sifapass.services.billing_coordinator import BillingCoordinator
from sifapass.services.billing_dashboard import BillingDashboardQuery
from sifapass.services.entitlements import EntitlementOracle
from sifapass.services.plan_catalog import PlanCatalog


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])


def _ok(data: Any, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    body["data"] = data
    return body


# =============================================================================
# DASHBOARD ENDPOINTS
# =============================================================================

@router.get("/dashboard", summary="Billing dashboard")
async def get_billing_dashboard(
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Plan, credits, subscription, usage, payment method, catalog, the ten
    most recent invoices and invoice statistics for the admin's organization.
    """
    data = await BillingDashboardQuery(db).get_dashboard(current_admin.id)
    if data["organization"] is None:
        return _ok(data, "No organization linked. Please create an organization first.")
    return _ok(data)


@router.get("/plans", summary="List active plans")
async def get_all_plans(db: AsyncSession = Depends(get_db)):
    """Public catalog of active plans, cheapest first."""
    plans = await PlanCatalog(db).list_plans()
    return _ok([plan.to_dict() for plan in plans])


@router.get("/plan-features", summary="Current tier features and usage")
async def get_plan_features(
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    return _ok(await EntitlementOracle(db).plan_features(current_admin))


@router.get("/invoices", summary="Invoice history")
async def get_invoice_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[InvoiceStatus] = Query(None),
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    data = await BillingDashboardQuery(db).get_invoice_history(
        current_admin.id, page=page, limit=limit, status=status
    )
    return _ok(data)


@router.get("/usage", summary="Usage statistics")
async def get_usage_stats(
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    return _ok(await BillingDashboardQuery(db).get_usage_stats(current_admin.id))


@router.get("/status", summary="Billing setup status")
async def get_billing_status(
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Whether the organization needs billing setup, credits or a renewal."""
    return _ok(await BillingDashboardQuery(db).check_billing_status(current_admin.organization_id))


# =============================================================================
# SUBSCRIPTION MANAGEMENT
# =============================================================================

@router.post("/switch-plan", summary="Quote a plan switch")
async def switch_plan(
    request: SwitchPlanRequest,
    current_admin: Admin = Depends(get_current_admin),
    coordinator: BillingCoordinator = Depends(get_billing_coordinator),
):
    """
    Return the proration quote for moving to another plan.

    No state changes; the client proceeds to checkout with the quoted plan.
    """
    data = await coordinator.switch_plan(current_admin.id, request.new_plan_id)
    return _ok(data, "Plan switch calculated. Proceed to payment to complete the switch.")


@router.post("/cancel-subscription", summary="Cancel subscription")
async def cancel_subscription(
    request: CancelSubscriptionRequest,
    current_admin: Admin = Depends(get_current_admin),
    coordinator: BillingCoordinator = Depends(get_billing_coordinator),
):
    data = await coordinator.cancel_subscription(current_admin.id, request.cancel_immediately)
    message = (
        "Subscription cancelled immediately"
        if request.cancel_immediately
        else "Subscription will be cancelled at the end of the billing period"
    )
    return _ok(data, message)


@router.post("/activate-paid-subscription", summary="Activate a paid subscription invoice")
async def activate_paid_subscription(
    request: ActivatePaidSubscriptionRequest,
    current_admin: Admin = Depends(get_current_admin),
    coordinator: BillingCoordinator = Depends(get_billing_coordinator),
):
    """Re-apply a paid subscription invoice whose activation did not take effect."""
    data = await coordinator.activate_paid_subscription(current_admin.id, request.invoice_id)
    return _ok(data, "Subscription activated successfully")


# =============================================================================
# PAYMENT ENDPOINTS
# =============================================================================

@router.post("/payment/subscription/initialize", summary="Start subscription checkout")
async def initialize_subscription(
    request: SubscriptionInitializeRequest,
    current_admin: Admin = Depends(get_current_admin),
    coordinator: BillingCoordinator = Depends(get_billing_coordinator),
):
    session = await coordinator.initialize_subscription(current_admin.id, request.plan_id)
    return _ok(session.to_dict(), "Payment initialized successfully")


@router.post("/payment/credits/initialize", summary="Start credit purchase checkout")
async def initialize_credit_purchase(
    request: CreditPurchaseInitializeRequest,
    current_admin: Admin = Depends(get_current_admin),
    coordinator: BillingCoordinator = Depends(get_billing_coordinator),
):
    package = request.credit_package
    session = await coordinator.initialize_credit_purchase(current_admin.id, package.quantity, package.price)
    return _ok(session.to_dict(), "Payment initialized successfully")


async def _verify(
    reference: Optional[str],
    trxref: Optional[str],
    coordinator: BillingCoordinator,
) -> Dict[str, Any]:
    outcome = await coordinator.verify_payment(reference or trxref)
    return _ok(outcome.data, outcome.message)


@router.get("/verify", summary="Verify payment (checkout callback)")
async def verify_payment(
    reference: Optional[str] = Query(None),
    trxref: Optional[str] = Query(None),
    coordinator: BillingCoordinator = Depends(get_billing_coordinator),
):
    """
    Confirm a payment with Paystack and apply it exactly once.

    Paystack's redirect passes both ``reference`` and ``trxref``; either
    is accepted. Repeated calls return the same projection.
    """
    return await _verify(reference, trxref, coordinator)


@router.get("/payment/verify", summary="Verify payment", include_in_schema=False)
async def verify_payment_alias(
    reference: Optional[str] = Query(None),
    trxref: Optional[str] = Query(None),
    coordinator: BillingCoordinator = Depends(get_billing_coordinator),
):
    return await _verify(reference, trxref, coordinator)


@router.post(
    "/webhook/paystack",
    summary="Paystack webhook handler",
    include_in_schema=False,
)
async def paystack_webhook(
    request: Request,
    coordinator: BillingCoordinator = Depends(get_billing_coordinator),
):
    """
    Handle Paystack webhook events.

    Security:
    - Verifies X-Paystack-Signature (HMAC-SHA512 of the raw body)
    - Rejects unsigned or mis-signed deliveries with 401

    ``charge.success`` runs the same idempotent settlement as /verify;
    other events are acknowledged and logged.
    """
    body = await request.body()
    signature = request.headers.get("x-paystack-signature")

    ack = await coordinator.handle_webhook(body, signature)
    return _ok(ack.to_dict())
