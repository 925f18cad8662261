"""
SifaPass Billing - FastAPI Dependencies

Shared dependencies for authentication, database sessions and plan gating.

This module provides dependency injection for:
1. Database sessions
2. Current admin authentication
3. Superuser access for catalog administration
4. Feature and plan gating based on the organization's tier
5. Quota checks and usage tracking for metered actions
6. Billing standing (active subscription or prepaid credits)
"""

import uuid
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from sifapass.database import get_async_session
from sifapass.models.admin import Admin
from sifapass.models.enums import UsageMetric
from sifapass.models.organization import Organization
from sifapass.services.billing_coordinator import BillingCoordinator
from sifapass.services.credit_ledger import DebitOutcome, DebitResult
from sifapass.services.entitlements import PLAN_FEATURES, EntitlementOracle, Feature, PlanInfo
from sifapass.services.paystack_gateway import PaymentGateway, get_payment_gateway
from sifapass.utils.error_handling import (
    InsufficientCreditsException,
    OrganizationNotFoundException,
    SubscriptionExpiredException,
)
from sifapass.utils.security import verify_access_token


# HTTP Bearer token security
security = HTTPBearer(auto_error=False)


async def get_current_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_async_session),
) -> Admin:
    """
    Get the current authenticated admin from JWT token.

    Token can be provided via:
    1. Authorization: Bearer <token> header
    2. access_token cookie

    Raises:
        HTTPException: If token is invalid or admin not found
    """
    token = None

    if credentials:
        token = credentials.credentials
    else:
        token = request.cookies.get("access_token")
        if token and token.startswith("Bearer "):
            token = token[7:]

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_access_token(token)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    admin_id = payload.get("sub")
    if not admin_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        admin_uuid = uuid.UUID(admin_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin ID in token",
        )

    admin = await db.get(Admin, admin_uuid)
    if not admin:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin not found",
        )

    if not admin.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin account is deactivated",
        )

    return admin


async def require_superuser(
    current_admin: Admin = Depends(get_current_admin),
) -> Admin:
    """Catalog administration is limited to superusers."""
    if not current_admin.is_superuser:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. Superuser only.",
        )
    return current_admin


def get_billing_coordinator(
    db: AsyncSession = Depends(get_async_session),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> BillingCoordinator:
    return BillingCoordinator(db, gateway)


# ===========================================
# PLAN GATING
# ===========================================

def require_feature(feature: Feature):
    """
    Dependency factory for feature-based access control.

    Usage:
        @router.post("/bulk-generate")
        async def bulk_generate(
            plan: PlanInfo = Depends(require_feature(Feature.BULK_GENERATION))
        ):
            ...

    Raises EntitlementDeniedException (403 with upsell fields) when the
    organization's tier lacks the feature.
    """
    async def feature_checker(
        current_admin: Admin = Depends(get_current_admin),
        db: AsyncSession = Depends(get_async_session),
    ) -> PlanInfo:
        return await EntitlementOracle(db).require_feature(current_admin, feature)

    return feature_checker


def require_plan(minimum_plan: str):
    """
    Dependency factory requiring a tier at or above ``minimum_plan``.

    Raises ValueError at import time for a name outside the tier table.
    """
    if minimum_plan not in PLAN_FEATURES:
        raise ValueError(
            f"Unknown plan tier {minimum_plan!r}; expected one of {sorted(PLAN_FEATURES)}"
        )

    async def plan_checker(
        current_admin: Admin = Depends(get_current_admin),
        db: AsyncSession = Depends(get_async_session),
    ) -> PlanInfo:
        return await EntitlementOracle(db).require_plan(current_admin, minimum_plan)

    return plan_checker


async def require_event_capacity(
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_async_session),
) -> PlanInfo:
    """Deny when this month's events have reached the tier's limit."""
    return await EntitlementOracle(db).check_event_limit(current_admin)


async def require_participant_capacity(
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_async_session),
) -> PlanInfo:
    """Deny when this month's participants have reached the tier's limit."""
    return await EntitlementOracle(db).check_participant_limit(current_admin)


async def require_active_billing(
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_async_session),
    coordinator: BillingCoordinator = Depends(get_billing_coordinator),
) -> Organization:
    """
    Require an active, unexpired subscription or a positive credit balance.

    Denials are 402 with one of requiresSetup, requiresSubscription,
    requiresRenewal or requiresPayment. An expired subscription is marked
    inactive before the denial is returned.
    """
    if current_admin.organization_id is None:
        raise OrganizationNotFoundException(message="Organization not found for this admin")

    try:
        return await EntitlementOracle(db).require_active_billing(current_admin)
    except SubscriptionExpiredException:
        await coordinator.lapse_expired_subscription(current_admin.organization_id)
        raise


# ===========================================
# USAGE TRACKING
# ===========================================

async def track_credential_usage(
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_async_session),
    coordinator: BillingCoordinator = Depends(get_billing_coordinator),
) -> DebitResult:
    """
    Charge one credential issuance.

    Pay-as-you-go organizations are debited one credit (402 when the
    balance is empty). Subscription organizations are refused (402) once
    the tier's participant limit is reached; otherwise only the usage
    counter is bumped.
    """
    organization_id = current_admin.organization_id
    if organization_id is None:
        raise OrganizationNotFoundException(message="Organization not found for this admin")

    result = await coordinator.debit_credit_ledger(organization_id, 1)
    if result.outcome == DebitOutcome.INSUFFICIENT_CREDITS:
        raise InsufficientCreditsException(required=1, available=result.remaining_credits)
    if result.outcome == DebitOutcome.NOT_APPLICABLE:
        await EntitlementOracle(db).require_credential_headroom(organization_id)
        await coordinator.record_usage(organization_id, UsageMetric.CREDENTIALS_ISSUED)
    return result


async def track_event_usage(
    plan: PlanInfo = Depends(require_event_capacity),
    coordinator: BillingCoordinator = Depends(get_billing_coordinator),
) -> PlanInfo:
    """Count an event creation once the tier's monthly limit has been checked."""
    await coordinator.record_usage(plan.organization.id, UsageMetric.EVENTS_CREATED)
    return plan


async def track_participant_usage(
    plan: PlanInfo = Depends(require_participant_capacity),
    coordinator: BillingCoordinator = Depends(get_billing_coordinator),
) -> PlanInfo:
    """Count a participant addition once the tier's limit has been checked."""
    await coordinator.record_usage(plan.organization.id, UsageMetric.PARTICIPANTS_ADDED)
    return plan
