"""
SifaPass Billing - Entitlement Oracle

Answers "may this organization do X?" for feature- and quota-gated
operations. The tier table below is keyed by plan name; the catalog seeds
plans under exactly these names (Basic, Standard, Professional) and that
naming is part of the contract between the two.

Tier resolution:
- active, unexpired subscription -> the subscribed plan's tier
- pay-as-you-go with credits left -> Basic
- anything else                    -> free

Decisions are pure functions over (tier, usage); the EntitlementOracle
class only loads the organization and raises on denial.
"""

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from sifapass.models.admin import Admin
from sifapass.models.enums import AnalyticsLevel, PlanName, PlanType, SubscriptionStatus, TemplateTier
from sifapass.models.organization import Organization, UsageCounters
from sifapass.models.plan import UNLIMITED
from sifapass.services.accounts import AccountService
from sifapass.utils.error_handling import (
    EntitlementDeniedException,
    ErrorCode,
    PaymentRequiredException,
    SubscriptionExpiredException,
)
from sifapass.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


FREE_TIER = "free"
PAY_AS_YOU_GO_TIER = PlanType.PAY_AS_YOU_GO.value


class Feature(str, Enum):
    """Feature flags that can gate an endpoint."""
    EMAIL_DELIVERY = "emailDelivery"
    BULK_GENERATION = "bulkGeneration"
    ANALYTICS = "analytics"
    PRIORITY_SUPPORT = "prioritySupport"
    API_ACCESS = "apiAccess"
    TEAM_COLLABORATION = "teamCollaboration"
    CUSTOM_BRANDING = "customBranding"
    WHITE_LABEL = "whiteLabel"
    CUSTOM_TEMPLATES = "customTemplates"
    EXPORT_DATA = "exportData"
    ADVANCED_REPORTS = "advancedReports"


@dataclass(frozen=True)
class TierEntitlements:
    level: int
    max_participants: int
    max_events_per_month: int
    templates: TemplateTier
    email_delivery: bool = True
    bulk_generation: bool = False
    analytics: AnalyticsLevel = AnalyticsLevel.NONE
    priority_support: bool = False
    api_access: bool = False
    team_collaboration: bool = False
    custom_branding: bool = False
    white_label: bool = False
    custom_templates: bool = False
    export_data: bool = False
    advanced_reports: bool = False

    def has(self, feature: Feature) -> bool:
        if feature == Feature.ANALYTICS:
            return self.analytics != AnalyticsLevel.NONE
        return bool(getattr(self, _FEATURE_ATTRIBUTES[Feature(feature)]))

    def limit_for(self, quota: str) -> int:
        return getattr(self, quota)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "maxParticipants": self.max_participants,
            "maxEventsPerMonth": self.max_events_per_month,
            "templates": self.templates.value,
            "emailDelivery": self.email_delivery,
            "bulkGeneration": self.bulk_generation,
            "analytics": self.analytics.value if self.analytics != AnalyticsLevel.NONE else False,
            "prioritySupport": self.priority_support,
            "apiAccess": self.api_access,
            "teamCollaboration": self.team_collaboration,
            "customBranding": self.custom_branding,
            "whiteLabel": self.white_label,
            "customTemplates": self.custom_templates,
            "exportData": self.export_data,
            "advancedReports": self.advanced_reports,
        }


_FEATURE_ATTRIBUTES = {
    Feature.EMAIL_DELIVERY: "email_delivery",
    Feature.BULK_GENERATION: "bulk_generation",
    Feature.ANALYTICS: "analytics",
    Feature.PRIORITY_SUPPORT: "priority_support",
    Feature.API_ACCESS: "api_access",
    Feature.TEAM_COLLABORATION: "team_collaboration",
    Feature.CUSTOM_BRANDING: "custom_branding",
    Feature.WHITE_LABEL: "white_label",
    Feature.CUSTOM_TEMPLATES: "custom_templates",
    Feature.EXPORT_DATA: "export_data",
    Feature.ADVANCED_REPORTS: "advanced_reports",
}


# Ordered from lowest to highest tier
PLAN_FEATURES: Dict[str, TierEntitlements] = {
    FREE_TIER: TierEntitlements(
        level=0,
        max_participants=50,
        max_events_per_month=2,
        templates=TemplateTier.BASIC,
    ),
    PlanName.BASIC.value: TierEntitlements(
        level=1,
        max_participants=500,
        max_events_per_month=10,
        templates=TemplateTier.BASIC,
        analytics=AnalyticsLevel.BASIC,
        export_data=True,
    ),
    PlanName.STANDARD.value: TierEntitlements(
        level=2,
        max_participants=2000,
        max_events_per_month=50,
        templates=TemplateTier.PREMIUM,
        bulk_generation=True,
        analytics=AnalyticsLevel.ADVANCED,
        priority_support=True,
        custom_templates=True,
        export_data=True,
        advanced_reports=True,
    ),
    PlanName.PROFESSIONAL.value: TierEntitlements(
        level=3,
        max_participants=10000,
        max_events_per_month=UNLIMITED,
        templates=TemplateTier.CUSTOM,
        bulk_generation=True,
        analytics=AnalyticsLevel.ADVANCED,
        priority_support=True,
        api_access=True,
        team_collaboration=True,
        custom_branding=True,
        white_label=True,
        custom_templates=True,
        export_data=True,
        advanced_reports=True,
    ),
}

UPGRADE_PATH = (PlanName.BASIC.value, PlanName.STANDARD.value, PlanName.PROFESSIONAL.value)


# =============================================================================
# PLAN RESOLUTION
# =============================================================================

@dataclass
class PlanInfo:
    """The tier an organization currently enjoys."""
    plan_name: str
    features: TierEntitlements
    organization: Optional[Organization] = None

    @property
    def usage(self) -> UsageCounters:
        if self.organization is None:
            return UsageCounters()
        return self.organization.current_month_usage()


def resolve_plan_info(organization: Optional[Organization]) -> PlanInfo:
    if organization is None:
        return PlanInfo(FREE_TIER, PLAN_FEATURES[FREE_TIER])

    if organization.plan_type == PlanType.PAY_AS_YOU_GO:
        if organization.credits_available > 0:
            return PlanInfo(PAY_AS_YOU_GO_TIER, PLAN_FEATURES[PlanName.BASIC.value], organization)
        return PlanInfo(FREE_TIER, PLAN_FEATURES[FREE_TIER], organization)

    if organization.plan_type == PlanType.SUBSCRIPTION and organization.subscription_status == SubscriptionStatus.ACTIVE:
        end_date = organization.subscription.end_date
        plan = organization.current_plan
        if plan is not None and (end_date is None or end_date > utcnow()):
            return PlanInfo(plan.name, PLAN_FEATURES.get(plan.name, PLAN_FEATURES[FREE_TIER]), organization)

    return PlanInfo(FREE_TIER, PLAN_FEATURES[FREE_TIER], organization)


def minimum_plan_for(feature: Feature) -> str:
    """Lowest tier that has ``feature``."""
    for name, tier in PLAN_FEATURES.items():
        if tier.has(feature):
            return name
    return PlanName.PROFESSIONAL.value


def next_plan_for_quota(quota: str, current_limit: int) -> str:
    """First paid tier whose ``quota`` exceeds ``current_limit``."""
    for name in UPGRADE_PATH:
        value = PLAN_FEATURES[name].limit_for(quota)
        if value == UNLIMITED or value > current_limit:
            return name
    return PlanName.PROFESSIONAL.value


# =============================================================================
# DECISIONS
# =============================================================================

@dataclass
class EntitlementDecision:
    allowed: bool
    current_plan: str
    message: str = ""
    required_plan: Optional[str] = None
    feature: Optional[str] = None
    current_usage: Optional[int] = None
    limit: Optional[int] = None
    suggested_plan: Optional[str] = None
    code: ErrorCode = ErrorCode.ENTITLEMENT_DENIED

    def upsell(self) -> Dict[str, Any]:
        return {
            "currentPlan": self.current_plan,
            "requiredPlan": self.required_plan,
            "feature": self.feature,
            "currentUsage": self.current_usage,
            "usage": self.current_usage,
            "limit": self.limit,
            "suggestedPlan": self.suggested_plan,
            "upgradeRequired": True,
        }

    def raise_if_denied(self) -> None:
        if not self.allowed:
            raise EntitlementDeniedException(self.message, self.upsell(), code=self.code)


def check_feature(info: PlanInfo, feature: Feature) -> EntitlementDecision:
    feature = Feature(feature)
    if info.features.has(feature):
        return EntitlementDecision(allowed=True, current_plan=info.plan_name)

    required_plan = minimum_plan_for(feature)
    return EntitlementDecision(
        allowed=False,
        current_plan=info.plan_name,
        message=f"This feature requires {required_plan} plan or higher",
        required_plan=required_plan,
        feature=feature.value,
        suggested_plan=required_plan,
        code=ErrorCode.FEATURE_NOT_AVAILABLE,
    )


def check_plan(info: PlanInfo, minimum_plan: str) -> EntitlementDecision:
    required = PLAN_FEATURES.get(minimum_plan)
    if required is None:
        raise ValueError(f"Unknown plan tier: {minimum_plan!r}")
    if info.features.level >= required.level:
        return EntitlementDecision(allowed=True, current_plan=info.plan_name)

    return EntitlementDecision(
        allowed=False,
        current_plan=info.plan_name,
        message=f"This feature requires {minimum_plan} plan or higher",
        required_plan=minimum_plan,
        suggested_plan=minimum_plan,
        code=ErrorCode.PLAN_UPGRADE_REQUIRED,
    )


def _check_quota(info: PlanInfo, quota: str, feature: str, used: int, message: str) -> EntitlementDecision:
    limit = info.features.limit_for(quota)
    if limit == UNLIMITED or used < limit:
        return EntitlementDecision(allowed=True, current_plan=info.plan_name, current_usage=used, limit=limit)

    suggested = next_plan_for_quota(quota, limit)
    return EntitlementDecision(
        allowed=False,
        current_plan=info.plan_name,
        message=message.format(limit=limit),
        required_plan=suggested,
        feature=feature,
        current_usage=used,
        limit=limit,
        suggested_plan=suggested,
        code=ErrorCode.USAGE_LIMIT_EXCEEDED,
    )


def check_event_limit(info: PlanInfo) -> EntitlementDecision:
    return _check_quota(
        info,
        "max_events_per_month",
        "maxEventsPerMonth",
        info.usage.events_created,
        "You've reached your monthly event limit ({limit} events)",
    )


def check_participant_limit(info: PlanInfo) -> EntitlementDecision:
    return _check_quota(
        info,
        "max_participants",
        "maxParticipants",
        info.usage.participants_added,
        "You've reached your participant limit ({limit} participants)",
    )


def check_active_billing(organization: Organization) -> None:
    """
    Raise PaymentRequiredException unless the organization can be billed:
    an unexpired active subscription, or pay-as-you-go with credits left.
    """
    if organization.plan_type == PlanType.SUBSCRIPTION:
        subscription = organization.subscription
        if subscription.status != SubscriptionStatus.ACTIVE:
            raise PaymentRequiredException(
                "No active subscription. Please subscribe to a plan.",
                {"requiresSubscription": True},
                code=ErrorCode.NO_ACTIVE_SUBSCRIPTION,
            )
        if subscription.end_date is not None and subscription.end_date < utcnow():
            raise SubscriptionExpiredException()
        return

    if organization.plan_type == PlanType.PAY_AS_YOU_GO:
        if organization.credits_available <= 0:
            raise PaymentRequiredException(
                "No credits available. Please purchase credits to continue.",
                {"requiresPayment": True, "creditsAvailable": organization.credits_available},
                code=ErrorCode.INSUFFICIENT_CREDITS,
            )
        return

    raise PaymentRequiredException(
        "Please set up billing to use this feature.",
        {"requiresSetup": True},
        code=ErrorCode.BILLING_SETUP_REQUIRED,
    )


def _require_billing_setup(info: PlanInfo, action: str) -> None:
    if info.organization is None:
        raise EntitlementDeniedException(
            f"Please set up billing to {action}",
            {
                "currentPlan": info.plan_name,
                "requiredPlan": PlanName.BASIC.value,
                "requiresSetup": True,
                "upgradeRequired": True,
            },
            code=ErrorCode.BILLING_SETUP_REQUIRED,
        )


# =============================================================================
# ORACLE
# =============================================================================

class EntitlementOracle:
    """Loads an organization's tier and enforces entitlement decisions."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.accounts = AccountService(db)

    async def plan_info_for_organization(self, organization_id: Optional[uuid.UUID]) -> PlanInfo:
        organization = await self.accounts.find_organization(organization_id)
        return resolve_plan_info(organization)

    async def plan_info_for_admin(self, admin: Admin) -> PlanInfo:
        return await self.plan_info_for_organization(admin.organization_id)

    async def require_feature(self, admin: Admin, feature: Feature) -> PlanInfo:
        info = await self.plan_info_for_admin(admin)
        decision = check_feature(info, feature)
        if not decision.allowed:
            logger.info(f"Feature {Feature(feature).value} denied for admin {admin.id} on {info.plan_name}")
        decision.raise_if_denied()
        return info

    async def require_plan(self, admin: Admin, minimum_plan: str) -> PlanInfo:
        info = await self.plan_info_for_admin(admin)
        decision = check_plan(info, minimum_plan)
        if not decision.allowed:
            logger.info(f"Plan {minimum_plan} required for admin {admin.id}; current {info.plan_name}")
        decision.raise_if_denied()
        return info

    async def check_event_limit(self, admin: Admin) -> PlanInfo:
        info = await self.plan_info_for_admin(admin)
        _require_billing_setup(info, "create events")
        decision = check_event_limit(info)
        if not decision.allowed:
            logger.info(f"Event limit reached for organization {info.organization.id}: {decision.current_usage}/{decision.limit}")
        decision.raise_if_denied()
        return info

    async def check_participant_limit(self, admin: Admin) -> PlanInfo:
        info = await self.plan_info_for_admin(admin)
        _require_billing_setup(info, "add participants")
        decision = check_participant_limit(info)
        if not decision.allowed:
            logger.info(f"Participant limit reached for organization {info.organization.id}: {decision.current_usage}/{decision.limit}")
        decision.raise_if_denied()
        return info

    async def require_active_billing(self, admin: Admin) -> Organization:
        """
        Raises:
            OrganizationNotFoundException: If the admin has no organization
            PaymentRequiredException: If billing does not cover the request
        """
        organization = await self.accounts.organization_for_admin(admin)
        try:
            check_active_billing(organization)
        except PaymentRequiredException as exc:
            logger.info(f"Billing inactive for organization {organization.id}: {exc.code.value}")
            raise
        return organization

    async def require_credential_headroom(self, organization_id: uuid.UUID) -> PlanInfo:
        """
        Subscription organizations stop issuing credentials once the tier's
        participant limit is reached (402 with requiresUpgrade).
        """
        info = await self.plan_info_for_organization(organization_id)
        if info.organization is None or info.organization.plan_type != PlanType.SUBSCRIPTION:
            return info

        decision = check_participant_limit(info)
        if not decision.allowed:
            logger.info(f"Credential issuance blocked for organization {organization_id}: {decision.current_usage}/{decision.limit} participants")
            raise PaymentRequiredException(
                "You have reached your plan limit. Please upgrade your plan to continue.",
                {"requiresUpgrade": True, **decision.upsell()},
                code=ErrorCode.USAGE_LIMIT_EXCEEDED,
            )
        return info

    async def plan_features(self, admin: Admin) -> Dict[str, Any]:
        """Current tier, its feature matrix and this month's usage."""
        info = await self.plan_info_for_admin(admin)
        limits = info.features
        return {
            "currentPlan": info.plan_name,
            "features": limits.to_dict(),
            "usage": info.usage.to_dict(),
            "limits": {
                "events": limits.max_events_per_month,
                "participants": limits.max_participants,
            },
        }
