"""
SifaPass Billing - Entitlement Tests

Tier resolution, feature and quota decisions, and the 403/402 envelopes
returned by the plan-gating dependencies.
"""

from datetime import timedelta
from typing import Any, Dict

import pytest
import pytest_asyncio
from fastapi import Depends, FastAPI
from httpx import AsyncClient, ASGITransport

from sifapass.database import get_async_session
from sifapass.dependencies import (
    require_active_billing,
    require_feature,
    require_plan,
    track_credential_usage,
    track_event_usage,
    track_participant_usage,
)
from sifapass.models.enums import PlanType, SubscriptionStatus
from sifapass.models.organization import Organization
from sifapass.services.accounts import AccountService
from sifapass.services.credit_ledger import CreditLedger, DebitResult
from sifapass.services.entitlements import (
    FREE_TIER,
    PLAN_FEATURES,
    EntitlementOracle,
    Feature,
    PlanInfo,
    check_event_limit,
    check_feature,
    check_participant_limit,
    check_plan,
    minimum_plan_for,
    next_plan_for_quota,
)
from sifapass.utils.error_handling import EntitlementDeniedException, ErrorCode, setup_exception_handlers
from sifapass.utils.timeutils import utcnow


# =============================================================================
# PURE DECISIONS
# =============================================================================

class TestDecisions:

    def test_minimum_plan_for_feature(self):
        assert minimum_plan_for(Feature.EMAIL_DELIVERY) == FREE_TIER
        assert minimum_plan_for(Feature.ANALYTICS) == "Basic"
        assert minimum_plan_for(Feature.BULK_GENERATION) == "Standard"
        assert minimum_plan_for(Feature.API_ACCESS) == "Professional"

    def test_next_plan_for_quota(self):
        assert next_plan_for_quota("max_events_per_month", 2) == "Basic"
        assert next_plan_for_quota("max_events_per_month", 10) == "Standard"
        assert next_plan_for_quota("max_participants", 2000) == "Professional"

    def test_feature_denial_names_required_plan(self):
        info = PlanInfo(FREE_TIER, PLAN_FEATURES[FREE_TIER])

        decision = check_feature(info, Feature.BULK_GENERATION)

        assert decision.allowed is False
        assert decision.code == ErrorCode.FEATURE_NOT_AVAILABLE
        assert decision.upsell()["requiredPlan"] == "Standard"
        assert decision.upsell()["feature"] == "bulkGeneration"

    def test_free_tier_event_limit_without_organization(self):
        decision = check_event_limit(PlanInfo(FREE_TIER, PLAN_FEATURES[FREE_TIER]))
        assert decision.allowed is True
        assert decision.limit == 2
        assert decision.current_usage == 0

    def test_unknown_plan_name_is_rejected(self):
        info = PlanInfo("Professional", PLAN_FEATURES["Professional"])

        with pytest.raises(ValueError):
            check_plan(info, "standard")
        with pytest.raises(ValueError):
            require_plan("Enterprise")

        assert callable(require_plan("Standard"))

    def test_unlimited_events(self):
        info = PlanInfo("Professional", PLAN_FEATURES["Professional"])
        assert check_event_limit(info).allowed is True
        assert check_participant_limit(info).limit == 10000


# =============================================================================
# TIER RESOLUTION
# =============================================================================

class TestResolvePlan:

    @pytest.mark.asyncio
    async def test_pay_as_you_go_with_credits_is_basic(self, db_session, admin, organization):
        await CreditLedger(db_session).credit(organization.id, 10)
        await db_session.commit()

        info = await EntitlementOracle(db_session).plan_info_for_admin(admin)

        assert info.plan_name == "pay-as-you-go"
        assert info.features == PLAN_FEATURES["Basic"]

    @pytest.mark.asyncio
    async def test_pay_as_you_go_without_credits_is_free(self, db_session, admin):
        info = await EntitlementOracle(db_session).plan_info_for_admin(admin)
        assert info.plan_name == FREE_TIER

    @pytest.mark.asyncio
    async def test_active_subscription(self, db_session, admin, organization, plans, subscribe):
        await subscribe(organization, plans["Standard"])

        features = await EntitlementOracle(db_session).plan_features(admin)

        assert features["currentPlan"] == "Standard"
        assert features["features"]["bulkGeneration"] is True
        assert features["features"]["analytics"] == "advanced"
        assert features["limits"] == {"events": 50, "participants": 2000}

    @pytest.mark.asyncio
    async def test_expired_subscription_is_free(self, db_session, admin, organization, plans, subscribe):
        await subscribe(organization, plans["Professional"], days_left=-1)

        info = await EntitlementOracle(db_session).plan_info_for_admin(admin)

        assert info.plan_name == FREE_TIER

    @pytest.mark.asyncio
    async def test_past_due_subscription_is_free(self, db_session, admin, organization, plans, subscribe):
        await subscribe(organization, plans["Standard"], status=SubscriptionStatus.PAST_DUE)

        info = await EntitlementOracle(db_session).plan_info_for_admin(admin)

        assert info.plan_name == FREE_TIER

    @pytest.mark.asyncio
    async def test_no_organization_is_free(self, db_session, admin_without_organization):
        features = await EntitlementOracle(db_session).plan_features(admin_without_organization)

        assert features["currentPlan"] == FREE_TIER
        assert features["usage"] == {"credentialsIssued": 0, "eventsCreated": 0, "participantsAdded": 0}


# =============================================================================
# ORACLE
# =============================================================================

class TestEntitlementOracle:

    @pytest.mark.asyncio
    async def test_basic_cannot_use_standard_plan_features(self, db_session, admin, organization, plans, subscribe):
        await subscribe(organization, plans["Basic"])

        with pytest.raises(EntitlementDeniedException) as exc_info:
            await EntitlementOracle(db_session).require_plan(admin, "Standard")

        denial = exc_info.value
        assert denial.status_code == 403
        assert denial.code == ErrorCode.PLAN_UPGRADE_REQUIRED
        assert denial.upsell["currentPlan"] == "Basic"
        assert denial.upsell["requiredPlan"] == "Standard"
        assert denial.upsell["upgradeRequired"] is True

    @pytest.mark.asyncio
    async def test_higher_plan_passes(self, db_session, admin, organization, plans, subscribe):
        await subscribe(organization, plans["Professional"])

        info = await EntitlementOracle(db_session).require_plan(admin, "Standard")
        await EntitlementOracle(db_session).require_feature(admin, Feature.WHITE_LABEL)

        assert info.plan_name == "Professional"

    @pytest.mark.asyncio
    async def test_feature_denied(self, db_session, admin, organization, plans, subscribe):
        await subscribe(organization, plans["Standard"])

        with pytest.raises(EntitlementDeniedException) as exc_info:
            await EntitlementOracle(db_session).require_feature(admin, Feature.API_ACCESS)

        assert exc_info.value.code == ErrorCode.FEATURE_NOT_AVAILABLE
        assert exc_info.value.upsell["requiredPlan"] == "Professional"

    @pytest.mark.asyncio
    async def test_monthly_event_limit(self, db_session, admin, organization, plans, subscribe):
        await subscribe(organization, plans["Basic"])
        organization.month_events_created = 10
        await db_session.commit()

        with pytest.raises(EntitlementDeniedException) as exc_info:
            await EntitlementOracle(db_session).check_event_limit(admin)

        upsell = exc_info.value.upsell
        assert exc_info.value.code == ErrorCode.USAGE_LIMIT_EXCEEDED
        assert upsell["limit"] == 10
        assert upsell["currentUsage"] == 10
        assert upsell["usage"] == 10
        assert upsell["suggestedPlan"] == "Standard"
        assert "10 events" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_last_month_usage_does_not_count(self, db_session, admin, organization, plans, subscribe):
        await subscribe(organization, plans["Basic"])
        organization.month_events_created = 10
        organization.usage_period_start = utcnow() - timedelta(days=45)
        await db_session.commit()

        info = await EntitlementOracle(db_session).check_event_limit(admin)

        assert info.usage.events_created == 0

    @pytest.mark.asyncio
    async def test_participant_limit(self, db_session, admin, organization):
        organization.month_participants_added = 50
        await db_session.commit()

        with pytest.raises(EntitlementDeniedException) as exc_info:
            await EntitlementOracle(db_session).check_participant_limit(admin)

        assert exc_info.value.upsell["limit"] == 50
        assert exc_info.value.upsell["suggestedPlan"] == "Basic"

    @pytest.mark.asyncio
    async def test_quota_requires_billing_setup(self, db_session, admin_without_organization):
        with pytest.raises(EntitlementDeniedException) as exc_info:
            await EntitlementOracle(db_session).check_event_limit(admin_without_organization)

        assert exc_info.value.code == ErrorCode.BILLING_SETUP_REQUIRED
        assert exc_info.value.upsell["requiresSetup"] is True


# =============================================================================
# HTTP GATING
# =============================================================================

def build_gated_app() -> FastAPI:
    gated = FastAPI()
    setup_exception_handlers(gated)

    @gated.get("/reports/advanced")
    async def advanced_reports(plan: PlanInfo = Depends(require_plan("Standard"))) -> Dict[str, Any]:
        return {"plan": plan.plan_name}

    @gated.post("/events/bulk")
    async def bulk_generate(plan: PlanInfo = Depends(require_feature(Feature.BULK_GENERATION))) -> Dict[str, Any]:
        return {"plan": plan.plan_name}

    @gated.post("/events")
    async def create_event(plan: PlanInfo = Depends(track_event_usage)) -> Dict[str, Any]:
        return {"plan": plan.plan_name}

    @gated.post("/participants")
    async def add_participant(plan: PlanInfo = Depends(track_participant_usage)) -> Dict[str, Any]:
        return {"plan": plan.plan_name}

    @gated.post("/credentials")
    async def issue_credential(result: DebitResult = Depends(track_credential_usage)) -> Dict[str, Any]:
        return result.to_dict()

    @gated.get("/credentials/export")
    async def export_credentials(organization: Organization = Depends(require_active_billing)) -> Dict[str, Any]:
        return {"organization": str(organization.id)}

    return gated


@pytest_asyncio.fixture
async def gated_client(session_maker):
    gated = build_gated_app()

    async def override_get_session():
        async with session_maker() as session:
            yield session

    gated.dependency_overrides[get_async_session] = override_get_session

    async with AsyncClient(transport=ASGITransport(app=gated), base_url="http://test") as ac:
        yield ac


class TestGatingDependencies:

    @pytest.mark.asyncio
    async def test_plan_denial_envelope(self, gated_client, auth_headers, organization, plans, subscribe):
        await subscribe(organization, plans["Basic"])

        response = await gated_client.get("/reports/advanced", headers=auth_headers)

        assert response.status_code == 403
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "PLAN_UPGRADE_REQUIRED"
        assert body["currentPlan"] == "Basic"
        assert body["requiredPlan"] == "Standard"
        assert body["upgradeRequired"] is True

    @pytest.mark.asyncio
    async def test_feature_denial_envelope(self, gated_client, auth_headers):
        response = await gated_client.post("/events/bulk", headers=auth_headers)

        assert response.status_code == 403
        body = response.json()
        assert body["error"]["code"] == "FEATURE_NOT_AVAILABLE"
        assert body["feature"] == "bulkGeneration"
        assert body["currentPlan"] == FREE_TIER

    @pytest.mark.asyncio
    async def test_event_limit_counts_until_exhausted(self, gated_client, db_session, auth_headers, organization, plans, subscribe):
        await subscribe(organization, plans["Basic"])
        organization.month_events_created = 9
        await db_session.commit()

        allowed = await gated_client.post("/events", headers=auth_headers)
        denied = await gated_client.post("/events", headers=auth_headers)

        assert allowed.status_code == 200
        assert allowed.json() == {"plan": "Basic"}
        assert denied.status_code == 403
        body = denied.json()
        assert body["error"]["code"] == "USAGE_LIMIT_EXCEEDED"
        assert body["limit"] == 10
        assert body["currentUsage"] == 10
        assert body["suggestedPlan"] == "Standard"

        org = await AccountService(db_session).get_organization(organization.id)
        assert org.month_events_created == 10

    @pytest.mark.asyncio
    async def test_participant_tracking(self, gated_client, db_session, auth_headers, organization, plans, subscribe):
        await subscribe(organization, plans["Standard"])

        response = await gated_client.post("/participants", headers=auth_headers)

        assert response.status_code == 200
        org = await AccountService(db_session).get_organization(organization.id)
        assert org.current_month_usage().participants_added == 1

    @pytest.mark.asyncio
    async def test_credential_debits_prepaid_credits(self, gated_client, db_session, auth_headers, organization):
        await CreditLedger(db_session).credit(organization.id, 1)
        await db_session.commit()

        first = await gated_client.post("/credentials", headers=auth_headers)
        second = await gated_client.post("/credentials", headers=auth_headers)

        assert first.status_code == 200
        assert first.json()["outcome"] == "debited"
        assert first.json()["remainingCredits"] == 0

        assert second.status_code == 402
        body = second.json()
        assert body["error"]["code"] == "INSUFFICIENT_CREDITS"
        assert body["error"]["details"]["creditsAvailable"] == 0
        assert body["error"]["details"]["requiresPayment"] is True

    @pytest.mark.asyncio
    async def test_credential_on_subscription_only_counts(self, gated_client, db_session, auth_headers, organization, plans, subscribe):
        await subscribe(organization, plans["Basic"])

        response = await gated_client.post("/credentials", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["outcome"] == "not_applicable"
        org = await AccountService(db_session).get_organization(organization.id)
        assert org.plan_type == PlanType.SUBSCRIPTION
        assert org.current_month_usage().credentials_issued == 1

    @pytest.mark.asyncio
    async def test_missing_token(self, gated_client):
        response = await gated_client.post("/events")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_credential_refused_at_participant_limit(self, gated_client, db_session, auth_headers, organization, plans, subscribe):
        await subscribe(organization, plans["Basic"])
        organization.month_participants_added = 500
        await db_session.commit()

        response = await gated_client.post("/credentials", headers=auth_headers)

        assert response.status_code == 402
        body = response.json()
        assert body["error"]["code"] == "USAGE_LIMIT_EXCEEDED"
        assert body["requiresUpgrade"] is True
        assert body["limit"] == 500
        assert body["currentPlan"] == "Basic"

        org = await AccountService(db_session).get_organization(organization.id)
        assert org.current_month_usage().credentials_issued == 0

    @pytest.mark.asyncio
    async def test_credential_allowed_below_participant_limit(self, gated_client, db_session, auth_headers, organization, plans, subscribe):
        await subscribe(organization, plans["Basic"])
        organization.month_participants_added = 499
        await db_session.commit()

        response = await gated_client.post("/credentials", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["outcome"] == "not_applicable"


class TestActiveBillingGate:

    @pytest.mark.asyncio
    async def test_pay_as_you_go_with_credits(self, gated_client, db_session, auth_headers, organization):
        await CreditLedger(db_session).credit(organization.id, 5)
        await db_session.commit()

        response = await gated_client.get("/credentials/export", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"organization": str(organization.id)}

    @pytest.mark.asyncio
    async def test_pay_as_you_go_without_credits(self, gated_client, auth_headers):
        response = await gated_client.get("/credentials/export", headers=auth_headers)

        assert response.status_code == 402
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "INSUFFICIENT_CREDITS"
        assert body["requiresPayment"] is True
        assert body["creditsAvailable"] == 0

    @pytest.mark.asyncio
    async def test_billing_not_set_up(self, gated_client, db_session, auth_headers, organization):
        organization.plan_type = PlanType.NONE
        await db_session.commit()

        response = await gated_client.get("/credentials/export", headers=auth_headers)

        assert response.status_code == 402
        assert response.json()["requiresSetup"] is True
        assert response.json()["error"]["code"] == "BILLING_SETUP_REQUIRED"

    @pytest.mark.asyncio
    async def test_inactive_subscription(self, gated_client, auth_headers, organization, plans, subscribe):
        await subscribe(organization, plans["Standard"], status=SubscriptionStatus.PAST_DUE)

        response = await gated_client.get("/credentials/export", headers=auth_headers)

        assert response.status_code == 402
        assert response.json()["requiresSubscription"] is True
        assert response.json()["error"]["code"] == "NO_ACTIVE_SUBSCRIPTION"

    @pytest.mark.asyncio
    async def test_active_subscription(self, gated_client, auth_headers, organization, plans, subscribe):
        await subscribe(organization, plans["Standard"])

        response = await gated_client.get("/credentials/export", headers=auth_headers)

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_expired_subscription_is_marked_inactive(self, gated_client, db_session, auth_headers, organization, plans, subscribe):
        await subscribe(organization, plans["Standard"], days_left=-2)

        expired = await gated_client.get("/credentials/export", headers=auth_headers)

        assert expired.status_code == 402
        assert expired.json()["requiresRenewal"] is True
        assert expired.json()["error"]["code"] == "SUBSCRIPTION_EXPIRED"

        org = await AccountService(db_session).get_organization(organization.id)
        assert org.subscription_status == SubscriptionStatus.INACTIVE

        again = await gated_client.get("/credentials/export", headers=auth_headers)
        assert again.json()["requiresSubscription"] is True

    @pytest.mark.asyncio
    async def test_admin_without_organization(self, gated_client, unlinked_auth_headers):
        response = await gated_client.get("/credentials/export", headers=unlinked_auth_headers)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ORGANIZATION_NOT_FOUND"
