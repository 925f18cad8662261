"""
SifaPass Billing - Billing Schemas

Request bodies for the billing and plan endpoints. Field aliases follow
the camelCase JSON contract used by the dashboard frontend.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from sifapass.models.enums import AnalyticsLevel, BillingCycle, TemplateTier


class CamelModel(BaseModel):
    """Accepts both camelCase aliases and snake_case field names."""
    model_config = ConfigDict(populate_by_name=True)


# ===========================================
# PAYMENT SCHEMAS
# ===========================================

class SubscriptionInitializeRequest(CamelModel):
    """Start a subscription checkout."""
    plan_id: UUID = Field(..., alias="planId")


class CreditPackageRequest(CamelModel):
    quantity: int = Field(..., gt=0, description="Number of credits to purchase")
    price: int = Field(..., gt=0, description="Package price in Naira")


class CreditPurchaseInitializeRequest(CamelModel):
    """Start a prepaid credit checkout."""
    credit_package: CreditPackageRequest = Field(..., alias="creditPackage")


class SwitchPlanRequest(CamelModel):
    new_plan_id: UUID = Field(..., alias="newPlanId")


class CancelSubscriptionRequest(CamelModel):
    cancel_immediately: bool = Field(False, alias="cancelImmediately")


class ActivatePaidSubscriptionRequest(CamelModel):
    invoice_id: UUID = Field(..., alias="invoiceId")


# ===========================================
# PLAN SCHEMAS
# ===========================================

class PlanFeaturesSchema(CamelModel):
    max_participants: int = Field(0, alias="maxParticipants", ge=-1)
    max_events_per_month: int = Field(0, alias="maxEventsPerMonth", ge=-1)
    templates: TemplateTier = TemplateTier.BASIC
    email_delivery: bool = Field(True, alias="emailDelivery")
    bulk_generation: bool = Field(False, alias="bulkGeneration")
    analytics: AnalyticsLevel = AnalyticsLevel.NONE
    priority_support: bool = Field(False, alias="prioritySupport")
    api_access: bool = Field(False, alias="apiAccess")
    team_collaboration: bool = Field(False, alias="teamCollaboration")
    custom_branding: bool = Field(False, alias="customBranding")
    white_label: bool = Field(False, alias="whiteLabel")


class PlanCreate(CamelModel):
    """Schema for creating a catalog plan."""
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    price: int = Field(..., ge=0, description="Price in Naira")
    currency: str = Field("NGN", min_length=3, max_length=3)
    billing_cycle: BillingCycle = Field(BillingCycle.MONTHLY, alias="billingCycle")
    features: PlanFeaturesSchema = Field(default_factory=PlanFeaturesSchema)
    is_active: bool = Field(True, alias="isActive")
    is_popular: bool = Field(False, alias="isPopular")
    sort_order: int = Field(0, alias="sortOrder")


class PlanUpdate(CamelModel):
    """Partial update; omitted fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = None
    price: Optional[int] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    billing_cycle: Optional[BillingCycle] = Field(None, alias="billingCycle")
    features: Optional[PlanFeaturesSchema] = None
    is_active: Optional[bool] = Field(None, alias="isActive")
    is_popular: Optional[bool] = Field(None, alias="isPopular")
    sort_order: Optional[int] = Field(None, alias="sortOrder")
