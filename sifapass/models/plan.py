"""
SifaPass Billing - Plan Model

Subscription tiers with their feature flags and quota ceilings.
Plans are curated by superusers and otherwise read-only.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sifapass.models.base import BaseModel, enum_type
from sifapass.models.enums import AnalyticsLevel, BillingCycle, TemplateTier


UNLIMITED = -1


@dataclass(frozen=True)
class PlanFeatures:
    """Feature block of a plan. A limit of -1 means unlimited."""
    max_participants: int = 0
    max_events_per_month: int = 0
    templates: TemplateTier = TemplateTier.BASIC
    email_delivery: bool = True
    bulk_generation: bool = False
    analytics: AnalyticsLevel = AnalyticsLevel.NONE
    priority_support: bool = False
    api_access: bool = False
    team_collaboration: bool = False
    custom_branding: bool = False
    white_label: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "maxParticipants": self.max_participants,
            "maxEventsPerMonth": self.max_events_per_month,
            "templates": TemplateTier(self.templates).value,
            "emailDelivery": self.email_delivery,
            "bulkGeneration": self.bulk_generation,
            "analytics": AnalyticsLevel(self.analytics).value,
            "prioritySupport": self.priority_support,
            "apiAccess": self.api_access,
            "teamCollaboration": self.team_collaboration,
            "customBranding": self.custom_branding,
            "whiteLabel": self.white_label,
        }

    def as_columns(self) -> Dict[str, Any]:
        return asdict(self)


class Plan(BaseModel):
    """A subscription tier in the catalog."""

    __tablename__ = "plans"

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Basic, Standard or Professional",
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Pricing (whole Naira; converted to kobo only at the gateway)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="NGN", nullable=False)
    billing_cycle: Mapped[BillingCycle] = mapped_column(
        enum_type(BillingCycle),
        default=BillingCycle.MONTHLY,
        nullable=False,
    )

    # ===========================================
    # FEATURES
    # ===========================================
    max_participants: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_events_per_month: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="-1 means unlimited",
    )
    templates: Mapped[TemplateTier] = mapped_column(
        enum_type(TemplateTier),
        default=TemplateTier.BASIC,
        nullable=False,
    )
    email_delivery: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    bulk_generation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    analytics: Mapped[AnalyticsLevel] = mapped_column(
        enum_type(AnalyticsLevel),
        default=AnalyticsLevel.NONE,
        nullable=False,
    )
    priority_support: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    api_access: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    team_collaboration: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    custom_branding: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    white_label: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Catalog presentation
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_popular: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    @property
    def features(self) -> PlanFeatures:
        return PlanFeatures(
            max_participants=self.max_participants,
            max_events_per_month=self.max_events_per_month,
            templates=self.templates,
            email_delivery=self.email_delivery,
            bulk_generation=self.bulk_generation,
            analytics=self.analytics,
            priority_support=self.priority_support,
            api_access=self.api_access,
            team_collaboration=self.team_collaboration,
            custom_branding=self.custom_branding,
            white_label=self.white_label,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "currency": self.currency,
            "interval": BillingCycle(self.billing_cycle).value,
            "features": self.features.to_dict(),
            "isActive": self.is_active,
            "isPopular": self.is_popular,
            "sortOrder": self.sort_order,
        }

    def __repr__(self) -> str:
        return f"<Plan(name={self.name}, price={self.price})>"
