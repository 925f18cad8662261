"""
SifaPass Billing - Organization Model

The billable tenant. Billing state is stored as flat columns and exposed
through small typed records:

- credits: prepaid ledger (available / used / rate)
- subscription: status and current period
- usage: current-month and lifetime counters
- payment_method: cached card fingerprint from the last paid invoice

Mutations of the ledger and usage counters go through conditional UPDATE
statements (see services.credit_ledger); ``version`` is bumped on every
billing write so read-modify-write paths can detect concurrent changes.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sifapass.models.base import BaseModel, enum_type
from sifapass.models.enums import PlanType, SubscriptionStatus
from sifapass.utils.timeutils import ensure_utc, isoformat, month_start, utcnow

if TYPE_CHECKING:
    from sifapass.models.plan import Plan


@dataclass(frozen=True)
class CreditBalance:
    available: int = 0
    used: int = 0
    credit_rate: int = 5

    def to_dict(self) -> Dict[str, Any]:
        return {
            "available": self.available,
            "used": self.used,
            "creditRate": self.credit_rate,
        }


@dataclass(frozen=True)
class SubscriptionState:
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    auto_renew: bool = True
    cancel_at_period_end: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": SubscriptionStatus(self.status).value,
            "startDate": isoformat(self.start_date),
            "endDate": isoformat(self.end_date),
            "autoRenew": self.auto_renew,
            "cancelAtPeriodEnd": self.cancel_at_period_end,
        }


@dataclass(frozen=True)
class UsageCounters:
    credentials_issued: int = 0
    events_created: int = 0
    participants_added: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "credentialsIssued": self.credentials_issued,
            "eventsCreated": self.events_created,
            "participantsAdded": self.participants_added,
        }


@dataclass(frozen=True)
class PaymentInstrument:
    card_type: Optional[str] = None
    last_four_digits: Optional[str] = None
    bank: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "card",
            "cardType": self.card_type,
            "lastFourDigits": self.last_four_digits,
            "bank": self.bank,
        }


class Organization(BaseModel):
    """Billable tenant that owns events, participants and credentials."""

    __tablename__ = "organizations"
    __table_args__ = (
        CheckConstraint("credits_available >= 0", name="credits_available_non_negative"),
        CheckConstraint("credits_used >= 0", name="credits_used_non_negative"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # ===========================================
    # PLAN
    # ===========================================
    plan_type: Mapped[PlanType] = mapped_column(
        enum_type(PlanType),
        default=PlanType.NONE,
        nullable=False,
    )
    current_plan_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("plans.id", ondelete="SET NULL"),
        nullable=True,
    )

    # ===========================================
    # CREDIT LEDGER
    # ===========================================
    credits_available: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    credits_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    credit_rate: Mapped[int] = mapped_column(
        Integer,
        default=5,
        nullable=False,
        comment="Price of one credit in Naira",
    )

    # ===========================================
    # SUBSCRIPTION
    # ===========================================
    subscription_status: Mapped[SubscriptionStatus] = mapped_column(
        enum_type(SubscriptionStatus),
        default=SubscriptionStatus.INACTIVE,
        nullable=False,
    )
    subscription_start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    subscription_end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    auto_renew: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    next_billing_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_billing_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # ===========================================
    # USAGE COUNTERS
    # ===========================================
    usage_period_start: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="First UTC day of the month the current-month counters belong to",
    )
    month_credentials_issued: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    month_events_created: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    month_participants_added: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lifetime_credentials_issued: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lifetime_events_created: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lifetime_participants_added: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # ===========================================
    # PAYSTACK (cached instrument fingerprint)
    # ===========================================
    paystack_customer_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    paystack_subscription_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    paystack_authorization_code: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Reusable card authorization from the last successful charge",
    )
    card_last_four: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)
    card_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    card_bank: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # ===========================================
    # CONCURRENCY
    # ===========================================
    invoice_sequence: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Last allocated invoice ordinal",
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Relationships
    current_plan: Mapped[Optional["Plan"]] = relationship("Plan", lazy="joined")

    # ===========================================
    # TYPED VIEWS
    # ===========================================

    @property
    def credits(self) -> CreditBalance:
        return CreditBalance(
            available=self.credits_available,
            used=self.credits_used,
            credit_rate=self.credit_rate,
        )

    @property
    def subscription(self) -> SubscriptionState:
        return SubscriptionState(
            status=self.subscription_status,
            start_date=ensure_utc(self.subscription_start_date),
            end_date=ensure_utc(self.subscription_end_date),
            auto_renew=self.auto_renew,
            cancel_at_period_end=self.cancel_at_period_end,
        )

    def usage_is_stale(self, now: Optional[datetime] = None) -> bool:
        """True when the current-month counters belong to an earlier month."""
        period = ensure_utc(self.usage_period_start)
        return period is None or period < month_start(now or utcnow())

    def current_month_usage(self, now: Optional[datetime] = None) -> UsageCounters:
        if self.usage_is_stale(now):
            return UsageCounters()
        return UsageCounters(
            credentials_issued=self.month_credentials_issued,
            events_created=self.month_events_created,
            participants_added=self.month_participants_added,
        )

    @property
    def lifetime_usage(self) -> UsageCounters:
        return UsageCounters(
            credentials_issued=self.lifetime_credentials_issued,
            events_created=self.lifetime_events_created,
            participants_added=self.lifetime_participants_added,
        )

    @property
    def payment_method(self) -> Optional[PaymentInstrument]:
        if not self.card_last_four:
            return None
        return PaymentInstrument(
            card_type=self.card_type,
            last_four_digits=self.card_last_four,
            bank=self.card_bank,
        )

    @property
    def has_active_subscription(self) -> bool:
        return (
            self.plan_type == PlanType.SUBSCRIPTION
            and self.subscription_status == SubscriptionStatus.ACTIVE
        )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name}, plan_type={self.plan_type})>"
