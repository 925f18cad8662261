"""
SifaPass Billing - SQLAlchemy Models Package

This package contains all database models for the billing core.
"""

from sifapass.models.base import BaseModel, TimestampMixin
from sifapass.models.enums import (
    AnalyticsLevel,
    BillingCycle,
    InvoiceStatus,
    InvoiceType,
    PlanName,
    PlanType,
    SubscriptionStatus,
    TemplateTier,
    TERMINAL_INVOICE_STATUSES,
    UsageMetric,
)
from sifapass.models.plan import Plan, PlanFeatures, UNLIMITED
from sifapass.models.organization import (
    Organization,
    CreditBalance,
    SubscriptionState,
    UsageCounters,
    PaymentInstrument,
)
from sifapass.models.invoice import Invoice, CreditPackage, PaystackRecord
from sifapass.models.admin import Admin

__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    # Enums
    "AnalyticsLevel",
    "BillingCycle",
    "InvoiceStatus",
    "InvoiceType",
    "PlanName",
    "PlanType",
    "SubscriptionStatus",
    "TemplateTier",
    "TERMINAL_INVOICE_STATUSES",
    "UsageMetric",
    # Plan
    "Plan",
    "PlanFeatures",
    "UNLIMITED",
    # Organization
    "Organization",
    "CreditBalance",
    "SubscriptionState",
    "UsageCounters",
    "PaymentInstrument",
    # Invoice
    "Invoice",
    "CreditPackage",
    "PaystackRecord",
    # Admin
    "Admin",
]
