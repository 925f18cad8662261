"""
SifaPass Billing - Billing Enums

Closed sets shared by the plan, invoice and organization models.
"""

from enum import Enum


class PlanName(str, Enum):
    """Subscription tiers. The entitlement table keys off these names."""
    BASIC = "Basic"
    STANDARD = "Standard"
    PROFESSIONAL = "Professional"


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class TemplateTier(str, Enum):
    BASIC = "basic"
    PREMIUM = "premium"
    CUSTOM = "custom"


class AnalyticsLevel(str, Enum):
    NONE = "none"
    BASIC = "basic"
    ADVANCED = "advanced"


class InvoiceType(str, Enum):
    SUBSCRIPTION = "subscription"
    CREDIT_PURCHASE = "credit_purchase"


class InvoiceStatus(str, Enum):
    """
    Invoice lifecycle.

    pending -> processing -> paid | failed
    Paid, failed and cancelled are terminal.
    """
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_INVOICE_STATUSES


TERMINAL_INVOICE_STATUSES = frozenset({
    InvoiceStatus.PAID,
    InvoiceStatus.FAILED,
    InvoiceStatus.CANCELLED,
})


class PlanType(str, Enum):
    """How an organization pays for the platform."""
    SUBSCRIPTION = "subscription"
    PAY_AS_YOU_GO = "pay-as-you-go"
    NONE = "none"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELLED = "cancelled"
    PAST_DUE = "past_due"
    TRIALING = "trialing"


class UsageMetric(str, Enum):
    """Monthly and lifetime usage counters kept on the organization."""
    CREDENTIALS_ISSUED = "credentials_issued"
    EVENTS_CREATED = "events_created"
    PARTICIPANTS_ADDED = "participants_added"
