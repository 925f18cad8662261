"""
SifaPass Billing - Invoice Model

Record of an intended or completed payment.

Lifecycle:
- pending: created, gateway not yet initialized (safe to retry)
- processing: gateway accepted the initialization, payer is at checkout
- paid / failed: gateway confirmed the outcome (terminal)
- cancelled: abandoned by an operator (terminal)

Status changes only happen through InvoiceStore.transition, a
compare-and-set on the status column.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sifapass.models.base import BaseModel, enum_type
from sifapass.models.enums import InvoiceStatus, InvoiceType
from sifapass.utils.timeutils import ensure_utc, isoformat

if TYPE_CHECKING:
    from sifapass.models.plan import Plan


@dataclass(frozen=True)
class CreditPackage:
    quantity: int
    bonus_credits: int
    total_credits: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "quantity": self.quantity,
            "bonusCredits": self.bonus_credits,
            "totalCredits": self.total_credits,
        }


@dataclass(frozen=True)
class PaystackRecord:
    """Gateway-side bookkeeping stored on the invoice."""
    reference: Optional[str] = None
    authorization_url: Optional[str] = None
    access_code: Optional[str] = None
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    channel: Optional[str] = None
    ip_address: Optional[str] = None
    fees: Optional[float] = None
    card_type: Optional[str] = None
    last_four_digits: Optional[str] = None
    bank: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reference": self.reference,
            "authorizationUrl": self.authorization_url,
            "accessCode": self.access_code,
            "transactionId": self.transaction_id,
            "paidAt": isoformat(self.paid_at),
            "channel": self.channel,
            "ipAddress": self.ip_address,
            "fees": self.fees,
            "cardType": self.card_type,
            "lastFourDigits": self.last_four_digits,
            "bank": self.bank,
        }


class Invoice(BaseModel):
    """Subscription or credit-purchase invoice."""

    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("organization_id", "invoice_number", name="uq_invoices_organization_number"),
    )

    invoice_number: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        index=True,
        comment="INV-<5-digit ordinal>-<4-digit ms suffix>",
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[InvoiceType] = mapped_column(enum_type(InvoiceType), nullable=False)

    # Subscription invoices
    plan_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("plans.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Credit purchase invoices
    credit_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bonus_credits: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_credits: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # ===========================================
    # AMOUNTS (whole Naira)
    # ===========================================
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    tax_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    discount_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="NGN", nullable=False)

    status: Mapped[InvoiceStatus] = mapped_column(
        enum_type(InvoiceStatus),
        default=InvoiceStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Dates
    issue_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    paid_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ===========================================
    # PAYSTACK
    # ===========================================
    paystack_reference: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        unique=True,
        comment="Idempotency key for verify and webhook",
    )
    authorization_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    access_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    channel: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    fees_kobo: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    card_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    last_four_digits: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)
    bank: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Relationships
    plan: Mapped[Optional["Plan"]] = relationship("Plan", lazy="joined")

    @property
    def credits(self) -> Optional[CreditPackage]:
        if self.type != InvoiceType.CREDIT_PURCHASE:
            return None
        return CreditPackage(
            quantity=self.credit_quantity or 0,
            bonus_credits=self.bonus_credits or 0,
            total_credits=self.total_credits or 0,
        )

    @property
    def paystack(self) -> PaystackRecord:
        return PaystackRecord(
            reference=self.paystack_reference,
            authorization_url=self.authorization_url,
            access_code=self.access_code,
            transaction_id=self.transaction_id,
            paid_at=ensure_utc(self.paid_at),
            channel=self.channel,
            ip_address=self.ip_address,
            fees=self.fees_kobo / 100 if self.fees_kobo is not None else None,
            card_type=self.card_type,
            last_four_digits=self.last_four_digits,
            bank=self.bank,
        )

    @property
    def status_value(self) -> str:
        return InvoiceStatus(self.status).value

    @property
    def type_value(self) -> str:
        return InvoiceType(self.type).value

    def summary(self) -> Dict[str, Any]:
        """Projection used by the dashboard and invoice history."""
        credits = self.credits
        return {
            "id": str(self.id),
            "invoiceNumber": self.invoice_number,
            "type": self.type_value,
            "amount": self.total_amount,
            "currency": self.currency,
            "status": self.status_value,
            "dueDate": isoformat(self.due_date),
            "paidDate": isoformat(self.paid_date),
            "credits": credits.to_dict() if credits else None,
            "createdAt": isoformat(self.created_at),
        }

    def to_dict(self) -> Dict[str, Any]:
        credits = self.credits
        return {
            "id": str(self.id),
            "invoiceNumber": self.invoice_number,
            "organizationId": str(self.organization_id),
            "type": self.type_value,
            "planId": str(self.plan_id) if self.plan_id else None,
            "planName": self.plan.name if self.plan else None,
            "credits": credits.to_dict() if credits else None,
            "amount": self.amount,
            "taxAmount": self.tax_amount,
            "discountAmount": self.discount_amount,
            "totalAmount": self.total_amount,
            "currency": self.currency,
            "status": self.status_value,
            "issueDate": isoformat(self.issue_date),
            "dueDate": isoformat(self.due_date),
            "paidDate": isoformat(self.paid_date),
            "description": self.description,
            "notes": self.notes,
            "paystack": {
                "reference": self.paystack_reference,
                "channel": self.channel,
                "cardType": self.card_type,
                "lastFourDigits": self.last_four_digits,
                "bank": self.bank,
            },
            "createdAt": isoformat(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Invoice(number={self.invoice_number}, status={self.status})>"
