"""
SifaPass Billing - Invoice Store

Append-then-mutate persistence for invoices.

Invoice numbers come from a per-organization counter incremented with a
single UPDATE ... RETURNING, so two concurrent allocations can never see
the same ordinal. Status changes go through ``transition``, a
compare-and-set that only succeeds when the row is still in the expected
state; this is what makes payment verification idempotent.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sifapass.config import settings
from sifapass.models.enums import InvoiceStatus, InvoiceType
from sifapass.models.invoice import Invoice
from sifapass.models.organization import Organization
from sifapass.utils.error_handling import InvoiceNotFoundException, OrganizationNotFoundException
from sifapass.utils.timeutils import ensure_utc, unix_millis, utcnow

logger = logging.getLogger(__name__)


# Legal status changes. Nothing leaves a terminal state or returns to pending.
ALLOWED_TRANSITIONS = {
    status: set() if status.is_terminal else {
        target for target in InvoiceStatus
        if target not in (status, InvoiceStatus.PENDING)
    }
    for status in InvoiceStatus
}


def format_invoice_number(ordinal: int, millis: Optional[int] = None) -> str:
    """INV-<5-digit ordinal>-<last 4 digits of the unix ms clock>."""
    if millis is None:
        millis = unix_millis()
    return f"INV-{ordinal:05d}-{millis % 10000:04d}"


class InvoiceStore:
    """Data access for invoices. Callers own the transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def allocate_invoice_number(self, organization_id: uuid.UUID) -> str:
        """
        Reserve the next invoice number for an organization.

        The counter row stays locked until the caller's transaction ends.

        Raises:
            OrganizationNotFoundException: If the organization does not exist
        """
        result = await self.db.execute(
            update(Organization)
            .where(Organization.id == organization_id)
            .values(invoice_sequence=Organization.invoice_sequence + 1)
            .returning(Organization.invoice_sequence)
            .execution_options(synchronize_session=False)
        )
        ordinal = result.scalar_one_or_none()
        if ordinal is None:
            raise OrganizationNotFoundException(organization_id)
        return format_invoice_number(ordinal)

    async def create(
        self,
        organization_id: uuid.UUID,
        invoice_type: InvoiceType,
        amount: int,
        currency: str = "NGN",
        plan_id: Optional[uuid.UUID] = None,
        credit_quantity: Optional[int] = None,
        bonus_credits: Optional[int] = None,
        tax_amount: int = 0,
        discount_amount: int = 0,
        description: Optional[str] = None,
        notes: Optional[str] = None,
        paystack_reference: Optional[str] = None,
        due_date: Optional[datetime] = None,
    ) -> Invoice:
        """Create a new invoice in ``pending``."""
        invoice_number = await self.allocate_invoice_number(organization_id)
        now = utcnow()

        total_credits = None
        if invoice_type == InvoiceType.CREDIT_PURCHASE:
            credit_quantity = credit_quantity or 0
            bonus_credits = bonus_credits or 0
            total_credits = credit_quantity + bonus_credits

        invoice = Invoice(
            invoice_number=invoice_number,
            organization_id=organization_id,
            type=invoice_type,
            plan_id=plan_id,
            credit_quantity=credit_quantity,
            bonus_credits=bonus_credits,
            total_credits=total_credits,
            amount=amount,
            tax_amount=tax_amount,
            discount_amount=discount_amount,
            total_amount=amount + tax_amount - discount_amount,
            currency=currency,
            status=InvoiceStatus.PENDING,
            issue_date=now,
            due_date=due_date or now + timedelta(days=settings.invoice_due_days),
            description=description,
            notes=notes,
            paystack_reference=paystack_reference,
        )
        self.db.add(invoice)
        await self.db.flush()

        logger.info(f"Invoice {invoice_number} created ({InvoiceType(invoice_type).value}, {invoice.total_amount} {currency})")
        return invoice

    async def get(self, invoice_id: uuid.UUID, organization_id: Optional[uuid.UUID] = None) -> Invoice:
        """
        Load an invoice, bypassing the identity map.

        Raises:
            InvoiceNotFoundException: If missing, or owned by another organization
        """
        query = select(Invoice).where(Invoice.id == invoice_id)
        if organization_id is not None:
            query = query.where(Invoice.organization_id == organization_id)
        result = await self.db.execute(query.execution_options(populate_existing=True))
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundException(invoice_id)
        return invoice

    async def find_by_reference(self, reference: str) -> Optional[Invoice]:
        result = await self.db.execute(
            select(Invoice)
            .where(Invoice.paystack_reference == reference)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def transition(
        self,
        invoice_id: uuid.UUID,
        from_status: InvoiceStatus,
        to_status: InvoiceStatus,
        **patch: Any,
    ) -> bool:
        """
        Compare-and-set the invoice status.

        Applies ``patch`` together with the new status only if the row is
        still in ``from_status``.

        Returns:
            True if this call performed the transition

        Raises:
            ValueError: If the transition is not part of the lifecycle
        """
        if to_status not in ALLOWED_TRANSITIONS[InvoiceStatus(from_status)]:
            raise ValueError(f"Illegal invoice transition {from_status} -> {to_status}")

        result = await self.db.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.status == from_status)
            .values(status=to_status, updated_at=utcnow(), **patch)
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1
        if applied:
            logger.debug(f"Invoice {invoice_id}: {from_status.value} -> {to_status.value}")
        return applied

    async def current_status(self, invoice_id: uuid.UUID) -> Optional[InvoiceStatus]:
        return await self.db.scalar(select(Invoice.status).where(Invoice.id == invoice_id))

    async def list_for_organization(
        self,
        organization_id: uuid.UUID,
        page: int = 1,
        limit: int = 20,
        status: Optional[InvoiceStatus] = None,
    ) -> Tuple[List[Invoice], int]:
        """Newest-first page of an organization's invoices and the total count."""
        filters = [Invoice.organization_id == organization_id]
        if status is not None:
            filters.append(Invoice.status == status)

        total = await self.db.scalar(select(func.count(Invoice.id)).where(*filters))

        result = await self.db.execute(
            select(Invoice)
            .where(*filters)
            .order_by(Invoice.created_at.desc(), Invoice.invoice_number.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all()), total or 0

    async def recent(self, organization_id: uuid.UUID, limit: int = 10) -> List[Invoice]:
        invoices, _ = await self.list_for_organization(organization_id, page=1, limit=limit)
        return invoices

    async def statistics(self, organization_id: uuid.UUID) -> Dict[str, int]:
        """Aggregate counts and paid total for the dashboard."""
        now = utcnow()
        rows = await self.db.execute(
            select(Invoice.status, Invoice.due_date, Invoice.total_amount)
            .where(Invoice.organization_id == organization_id)
        )

        stats = {"total": 0, "paid": 0, "pending": 0, "overdue": 0, "total_spent": 0}
        for status, due_date, total_amount in rows:
            stats["total"] += 1
            if status == InvoiceStatus.PAID:
                stats["paid"] += 1
                stats["total_spent"] += total_amount
            elif status == InvoiceStatus.PENDING:
                stats["pending"] += 1
                if due_date is not None and ensure_utc(due_date) < now:
                    stats["overdue"] += 1
        return stats
