"""
Reconcile an invoice that is stuck in pending or processing.

Asks Paystack for the transaction status and runs the same idempotent
settlement as the /billing/verify endpoint, so credits or the
subscription are applied at most once even if a webhook lands at the
same time.

Usage:
    python scripts/reconcile_invoice.py --reference CREDIT_1718000000000_<org-id>
    python scripts/reconcile_invoice.py --invoice-number INV-00008-0394 --organization-id <org-id>
"""
import argparse
import asyncio
import sys
import uuid
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from sifapass.database import async_session_maker, close_db
from sifapass.models.invoice import Invoice
from sifapass.services.billing_coordinator import BillingCoordinator
from sifapass.utils.error_handling import AppException


async def find_reference(invoice_number: str, organization_id: uuid.UUID) -> str:
    async with async_session_maker() as db:
        result = await db.execute(
            select(Invoice.paystack_reference).where(
                Invoice.invoice_number == invoice_number,
                Invoice.organization_id == organization_id,
            )
        )
        reference = result.scalar_one_or_none()
    if not reference:
        raise SystemExit(f"No Paystack reference recorded for invoice {invoice_number}")
    return reference


async def reconcile(reference: str) -> int:
    print(f"Reconciling payment {reference}...")
    async with async_session_maker() as db:
        coordinator = BillingCoordinator(db)
        try:
            outcome = await coordinator.verify_payment(reference)
        except AppException as exc:
            print(f"  Not reconciled: {exc.code.value} - {exc.message}")
            return 1

    invoice = outcome.data["invoice"]
    print(f"  {outcome.message}")
    print(f"  Invoice {invoice['invoiceNumber']}: {invoice['status']} ({invoice['amount']:,})")

    organization = outcome.data["organization"]
    if "credits" in organization:
        print(f"  Credits available: {organization['credits']['available']}")
    else:
        print(f"  Plan: {organization.get('currentPlan')}, status: {organization['subscription']['status']}")
    return 0


async def main():
    parser = argparse.ArgumentParser(description="Reconcile a stuck invoice with Paystack")
    parser.add_argument("--reference", type=str, help="Paystack transaction reference")
    parser.add_argument("--invoice-number", type=str, help="Invoice number, e.g. INV-00008-0394")
    parser.add_argument("--organization-id", type=str, help="Organization owning the invoice number")
    args = parser.parse_args()

    if args.reference:
        reference = args.reference
    elif args.invoice_number and args.organization_id:
        reference = await find_reference(args.invoice_number, uuid.UUID(args.organization_id))
    else:
        parser.error("pass --reference, or --invoice-number with --organization-id")

    code = await reconcile(reference)
    await close_db()
    sys.exit(code)


if __name__ == "__main__":
    asyncio.run(main())
