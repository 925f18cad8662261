"""
SifaPass Billing - Billing Coordinator

Orchestrates the payment state machine:

    create invoice (pending)
        -> gateway initialize -> processing
        -> gateway verify     -> paid   (+ organization update, same commit)
                              -> failed (declined by the gateway)

Verification is idempotent. The invoice status is the single source of
truth for whether a payment has been applied: the processing -> paid
compare-and-set and the organization update are committed together, so
any replay (frontend callback twice, webhook redelivery, concurrent
requests) finds the invoice already paid and returns the same projection
without touching the ledger again.

Each public operation is one unit of work: it commits on success and
rolls back on any exception.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from sifapass.config import settings
from sifapass.models.enums import InvoiceStatus, InvoiceType, PlanType, SubscriptionStatus, UsageMetric
from sifapass.models.invoice import Invoice
from sifapass.models.organization import Organization, UsageCounters
from sifapass.services.accounts import AccountService
from sifapass.services.credit_ledger import CreditLedger, DebitResult
from sifapass.services.invoice_store import InvoiceStore
from sifapass.services.paystack_gateway import (
    GatewayPaymentStatus,
    GatewayVerification,
    PaymentGateway,
    PaystackGateway,
)
from sifapass.services.plan_catalog import PlanCatalog
from sifapass.services.proration import ProrationQuote, calculate_proration
from sifapass.utils.error_handling import (
    BusinessRuleException,
    ConflictException,
    ErrorCode,
    InvoiceNotFoundException,
    InvoiceStateConflictException,
    NoActiveSubscriptionException,
    PaymentDeclinedException,
    PaymentNotCompletedException,
    SignatureInvalidException,
    ValidationException,
)
from sifapass.utils.timeutils import ensure_utc, isoformat, unix_millis, utcnow

logger = logging.getLogger(__name__)


# Bonus credits for exact package sizes
CREDIT_BONUS_TIERS = {
    1000: 100,
    2500: 300,
    5000: 750,
}

# Optimistic-concurrency retries for read-modify-write on the organization
MAX_VERSION_RETRIES = 3


def calculate_bonus_credits(quantity: int) -> int:
    return CREDIT_BONUS_TIERS.get(quantity, 0)


def build_subscription_reference(plan_id: uuid.UUID) -> str:
    return f"SUB_{unix_millis()}_{plan_id}"


def build_credit_reference(organization_id: uuid.UUID) -> str:
    return f"CREDIT_{unix_millis()}_{organization_id}"


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class CheckoutSession:
    """Result of a successful payment initialization."""
    invoice: Invoice
    authorization_url: str
    access_code: str
    reference: str

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "invoiceId": str(self.invoice.id),
            "invoiceNumber": self.invoice.invoice_number,
            "authorizationUrl": self.authorization_url,
            "accessCode": self.access_code,
            "reference": self.reference,
            "amount": self.invoice.total_amount,
        }
        credits = self.invoice.credits
        if credits is not None:
            data["credits"] = credits.to_dict()
        return data


@dataclass
class VerificationOutcome:
    """Projection returned by verify_payment."""
    already_processed: bool
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        if self.already_processed:
            return "Payment already processed"
        return "Payment verified successfully"


@dataclass
class WebhookAck:
    event: Optional[str]
    handled: bool
    reference: Optional[str] = None
    already_processed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event,
            "handled": self.handled,
            "reference": self.reference,
            "alreadyProcessed": self.already_processed,
        }


class BillingCoordinator:
    """
    Billing state machine.

    Args:
        db: Async session; the coordinator commits and rolls it back
        gateway: Payment gateway, Paystack by default
    """

    def __init__(self, db: AsyncSession, gateway: Optional[PaymentGateway] = None):
        self.db = db
        self.gateway = gateway or PaystackGateway()
        self.accounts = AccountService(db)
        self.catalog = PlanCatalog(db)
        self.invoices = InvoiceStore(db)
        self.ledger = CreditLedger(db)

    # =========================================================================
    # INITIALIZATION
    # =========================================================================

    async def initialize_subscription(self, admin_id: uuid.UUID, plan_id: uuid.UUID) -> CheckoutSession:
        """Create a subscription invoice and open a Paystack checkout for it."""
        admin = await self.accounts.get_admin(admin_id)
        organization = await self.accounts.organization_for_admin(admin)
        plan = await self.catalog.get_plan(plan_id)
        if not plan.is_active:
            raise ValidationException(f"Plan '{plan.name}' is not available for purchase", field="planId")

        reference = build_subscription_reference(plan.id)
        try:
            invoice = await self.invoices.create(
                organization_id=organization.id,
                invoice_type=InvoiceType.SUBSCRIPTION,
                amount=plan.price,
                currency=plan.currency,
                plan_id=plan.id,
                description=f"{plan.name} plan subscription ({plan.billing_cycle.value})",
                paystack_reference=reference,
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Subscription invoice {invoice.invoice_number} for {organization.email}: plan={plan.name}, ref={reference}")

        return await self._open_checkout(
            invoice,
            email=organization.email,
            metadata={
                "invoiceId": str(invoice.id),
                "organizationId": str(organization.id),
                "type": InvoiceType.SUBSCRIPTION.value,
                "planId": str(plan.id),
                "planName": plan.name,
            },
        )

    async def initialize_credit_purchase(self, admin_id: uuid.UUID, quantity: int, price: int) -> CheckoutSession:
        """Create a credit-purchase invoice (with tiered bonus) and open a checkout."""
        if quantity <= 0 or price <= 0:
            raise ValidationException("creditPackage with quantity and price is required", field="creditPackage")

        admin = await self.accounts.get_admin(admin_id)
        bonus_credits = calculate_bonus_credits(quantity)
        total_credits = quantity + bonus_credits

        try:
            organization = await self.accounts.ensure_organization_for_admin(admin)
            if price != quantity * organization.credit_rate:
                logger.warning(
                    f"Credit package price {price} differs from list price "
                    f"{quantity * organization.credit_rate} for {quantity} credits"
                )

            reference = build_credit_reference(organization.id)
            description = f"Purchase of {quantity} credits"
            if bonus_credits:
                description += f" (+{bonus_credits} bonus)"

            invoice = await self.invoices.create(
                organization_id=organization.id,
                invoice_type=InvoiceType.CREDIT_PURCHASE,
                amount=price,
                currency=settings.default_currency,
                credit_quantity=quantity,
                bonus_credits=bonus_credits,
                description=description,
                paystack_reference=reference,
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Credit invoice {invoice.invoice_number}: {quantity} + {bonus_credits} bonus = {total_credits} credits, ref={reference}")

        return await self._open_checkout(
            invoice,
            email=organization.email,
            metadata={
                "invoiceId": str(invoice.id),
                "organizationId": str(organization.id),
                "type": InvoiceType.CREDIT_PURCHASE.value,
                "credits": total_credits,
            },
        )

    async def _open_checkout(self, invoice: Invoice, email: str, metadata: Dict[str, Any]) -> CheckoutSession:
        """
        Initialize the gateway for a committed pending invoice.

        A gateway failure leaves the invoice pending and propagates.
        """
        reference = invoice.paystack_reference
        try:
            session = await self.gateway.initialize(
                email=email,
                amount_kobo=invoice.total_amount * 100,
                reference=reference,
                callback_url=settings.payment_callback_url,
                metadata=metadata,
            )
        except Exception:
            logger.warning(f"Gateway initialization failed for {invoice.invoice_number}; invoice left pending")
            raise

        try:
            moved = await self.invoices.transition(
                invoice.id,
                InvoiceStatus.PENDING,
                InvoiceStatus.PROCESSING,
                authorization_url=session.authorization_url,
                access_code=session.access_code,
            )
            if not moved:
                actual = await self.invoices.current_status(invoice.id)
                raise InvoiceStateConflictException(invoice.invoice_number, InvoiceStatus.PENDING.value, _value(actual))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        invoice = await self.invoices.get(invoice.id)
        logger.info(f"Payment initialized: {invoice.invoice_number} is processing, ref={reference}")

        return CheckoutSession(
            invoice=invoice,
            authorization_url=session.authorization_url,
            access_code=session.access_code,
            reference=reference,
        )

    # =========================================================================
    # VERIFICATION
    # =========================================================================

    async def verify_payment(self, reference: Optional[str]) -> VerificationOutcome:
        """
        Confirm a payment with the gateway and apply it exactly once.

        Raises:
            ValidationException: No reference given
            PaymentDeclinedException: Gateway reports failure (invoice -> failed)
            PaymentNotCompletedException: Payment abandoned or still pending
            InvoiceNotFoundException: No invoice carries this reference
            InvoiceStateConflictException: Invoice is failed or cancelled
        """
        if not reference:
            raise ValidationException("Payment reference is required", field="reference")

        verification = await self.gateway.verify(reference)

        if verification.status == GatewayPaymentStatus.FAILED:
            await self._record_failure(reference, verification)
            raise PaymentDeclinedException(
                reference,
                verification.status.value,
                message=f"Payment verification failed: {verification.gateway_response or 'declined'}",
            )
        if not verification.is_successful:
            logger.info(f"Payment {reference} not completed (status={verification.status.value})")
            raise PaymentNotCompletedException(reference, verification.status.value)

        invoice = await self.invoices.find_by_reference(reference)
        if invoice is None:
            raise InvoiceNotFoundException(reference=reference)

        if invoice.status == InvoiceStatus.PAID:
            logger.info(f"Invoice {invoice.invoice_number} already processed")
            return await self._paid_projection(invoice, already_processed=True)

        expected_kobo = invoice.total_amount * 100
        if verification.amount_kobo != expected_kobo:
            logger.warning(
                f"Amount mismatch for {reference}: gateway={verification.amount_kobo} kobo, "
                f"invoice={expected_kobo} kobo"
            )

        invoice_id = invoice.id
        try:
            applied = await self._settle(invoice, verification)
        except Exception:
            await self.db.rollback()
            raise

        invoice = await self.invoices.get(invoice_id)
        return await self._paid_projection(invoice, already_processed=not applied)

    async def _settle(self, invoice: Invoice, verification: GatewayVerification) -> bool:
        """
        Compare-and-set the invoice to paid and apply its effect in one commit.

        Returns:
            True if this call applied the payment, False if another request did
        """
        now = utcnow()
        authorization = verification.authorization
        patch = {
            "paid_date": now,
            "transaction_id": verification.transaction_id or verification.reference,
            "paid_at": verification.paid_at or now,
            "channel": verification.channel,
            "ip_address": verification.ip_address,
            "fees_kobo": verification.fees_kobo,
            "card_type": authorization.card_type,
            "last_four_digits": authorization.last4,
            "bank": authorization.bank,
        }

        for from_status in (InvoiceStatus.PROCESSING, InvoiceStatus.PENDING):
            if await self.invoices.transition(invoice.id, from_status, InvoiceStatus.PAID, **patch):
                await self._apply_payment(invoice, verification, now)
                await self.db.commit()
                logger.info(f"Invoice {invoice.invoice_number} paid ({invoice.type_value}), ref={verification.reference}")
                return True

            actual = await self.invoices.current_status(invoice.id)
            if actual == InvoiceStatus.PAID:
                await self.db.commit()
                logger.info(f"Invoice {invoice.invoice_number} was settled by a concurrent request")
                return False
            if actual != InvoiceStatus.PENDING:
                break

        logger.error(f"Cannot settle invoice {invoice.invoice_number}: status is {_value(actual)}")
        raise InvoiceStateConflictException(invoice.invoice_number, InvoiceStatus.PROCESSING.value, _value(actual))

    async def _apply_payment(self, invoice: Invoice, verification: GatewayVerification, now) -> None:
        if invoice.type == InvoiceType.CREDIT_PURCHASE:
            await self.ledger.credit(invoice.organization_id, invoice.total_credits or 0)
            return

        if invoice.plan_id is None:
            raise ConflictException(
                f"Invoice {invoice.invoice_number} has no plan to activate",
                resource_type="Invoice",
            )
        activated = await self._activate_subscription(
            organization_id=invoice.organization_id,
            plan_id=invoice.plan_id,
            start=now,
            card_type=verification.authorization.card_type,
            last_four=verification.authorization.last4,
            bank=verification.authorization.bank,
            authorization_code=verification.authorization.authorization_code,
        )
        if not activated:
            logger.info(f"Invoice {invoice.invoice_number} superseded by a later subscription payment")

    async def _activate_subscription(
        self,
        organization_id: uuid.UUID,
        plan_id: uuid.UUID,
        start,
        card_type: Optional[str] = None,
        last_four: Optional[str] = None,
        bank: Optional[str] = None,
        authorization_code: Optional[str] = None,
    ) -> bool:
        """
        Make ``plan_id`` the organization's active plan for one period from ``start``.

        Skipped when a subscription paid later than ``start`` is already
        recorded (last writer by payment time wins).
        """
        end = start + timedelta(days=settings.subscription_period_days)
        values = {
            "current_plan_id": plan_id,
            "plan_type": PlanType.SUBSCRIPTION,
            "subscription_status": SubscriptionStatus.ACTIVE,
            "subscription_start_date": start,
            "subscription_end_date": end,
            "cancel_at_period_end": False,
            "last_billing_date": start,
            "next_billing_date": end,
            "version": Organization.version + 1,
        }
        if last_four:
            values.update(card_type=card_type, card_last_four=last_four, card_bank=bank)
        if authorization_code:
            values["paystack_authorization_code"] = authorization_code

        result = await self.db.execute(
            update(Organization)
            .where(
                Organization.id == organization_id,
                or_(Organization.last_billing_date.is_(None), Organization.last_billing_date <= start),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _record_failure(self, reference: str, verification: GatewayVerification) -> None:
        """Move a declined invoice to failed. Already-terminal invoices are left alone."""
        invoice = await self.invoices.find_by_reference(reference)
        if invoice is None:
            return
        reason = verification.gateway_response or "Declined by payment gateway"
        try:
            for from_status in (InvoiceStatus.PROCESSING, InvoiceStatus.PENDING):
                if await self.invoices.transition(invoice.id, from_status, InvoiceStatus.FAILED, failure_reason=reason):
                    await self.db.commit()
                    logger.warning(f"Invoice {invoice.invoice_number} failed: {reason}")
                    return
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def _paid_projection(self, invoice: Invoice, already_processed: bool) -> VerificationOutcome:
        organization = await self.accounts.get_organization(invoice.organization_id)

        org_data: Dict[str, Any] = {"planType": PlanType(organization.plan_type).value}
        if invoice.type == InvoiceType.SUBSCRIPTION:
            subscription = organization.subscription
            org_data["currentPlan"] = organization.current_plan.name if organization.current_plan else None
            org_data["subscription"] = {
                "status": SubscriptionStatus(subscription.status).value,
                "startDate": isoformat(subscription.start_date),
                "endDate": isoformat(subscription.end_date),
            }
        else:
            org_data["credits"] = {
                "available": organization.credits_available,
                "used": organization.credits_used,
                "creditRate": organization.credit_rate,
                "purchased": invoice.total_credits or 0,
            }

        data = {
            "invoice": {
                "id": str(invoice.id),
                "invoiceNumber": invoice.invoice_number,
                "amount": invoice.total_amount,
                "status": invoice.status_value,
                "paidDate": isoformat(invoice.paid_date),
                "type": invoice.type_value,
            },
            "transaction": {
                "reference": invoice.paystack_reference,
                "transactionId": invoice.transaction_id,
                "amount": invoice.total_amount,
                "channel": invoice.channel,
                "paidAt": isoformat(invoice.paid_at),
            },
            "organization": org_data,
        }
        return VerificationOutcome(already_processed=already_processed, data=data)

    # =========================================================================
    # WEBHOOK
    # =========================================================================

    async def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> WebhookAck:
        """
        Authenticate and process a Paystack webhook delivery.

        ``raw_body`` must be the exact bytes received.
        """
        if not self.gateway.verify_webhook_signature(raw_body, signature):
            logger.warning("Rejected Paystack webhook with invalid signature")
            raise SignatureInvalidException()

        try:
            event = json.loads(raw_body)
        except ValueError:
            raise ValidationException("Webhook payload is not valid JSON")
        if not isinstance(event, dict):
            raise ValidationException("Webhook payload must be a JSON object")

        name = event.get("event")
        data = event.get("data") if isinstance(event.get("data"), dict) else {}
        logger.info(f"Paystack webhook event: {name}")

        if name != "charge.success":
            logger.info(f"Unhandled webhook event acknowledged: {name}")
            return WebhookAck(event=name, handled=False)

        reference = data.get("reference")
        if not reference:
            raise ValidationException("charge.success event has no reference", field="data.reference")

        try:
            outcome = await self.verify_payment(reference)
        except InvoiceNotFoundException:
            logger.warning(f"charge.success for unknown reference {reference} acknowledged")
            return WebhookAck(event=name, handled=False, reference=reference)

        return WebhookAck(
            event=name,
            handled=True,
            reference=reference,
            already_processed=outcome.already_processed,
        )

    # =========================================================================
    # SUBSCRIPTION MANAGEMENT
    # =========================================================================

    async def switch_plan(self, admin_id: uuid.UUID, new_plan_id: uuid.UUID) -> Dict[str, Any]:
        """Quote a plan change. Does not modify any state."""
        admin = await self.accounts.get_admin(admin_id)
        organization = await self.accounts.organization_for_admin(admin)
        new_plan = await self.catalog.get_plan(new_plan_id)

        current_plan = None
        if organization.current_plan_id is not None:
            current_plan = await self.catalog.find_plan(organization.current_plan_id)

        subscription = organization.subscription
        if current_plan is not None and subscription.status == SubscriptionStatus.ACTIVE:
            quote = calculate_proration(
                new_price=new_plan.price,
                current_price=current_plan.price,
                start_date=subscription.start_date,
                end_date=subscription.end_date,
            )
        else:
            quote = calculate_proration(new_price=new_plan.price)

        logger.info(
            f"Plan switch quote for {organization.email}: "
            f"{current_plan.name if current_plan else None} -> {new_plan.name}, "
            f"{quote.proration_type.value} {quote.amount}"
        )
        return _switch_plan_payload(current_plan, new_plan, quote)

    async def cancel_subscription(self, admin_id: uuid.UUID, cancel_immediately: bool = False) -> Dict[str, Any]:
        """
        Cancel now, or flag the subscription to lapse at the end of the period.

        Raises:
            NoActiveSubscriptionException: If the organization is not on a subscription
        """
        admin = await self.accounts.get_admin(admin_id)
        organization = await self.accounts.organization_for_admin(admin)
        organization_id = organization.id

        for attempt in range(MAX_VERSION_RETRIES):
            if attempt:
                organization = await self.accounts.get_organization(organization_id)
            if organization.plan_type != PlanType.SUBSCRIPTION:
                raise NoActiveSubscriptionException()

            now = utcnow()
            if cancel_immediately:
                values = {
                    "subscription_status": SubscriptionStatus.CANCELLED,
                    "subscription_end_date": now,
                    "plan_type": PlanType.PAY_AS_YOU_GO,
                    "current_plan_id": None,
                    "next_billing_date": None,
                }
            else:
                values = {"cancel_at_period_end": True}

            try:
                result = await self.db.execute(
                    update(Organization)
                    .where(
                        Organization.id == organization.id,
                        Organization.version == organization.version,
                    )
                    .values(version=Organization.version + 1, **values)
                    .execution_options(synchronize_session=False)
                )
                await self.db.commit()
                if result.rowcount == 1:
                    break
            except Exception:
                await self.db.rollback()
                raise
            logger.warning(f"Concurrent billing update on {organization_id}; retrying cancellation ({attempt + 1})")
        else:
            raise ConflictException(
                "Organization billing changed concurrently, please retry",
                resource_type="Organization",
                code=ErrorCode.VERSION_CONFLICT,
            )

        organization = await self.accounts.get_organization(organization_id)
        subscription = organization.subscription
        logger.info(
            f"Subscription for {organization.email} "
            f"{'cancelled immediately' if cancel_immediately else 'set to cancel at period end'}"
        )
        return {
            "status": SubscriptionStatus(subscription.status).value,
            "endDate": isoformat(subscription.end_date),
            "cancelAtPeriodEnd": subscription.cancel_at_period_end,
        }

    async def lapse_expired_subscription(self, organization_id: uuid.UUID) -> bool:
        """Mark an active subscription whose period has ended as inactive."""
        try:
            result = await self.db.execute(
                update(Organization)
                .where(
                    Organization.id == organization_id,
                    Organization.plan_type == PlanType.SUBSCRIPTION,
                    Organization.subscription_status == SubscriptionStatus.ACTIVE,
                    Organization.subscription_end_date < utcnow(),
                )
                .values(
                    subscription_status=SubscriptionStatus.INACTIVE,
                    version=Organization.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        lapsed = result.rowcount == 1
        if lapsed:
            logger.info(f"Subscription for organization {organization_id} expired; marked inactive")
        return lapsed

    async def activate_paid_subscription(self, admin_id: uuid.UUID, invoice_id: uuid.UUID) -> Dict[str, Any]:
        """
        Re-apply activation for a paid subscription invoice whose effect was lost.

        Idempotent: the period is anchored on the invoice's paid date.
        """
        admin = await self.accounts.get_admin(admin_id)
        organization = await self.accounts.organization_for_admin(admin)
        invoice = await self.invoices.get(invoice_id, organization_id=organization.id)

        if invoice.type != InvoiceType.SUBSCRIPTION:
            raise BusinessRuleException("Only subscription invoices can be activated", rule="SUBSCRIPTION_INVOICE_REQUIRED")
        if invoice.status != InvoiceStatus.PAID:
            raise BusinessRuleException(
                f"Invoice is not paid. Status: {invoice.status_value}",
                rule="PAID_INVOICE_REQUIRED",
            )
        if invoice.plan_id is None:
            raise ConflictException(f"Invoice {invoice.invoice_number} has no plan to activate", resource_type="Invoice")

        start = ensure_utc(invoice.paid_date) or utcnow()
        try:
            activated = await self._activate_subscription(
                organization_id=organization.id,
                plan_id=invoice.plan_id,
                start=start,
                card_type=invoice.card_type,
                last_four=invoice.last_four_digits,
                bank=invoice.bank,
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        if not activated:
            raise ConflictException(
                "A more recent subscription payment is already active",
                resource_type="Organization",
            )

        organization = await self.accounts.get_organization(organization.id)
        logger.info(f"Subscription re-activated from invoice {invoice.invoice_number}")
        return {
            "planType": PlanType(organization.plan_type).value,
            "currentPlan": str(organization.current_plan_id) if organization.current_plan_id else None,
            "subscription": organization.subscription.to_dict(),
            "invoice": {
                "id": str(invoice.id),
                "invoiceNumber": invoice.invoice_number,
                "status": invoice.status_value,
                "paidDate": isoformat(invoice.paid_date),
            },
        }

    # =========================================================================
    # LEDGER AND USAGE
    # =========================================================================

    async def debit_credit_ledger(self, organization_id: uuid.UUID, amount: int = 1) -> DebitResult:
        """Consume prepaid credits for credential issuance (pay-as-you-go only)."""
        try:
            result = await self.ledger.debit(organization_id, amount)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return result

    async def record_usage(self, organization_id: uuid.UUID, metric: UsageMetric, amount: int = 1) -> UsageCounters:
        """Meter events created or participants added."""
        try:
            counters = await self.ledger.record_usage(organization_id, metric, amount)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return counters


def _value(status: Optional[InvoiceStatus]) -> Optional[str]:
    return InvoiceStatus(status).value if status is not None else None


def _switch_plan_payload(current_plan, new_plan, quote: ProrationQuote) -> Dict[str, Any]:
    return {
        "currentPlan": {
            "id": str(current_plan.id),
            "name": current_plan.name,
            "price": current_plan.price,
        } if current_plan else None,
        "newPlan": {
            "id": str(new_plan.id),
            "name": new_plan.name,
            "price": new_plan.price,
        },
        "proration": quote.to_dict(),
    }
