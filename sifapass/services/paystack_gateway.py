"""
SifaPass Billing - Paystack Payment Gateway

Thin client for the Paystack transaction API:
- initialize: create a checkout session
- verify: ask Paystack for the authoritative outcome of a reference
- verify_webhook_signature: authenticate a webhook delivery

The secret key is looked up from the environment on every call so a
rotated key takes effect without a restart. Failures are raised as
classified exceptions:

- GatewayConfigurationException: Paystack answered 401 (bad key)
- PaymentGatewayException: timeout, network error or 5xx (retryable)
- PaymentGatewayRejectedException: any other 4xx, or a malformed answer

Paystack API docs: https://paystack.com/docs/api/
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from sifapass.config import get_paystack_secret_key, settings
from sifapass.utils.error_handling import (
    GatewayConfigurationException,
    PaymentGatewayException,
    PaymentGatewayRejectedException,
)
from sifapass.utils.security import verify_paystack_signature

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS AND DATA CLASSES
# =============================================================================

class GatewayPaymentStatus(str, Enum):
    """Outcome of a verification, normalized from Paystack's vocabulary."""
    SUCCESS = "success"
    FAILED = "failed"
    ABANDONED = "abandoned"
    PENDING = "pending"


# Paystack transaction status -> normalized status
PAYSTACK_STATUS_MAP = {
    "success": GatewayPaymentStatus.SUCCESS,
    "failed": GatewayPaymentStatus.FAILED,
    "reversed": GatewayPaymentStatus.FAILED,
    "abandoned": GatewayPaymentStatus.ABANDONED,
    "pending": GatewayPaymentStatus.PENDING,
    "ongoing": GatewayPaymentStatus.PENDING,
    "processing": GatewayPaymentStatus.PENDING,
    "queued": GatewayPaymentStatus.PENDING,
}


@dataclass
class GatewayInitialization:
    """Checkout session returned by ``initialize``."""
    authorization_url: str
    access_code: str
    reference: str


@dataclass
class CardAuthorization:
    authorization_code: Optional[str] = None
    card_type: Optional[str] = None
    last4: Optional[str] = None
    bank: Optional[str] = None

    @classmethod
    def from_paystack(cls, data: Optional[Dict[str, Any]]) -> "CardAuthorization":
        data = data or {}
        card_type = data.get("card_type")
        return cls(
            authorization_code=data.get("authorization_code"),
            card_type=card_type.strip() if isinstance(card_type, str) else card_type,
            last4=data.get("last4"),
            bank=data.get("bank"),
        )


@dataclass
class GatewayVerification:
    """Authoritative transaction state from ``verify``."""
    reference: str
    status: GatewayPaymentStatus
    amount_kobo: int = 0
    currency: str = "NGN"
    transaction_id: Optional[str] = None
    channel: Optional[str] = None
    paid_at: Optional[datetime] = None
    fees_kobo: Optional[int] = None
    ip_address: Optional[str] = None
    gateway_response: Optional[str] = None
    authorization: CardAuthorization = field(default_factory=CardAuthorization)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_successful(self) -> bool:
        return self.status == GatewayPaymentStatus.SUCCESS

    @property
    def amount(self) -> float:
        """Amount in Naira."""
        return self.amount_kobo / 100


def parse_paystack_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        logger.warning(f"Unparseable Paystack timestamp: {value!r}")
        return None


# =============================================================================
# GATEWAY
# =============================================================================

class PaymentGateway(ABC):
    """Interface the billing coordinator depends on."""

    @abstractmethod
    async def initialize(
        self,
        email: str,
        amount_kobo: int,
        reference: str,
        callback_url: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> GatewayInitialization:
        """Create a checkout session."""
        pass

    @abstractmethod
    async def verify(self, reference: str) -> GatewayVerification:
        """Fetch the authoritative outcome of a payment."""
        pass

    @abstractmethod
    def verify_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        """Check a webhook delivery against its signature header."""
        pass


class PaystackGateway(PaymentGateway):
    """
    Paystack gateway for Nigerian Naira transactions.

    Uses httpx with a per-request timeout. No key is held on the instance.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.paystack_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.paystack_timeout_seconds

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for Paystack API requests, with a freshly read key."""
        return {
            "Authorization": f"Bearer {get_paystack_secret_key()}",
            "Content-Type": "application/json",
        }

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make an HTTP request to Paystack API.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint (e.g., /transaction/initialize)
            data: Request body for POST/PUT
            params: Query parameters for GET

        Returns:
            The ``data`` member of a successful Paystack envelope

        Raises:
            GatewayConfigurationException: On 401
            PaymentGatewayException: On timeout, network error or 5xx
            PaymentGatewayRejectedException: On other 4xx or a failed envelope
        """
        url = f"{self.base_url}{endpoint}"
        headers = self._get_headers()

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=headers,
                    json=data,
                    params=params,
                )
        except httpx.TimeoutException as e:
            logger.error(f"Paystack API timeout: {method} {endpoint}")
            raise PaymentGatewayException("Request timed out. Please try again.", original_error=e)
        except httpx.RequestError as e:
            logger.error(f"Paystack API request error: {e}")
            raise PaymentGatewayException(f"Network error: {e}", original_error=e)

        logger.debug(f"Paystack {method} {endpoint}: status={response.status_code}")

        try:
            result = response.json()
        except ValueError:
            result = {}
        message = result.get("message") if isinstance(result, dict) else None

        if response.status_code == 401:
            logger.error("Paystack rejected the configured secret key (401)")
            raise GatewayConfigurationException()
        if response.status_code >= 500:
            logger.error(f"Paystack API error {response.status_code}: {message}")
            raise PaymentGatewayException(message or f"HTTP {response.status_code}", upstream_status=response.status_code)
        if response.status_code >= 400:
            logger.warning(f"Paystack API rejected {method} {endpoint}: {message}")
            raise PaymentGatewayRejectedException(message or f"HTTP {response.status_code}", upstream_status=response.status_code)

        if not isinstance(result, dict) or not result.get("status") or not isinstance(result.get("data"), dict):
            logger.error(f"Paystack returned an unsuccessful envelope for {method} {endpoint}: {message}")
            raise PaymentGatewayRejectedException(message or "Paystack response was not successful", upstream_status=response.status_code)

        return result["data"]

    async def initialize(
        self,
        email: str,
        amount_kobo: int,
        reference: str,
        callback_url: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> GatewayInitialization:
        """
        Initialize a payment transaction with Paystack.

        API: POST https://api.paystack.co/transaction/initialize

        Args:
            email: Customer email
            amount_kobo: Amount in kobo (100 kobo = 1 Naira)
            reference: Unique transaction reference
            callback_url: URL to redirect after payment
            metadata: Additional data to store with transaction
        """
        payload = {
            "email": email,
            "amount": amount_kobo,
            "reference": reference,
            "callback_url": callback_url,
            "currency": settings.default_currency,
        }
        if metadata:
            payload["metadata"] = metadata

        logger.info(f"Initializing Paystack payment: ref={reference}, amount=₦{amount_kobo / 100:,.2f}")

        data = await self._make_request("POST", "/transaction/initialize", data=payload)

        authorization_url = data.get("authorization_url")
        if not authorization_url:
            raise PaymentGatewayRejectedException("Paystack did not return an authorization URL")

        logger.info(f"Payment initialized successfully: {reference}")
        return GatewayInitialization(
            authorization_url=authorization_url,
            access_code=data.get("access_code", ""),
            reference=data.get("reference") or reference,
        )

    async def verify(self, reference: str) -> GatewayVerification:
        """
        Verify a payment transaction.

        API: GET https://api.paystack.co/transaction/verify/:reference
        """
        logger.info(f"Verifying Paystack payment: {reference}")

        data = await self._make_request("GET", f"/transaction/verify/{reference}")

        tx_status = str(data.get("status", "")).lower()
        status = PAYSTACK_STATUS_MAP.get(tx_status, GatewayPaymentStatus.FAILED)
        transaction_id = data.get("id")

        verification = GatewayVerification(
            reference=data.get("reference") or reference,
            status=status,
            amount_kobo=int(data.get("amount") or 0),
            currency=data.get("currency") or settings.default_currency,
            transaction_id=str(transaction_id) if transaction_id is not None else None,
            channel=data.get("channel"),
            paid_at=parse_paystack_datetime(data.get("paid_at") or data.get("paidAt")),
            fees_kobo=data.get("fees"),
            ip_address=data.get("ip_address"),
            gateway_response=data.get("gateway_response"),
            authorization=CardAuthorization.from_paystack(data.get("authorization")),
            metadata=data.get("metadata") if isinstance(data.get("metadata"), dict) else {},
        )

        logger.info(f"Payment verification result: ref={reference}, status={tx_status}")
        return verification

    def verify_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        """HMAC-SHA512 of the raw body keyed by the secret key, compared in constant time."""
        return verify_paystack_signature(raw_body, signature or "", get_paystack_secret_key())


def get_payment_gateway() -> PaymentGateway:
    """Dependency hook for the gateway; overridden in tests."""
    return PaystackGateway()
