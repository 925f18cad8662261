"""
SifaPass Billing - Paystack Gateway Tests

Initialize, verify and webhook signature checks against a mocked
Paystack API. No real API calls are made.
"""

import hashlib
import hmac
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from sifapass.services.paystack_gateway import (
    GatewayPaymentStatus,
    PaystackGateway,
    get_payment_gateway,
    parse_paystack_datetime,
)
from sifapass.utils.error_handling import (
    ConfigurationException,
    ErrorCode,
    GatewayConfigurationException,
    PaymentGatewayException,
    PaymentGatewayRejectedException,
)
from sifapass.utils.security import verify_paystack_signature


@pytest.fixture
def gateway():
    return PaystackGateway()


def _sign(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


# =============================================================================
# WEBHOOK SIGNATURE
# =============================================================================

class TestWebhookSignatureVerification:
    """HMAC-SHA512 over the raw body, keyed by the secret key."""

    BODY = json.dumps({
        "event": "charge.success",
        "data": {"reference": "CREDIT_1760870400000_org", "amount": 1250000},
    }).encode("utf-8")

    def test_valid_signature_accepted(self, gateway, paystack_secret):
        signature = _sign(self.BODY, paystack_secret)
        assert gateway.verify_webhook_signature(self.BODY, signature) is True

    def test_missing_signature_rejected(self, gateway):
        assert gateway.verify_webhook_signature(self.BODY, None) is False
        assert gateway.verify_webhook_signature(self.BODY, "") is False

    def test_one_byte_body_change_rejected(self, gateway, paystack_secret):
        signature = _sign(self.BODY, paystack_secret)
        for index in (0, len(self.BODY) // 2, len(self.BODY) - 1):
            tampered = bytearray(self.BODY)
            tampered[index] ^= 0x01
            assert gateway.verify_webhook_signature(bytes(tampered), signature) is False

    def test_non_ascii_signature_rejected(self, gateway, paystack_secret):
        assert gateway.verify_webhook_signature(self.BODY, "\xe9" * 128) is False
        assert verify_paystack_signature(self.BODY, "\udcff" * 128, paystack_secret) is False

        signature = _sign(self.BODY, paystack_secret)
        assert gateway.verify_webhook_signature(self.BODY, signature[:-1] + "\xe9") is False

    def test_one_byte_secret_change_rejected(self, gateway, paystack_secret):
        wrong_secret = paystack_secret[:-1] + chr(ord(paystack_secret[-1]) ^ 0x01)
        signature = _sign(self.BODY, wrong_secret)
        assert gateway.verify_webhook_signature(self.BODY, signature) is False

    def test_reserialized_body_rejected(self, gateway, paystack_secret):
        """Signing a re-encoded copy of the JSON does not validate the raw bytes."""
        reencoded = json.dumps(json.loads(self.BODY), indent=2).encode("utf-8")
        signature = _sign(reencoded, paystack_secret)
        assert gateway.verify_webhook_signature(self.BODY, signature) is False

    def test_rotated_secret_takes_effect_without_restart(self, gateway, monkeypatch):
        monkeypatch.setenv("PAYSTACK_SECRET_KEY", "sk_test_rotated_key")
        assert gateway.verify_webhook_signature(self.BODY, _sign(self.BODY, "sk_test_rotated_key"))

    def test_helper_requires_secret(self):
        assert verify_paystack_signature(self.BODY, _sign(self.BODY, ""), "") is False


# =============================================================================
# SECRET KEY HANDLING
# =============================================================================

class TestSecretKey:

    @pytest.mark.asyncio
    async def test_missing_key_is_configuration_error(self, gateway, monkeypatch):
        monkeypatch.setenv("PAYSTACK_SECRET_KEY", "   ")
        with pytest.raises(ConfigurationException):
            await gateway.verify("REF_missing_key")

    @pytest.mark.asyncio
    async def test_key_read_on_every_call(self, gateway, mock_paystack, monkeypatch):
        mock_paystack.create_transaction("REF_rotate", amount=500000)

        first = await gateway.verify("REF_rotate")
        assert first.is_successful

        # Rotated in the environment, not yet at Paystack
        monkeypatch.setenv("PAYSTACK_SECRET_KEY", "sk_test_not_registered")
        with pytest.raises(GatewayConfigurationException):
            await gateway.verify("REF_rotate")

        # Paystack catches up with the rotation
        mock_paystack.secret_key = "sk_test_not_registered"
        again = await gateway.verify("REF_rotate")
        assert again.is_successful

    def test_dependency_hook_returns_paystack(self):
        assert isinstance(get_payment_gateway(), PaystackGateway)


# =============================================================================
# INITIALIZE
# =============================================================================

class TestInitialize:

    @pytest.mark.asyncio
    async def test_initialize_success(self, gateway, mock_paystack):
        session = await gateway.initialize(
            email="billing@lagostech.ng",
            amount_kobo=1250000,
            reference="CREDIT_1760870400000_abc",
            callback_url="http://localhost:3000/billing/verify",
            metadata={"type": "credit_purchase"},
        )

        assert session.authorization_url.startswith("https://checkout.paystack.com/")
        assert session.access_code.startswith("ACC_")
        assert session.reference == "CREDIT_1760870400000_abc"

        txn = mock_paystack.transactions["CREDIT_1760870400000_abc"]
        assert txn.amount == 1250000
        assert txn.metadata == {"type": "credit_purchase"}

    @pytest.mark.asyncio
    async def test_initialize_rejected(self, gateway, mock_paystack):
        mock_paystack.set_initialization_failure("Invalid email address")

        with pytest.raises(PaymentGatewayRejectedException) as exc_info:
            await gateway.initialize(
                email="not-an-email",
                amount_kobo=100,
                reference="REF_bad_email",
                callback_url="http://localhost:3000/billing/verify",
            )

        assert exc_info.value.status_code == 502
        assert exc_info.value.details["retryable"] is False
        assert "Invalid email address" in exc_info.value.message


# =============================================================================
# VERIFY
# =============================================================================

class TestVerify:

    @pytest.mark.asyncio
    async def test_verify_success_maps_transaction(self, gateway, mock_paystack):
        mock_paystack.create_transaction("REF_ok", amount=4500000)

        verification = await gateway.verify("REF_ok")

        assert verification.status == GatewayPaymentStatus.SUCCESS
        assert verification.amount_kobo == 4500000
        assert verification.amount == 45000
        assert verification.channel == "card"
        assert verification.paid_at is not None
        assert verification.paid_at.tzinfo is not None
        assert verification.authorization.last4 == "4081"
        assert verification.authorization.card_type == "visa"
        assert verification.transaction_id is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("paystack_status,expected", [
        ("failed", GatewayPaymentStatus.FAILED),
        ("reversed", GatewayPaymentStatus.FAILED),
        ("abandoned", GatewayPaymentStatus.ABANDONED),
        ("ongoing", GatewayPaymentStatus.PENDING),
        ("something_new", GatewayPaymentStatus.FAILED),
    ])
    async def test_status_normalization(self, gateway, mock_paystack, paystack_status, expected):
        mock_paystack.create_transaction("REF_status", amount=100)
        mock_paystack.set_verification_response(status=paystack_status)

        verification = await gateway.verify("REF_status")

        assert verification.status == expected
        assert verification.is_successful is False

    @pytest.mark.asyncio
    async def test_unknown_reference_is_rejection(self, gateway, mock_paystack):
        with pytest.raises(PaymentGatewayRejectedException) as exc_info:
            await gateway.verify("REF_does_not_exist")
        assert exc_info.value.upstream_status == 400


# =============================================================================
# ERROR CLASSIFICATION
# =============================================================================

class TestErrorClassification:

    @pytest.mark.asyncio
    async def test_401_is_configuration_error(self, gateway, mock_paystack):
        mock_paystack.secret_key = "sk_test_something_else"

        with pytest.raises(GatewayConfigurationException) as exc_info:
            await gateway.verify("REF_any")

        assert exc_info.value.code == ErrorCode.CONFIGURATION_ERROR
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_503_is_retryable_unavailable(self, gateway, mock_paystack):
        mock_paystack.set_server_error(503)

        with pytest.raises(PaymentGatewayException) as exc_info:
            await gateway.verify("REF_any")

        assert exc_info.value.code == ErrorCode.PAYMENT_GATEWAY_UNAVAILABLE
        assert exc_info.value.status_code == 503
        assert exc_info.value.details["retryable"] is True

    @pytest.mark.asyncio
    async def test_500_is_retryable_bad_gateway(self, gateway, mock_paystack):
        mock_paystack.set_server_error(500)

        with pytest.raises(PaymentGatewayException) as exc_info:
            await gateway.verify("REF_any")

        assert exc_info.value.code == ErrorCode.PAYMENT_GATEWAY_ERROR
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_timeout(self, gateway):
        with patch("httpx.AsyncClient.request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = httpx.ReadTimeout("timed out")

            with pytest.raises(PaymentGatewayException) as exc_info:
                await gateway.verify("REF_slow")

        assert "timed out" in exc_info.value.message.lower()
        assert exc_info.value.details["retryable"] is True

    @pytest.mark.asyncio
    async def test_network_error(self, gateway):
        with patch("httpx.AsyncClient.request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = httpx.ConnectError("connection refused")

            with pytest.raises(PaymentGatewayException) as exc_info:
                await gateway.verify("REF_offline")

        assert "Network error" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_unsuccessful_envelope(self, gateway):
        response = httpx.Response(
            200,
            json={"status": False, "message": "Duplicate Transaction Reference"},
            request=httpx.Request("POST", "https://api.paystack.co/transaction/initialize"),
        )
        with patch("httpx.AsyncClient.request", new_callable=AsyncMock, return_value=response):
            with pytest.raises(PaymentGatewayRejectedException) as exc_info:
                await gateway.initialize(
                    email="billing@lagostech.ng",
                    amount_kobo=100,
                    reference="REF_dup",
                    callback_url="http://localhost:3000/billing/verify",
                )

        assert "Duplicate Transaction Reference" in exc_info.value.message


class TestParsePaystackDatetime:

    def test_parses_zulu_timestamp(self):
        parsed = parse_paystack_datetime("2026-10-19T12:30:00.000Z")
        assert parsed.year == 2026 and parsed.hour == 12
        assert parsed.utcoffset().total_seconds() == 0

    def test_empty_and_garbage(self):
        assert parse_paystack_datetime(None) is None
        assert parse_paystack_datetime("") is None
        assert parse_paystack_datetime("yesterday") is None
