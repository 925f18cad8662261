"""
Error Handling Module for SifaPass Billing

This module provides centralized error handling with:
- Custom exception hierarchy
- Standardized error responses
- Error logging
- Payment gateway and entitlement errors
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    DataError,
)
from starlette.exceptions import HTTPException as StarletteHTTPException

# Configure logging
logger = logging.getLogger("sifapass.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    MISSING_FIELD = "MISSING_FIELD"

    # Authentication/Authorization Errors (401/403)
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    TOKEN_INVALID = "TOKEN_INVALID"
    SIGNATURE_INVALID = "SIGNATURE_INVALID"

    # Entitlement Errors (403)
    ENTITLEMENT_DENIED = "ENTITLEMENT_DENIED"
    FEATURE_NOT_AVAILABLE = "FEATURE_NOT_AVAILABLE"
    PLAN_UPGRADE_REQUIRED = "PLAN_UPGRADE_REQUIRED"
    USAGE_LIMIT_EXCEEDED = "USAGE_LIMIT_EXCEEDED"
    BILLING_SETUP_REQUIRED = "BILLING_SETUP_REQUIRED"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    ADMIN_NOT_FOUND = "ADMIN_NOT_FOUND"
    ORGANIZATION_NOT_FOUND = "ORGANIZATION_NOT_FOUND"
    PLAN_NOT_FOUND = "PLAN_NOT_FOUND"
    INVOICE_NOT_FOUND = "INVOICE_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    INVOICE_STATE_CONFLICT = "INVOICE_STATE_CONFLICT"
    VERSION_CONFLICT = "VERSION_CONFLICT"

    # Billing Errors (400/402)
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    NO_ACTIVE_SUBSCRIPTION = "NO_ACTIVE_SUBSCRIPTION"
    SUBSCRIPTION_EXPIRED = "SUBSCRIPTION_EXPIRED"
    PAYMENT_DECLINED = "PAYMENT_DECLINED"
    PAYMENT_NOT_COMPLETED = "PAYMENT_NOT_COMPLETED"

    # External Service Errors (502/503)
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    PAYMENT_GATEWAY_ERROR = "PAYMENT_GATEWAY_ERROR"
    PAYMENT_GATEWAY_UNAVAILABLE = "PAYMENT_GATEWAY_UNAVAILABLE"

    # Database Errors (500)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


class AppException(Exception):
    """Base exception for all application exceptions"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code.value,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result

    def response_fields(self) -> Dict[str, Any]:
        """Extra top-level fields merged into the error envelope."""
        return {}


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(AppException):
    """Base validation exception"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
            field=field,
        )


# ============================================================================
# Authentication/Authorization Exceptions
# ============================================================================

class AuthenticationException(AppException):
    """Base authentication exception"""

    def __init__(
        self,
        message: str = "Authentication required",
        code: ErrorCode = ErrorCode.UNAUTHORIZED,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
        )


class SignatureInvalidException(AuthenticationException):
    """Webhook signature did not match the payload"""

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message=message, code=ErrorCode.SIGNATURE_INVALID)


class AuthorizationException(AppException):
    """Authorization denied exception"""

    def __init__(
        self,
        message: str = "Permission denied",
        required_permission: Optional[str] = None,
        code: ErrorCode = ErrorCode.FORBIDDEN,
    ):
        details = {}
        if required_permission:
            details["required_permission"] = required_permission
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
        )


class EntitlementDeniedException(AuthorizationException):
    """
    Feature or quota denial.

    Carries the upsell fields a client needs to render an upgrade prompt;
    they are returned at the top level of the error envelope.
    """

    def __init__(
        self,
        message: str,
        upsell: Dict[str, Any],
        code: ErrorCode = ErrorCode.ENTITLEMENT_DENIED,
    ):
        super().__init__(message=message, code=code)
        self.upsell = upsell
        self.details = dict(upsell)

    def response_fields(self) -> Dict[str, Any]:
        return dict(self.upsell)


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )


class AdminNotFoundException(NotFoundException):
    """Admin not found"""

    def __init__(self, admin_id: Optional[Union[str, UUID]] = None):
        super().__init__(
            resource_type="Admin",
            resource_id=admin_id,
            code=ErrorCode.ADMIN_NOT_FOUND,
        )


class OrganizationNotFoundException(NotFoundException):
    """Organization not found"""

    def __init__(self, organization_id: Optional[Union[str, UUID]] = None, message: Optional[str] = None):
        super().__init__(
            resource_type="Organization",
            resource_id=organization_id,
            message=message,
            code=ErrorCode.ORGANIZATION_NOT_FOUND,
        )


class PlanNotFoundException(NotFoundException):
    """Plan not found"""

    def __init__(self, plan_id: Optional[Union[str, UUID]] = None):
        super().__init__(
            resource_type="Plan",
            resource_id=plan_id,
            code=ErrorCode.PLAN_NOT_FOUND,
        )


class InvoiceNotFoundException(NotFoundException):
    """Invoice not found"""

    def __init__(self, invoice_id: Optional[Union[str, UUID]] = None, reference: Optional[str] = None):
        if reference:
            super().__init__(
                resource_type="Invoice",
                message="Invoice not found for this payment reference",
                code=ErrorCode.INVOICE_NOT_FOUND,
            )
            self.details["reference"] = reference
        else:
            super().__init__(
                resource_type="Invoice",
                resource_id=invoice_id,
                code=ErrorCode.INVOICE_NOT_FOUND,
            )


class ConflictException(AppException):
    """Resource conflict exception"""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if resource_type:
            _details["resource_type"] = resource_type
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=_details,
        )


class InvoiceStateConflictException(ConflictException):
    """Compare-and-set on an invoice found it in an unexpected state"""

    def __init__(self, invoice_number: str, expected: str, actual: Optional[str]):
        super().__init__(
            message=f"Invoice {invoice_number} is '{actual}', expected '{expected}'",
            resource_type="Invoice",
            code=ErrorCode.INVOICE_STATE_CONFLICT,
            details={"invoice_number": invoice_number, "expected_status": expected, "actual_status": actual},
        )


# ============================================================================
# Business Logic Exceptions
# ============================================================================

class BusinessRuleException(AppException):
    """Business rule violation exception"""

    def __init__(
        self,
        message: str,
        rule: Optional[str] = None,
        code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
    ):
        _details = details or {}
        if rule:
            _details["violated_rule"] = rule
        super().__init__(
            code=code,
            message=message,
            status_code=status_code,
            details=_details,
        )


class InsufficientCreditsException(BusinessRuleException):
    """Credit ledger debit would take the balance below zero"""

    def __init__(self, required: int, available: int):
        super().__init__(
            message="Insufficient credits. Please purchase more credits to continue.",
            rule="SUFFICIENT_CREDITS_REQUIRED",
            code=ErrorCode.INSUFFICIENT_CREDITS,
            details={
                "required": required,
                "creditsAvailable": available,
                "requiresPayment": True,
            },
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
        )


class NoActiveSubscriptionException(BusinessRuleException):
    """Subscription operation requested without a subscription"""

    def __init__(self, message: str = "No active subscription to cancel"):
        super().__init__(
            message=message,
            rule="SUBSCRIPTION_REQUIRED",
            code=ErrorCode.NO_ACTIVE_SUBSCRIPTION,
        )


class PaymentDeclinedException(BusinessRuleException):
    """Gateway reported a terminal failure for the payment"""

    def __init__(self, reference: str, gateway_status: str, message: Optional[str] = None):
        super().__init__(
            message=message or "Payment verification failed",
            rule="PAYMENT_MUST_SUCCEED",
            code=ErrorCode.PAYMENT_DECLINED,
            details={"reference": reference, "status": gateway_status},
        )


class PaymentNotCompletedException(BusinessRuleException):
    """Gateway has not (yet) confirmed the payment"""

    def __init__(self, reference: str, gateway_status: str):
        super().__init__(
            message="Payment verification failed",
            rule="PAYMENT_MUST_SUCCEED",
            code=ErrorCode.PAYMENT_NOT_COMPLETED,
            details={"reference": reference, "status": gateway_status},
        )


class PaymentRequiredException(AppException):
    """
    Billing does not cover the request (402).

    ``flags`` tell the client what to do next (requiresSetup,
    requiresSubscription, requiresRenewal, requiresPayment, requiresUpgrade)
    and are returned at the top level of the error envelope.
    """

    def __init__(
        self,
        message: str,
        flags: Dict[str, Any],
        code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            details=dict(flags),
        )
        self.flags = flags

    def response_fields(self) -> Dict[str, Any]:
        return dict(self.flags)


class SubscriptionExpiredException(PaymentRequiredException):
    """Subscription is marked active but its period has ended"""

    def __init__(self):
        super().__init__(
            message="Your subscription has expired. Please renew to continue.",
            flags={"requiresRenewal": True},
            code=ErrorCode.SUBSCRIPTION_EXPIRED,
        )


# ============================================================================
# External Service Exceptions
# ============================================================================

class ExternalServiceException(AppException):
    """External service error exception"""

    def __init__(
        self,
        service_name: str,
        message: str,
        code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
        original_error: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = status.HTTP_502_BAD_GATEWAY,
    ):
        _details = details or {}
        _details["service"] = service_name
        super().__init__(
            code=code,
            message=message,
            status_code=status_code,
            details=_details,
            original_error=original_error,
        )


class PaymentGatewayException(ExternalServiceException):
    """Transient Paystack failure (timeout, network, 5xx); safe to retry"""

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        unavailable = upstream_status == status.HTTP_503_SERVICE_UNAVAILABLE
        super().__init__(
            service_name="Paystack",
            message=f"Payment gateway error: {message}",
            code=ErrorCode.PAYMENT_GATEWAY_UNAVAILABLE if unavailable else ErrorCode.PAYMENT_GATEWAY_ERROR,
            original_error=original_error,
            details={"upstream_status": upstream_status, "retryable": True},
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE if unavailable else status.HTTP_502_BAD_GATEWAY,
        )
        self.upstream_status = upstream_status


class PaymentGatewayRejectedException(ExternalServiceException):
    """Paystack refused the request (4xx other than 401)"""

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(
            service_name="Paystack",
            message=f"Payment gateway rejected the request: {message}",
            code=ErrorCode.PAYMENT_GATEWAY_ERROR,
            details={"upstream_status": upstream_status, "retryable": False},
        )
        self.upstream_status = upstream_status


# ============================================================================
# Configuration Exceptions
# ============================================================================

class ConfigurationException(AppException):
    """Server-side misconfiguration"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(
            code=ErrorCode.CONFIGURATION_ERROR,
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            original_error=original_error,
        )


class GatewayConfigurationException(ConfigurationException):
    """Paystack answered 401: the configured secret key is invalid"""

    def __init__(self, message: str = "Invalid Paystack API key - 401 Unauthorized"):
        super().__init__(message=message)


# ============================================================================
# Exception Handlers
# ============================================================================

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """Create a standardized error response"""
    error = {
        "code": code.value,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if field:
        error["field"] = field
    if details:
        error["details"] = details

    content: Dict[str, Any] = {
        "success": False,
        "message": message,
        "error": error,
    }
    if extra:
        content.update(extra)

    return JSONResponse(status_code=status_code, content=content)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle AppException"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=exc.original_error,
    )

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
        extra=exc.response_fields(),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException"""
    # Map status codes to error codes
    code_map = {
        400: ErrorCode.INVALID_INPUT,
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        500: ErrorCode.INTERNAL_ERROR,
        502: ErrorCode.EXTERNAL_SERVICE_ERROR,
        503: ErrorCode.EXTERNAL_SERVICE_ERROR,
    }

    error_code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    logger.warning(
        f"HTTPException: {exc.status_code} - {message}",
        extra={"path": request.url.path, "method": request.method},
    )

    response = create_error_response(
        code=error_code,
        message=message,
        status_code=exc.status_code,
    )
    if getattr(exc, "headers", None):
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors"""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        f"ValidationError: {len(errors)} validation errors",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_400_BAD_REQUEST,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy errors"""
    error_message = "A database error occurred"
    error_code = ErrorCode.DATABASE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, IntegrityError):
        error_message = "Data integrity constraint violated"
        error_code = ErrorCode.DATA_INTEGRITY_ERROR
        error_str = str(exc.orig).lower() if exc.orig else ""
        if "unique" in error_str or "duplicate" in error_str:
            error_message = "A record with this value already exists"
            error_code = ErrorCode.DUPLICATE_ENTRY
            status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, OperationalError):
        error_message = "Database operation failed"
        error_code = ErrorCode.CONNECTION_ERROR
    elif isinstance(exc, DataError):
        error_message = "Invalid data format for database"
        status_code = status.HTTP_400_BAD_REQUEST

    logger.error(
        f"SQLAlchemyError: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=error_code,
        message=error_message,
        status_code=status_code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions"""
    logger.critical(
        f"UnhandledException: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    # In production, don't expose internal error details
    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = [
    # Base
    "AppException",
    "ErrorCode",

    # Validation
    "ValidationException",

    # Auth
    "AuthenticationException",
    "SignatureInvalidException",
    "AuthorizationException",
    "EntitlementDeniedException",

    # Resource
    "NotFoundException",
    "AdminNotFoundException",
    "OrganizationNotFoundException",
    "PlanNotFoundException",
    "InvoiceNotFoundException",
    "ConflictException",
    "InvoiceStateConflictException",

    # Business Logic
    "BusinessRuleException",
    "InsufficientCreditsException",
    "NoActiveSubscriptionException",
    "PaymentDeclinedException",
    "PaymentNotCompletedException",

    # External Services
    "ExternalServiceException",
    "PaymentGatewayException",
    "PaymentGatewayRejectedException",

    # Configuration
    "ConfigurationException",
    "GatewayConfigurationException",

    # Handlers
    "setup_exception_handlers",
    "create_error_response",
]
