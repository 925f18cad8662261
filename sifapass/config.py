"""
SifaPass Billing - Configuration Settings

This module handles all application configuration using Pydantic Settings.
Environment variables are loaded from .env file.

The Paystack secret key is not part of the cached Settings object; it is
re-read from the environment on every gateway call.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict

from sifapass.utils.error_handling import ConfigurationException


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===========================================
    # APPLICATION CONFIGURATION
    # ===========================================
    app_name: str = "SifaPass Billing"
    app_env: str = "development"
    debug: bool = False

    # Frontend base URL (payment callback is <frontend_url>/billing/verify)
    frontend_url: str = "http://localhost:3000"

    # ===========================================
    # DATABASE CONFIGURATION
    # ===========================================
    database_url_async: str  # Required - must be set in .env
    database_echo: bool = False

    # ===========================================
    # JWT AUTHENTICATION
    # ===========================================
    jwt_secret_key: str  # Required - must be set in .env
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # ===========================================
    # PAYSTACK PAYMENT GATEWAY (https://paystack.com)
    # Used for: Subscription payments and prepaid credit purchases
    # Nigerian Naira (NGN) transactions
    # ===========================================
    paystack_base_url: str = "https://api.paystack.co"
    paystack_timeout_seconds: float = 10.0

    # ===========================================
    # BILLING POLICY
    # ===========================================
    invoice_due_days: int = 7
    subscription_period_days: int = 30
    default_credit_rate: int = 5  # Naira per credit
    default_currency: str = "NGN"

    # ===========================================
    # CORS SETTINGS
    # ===========================================
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string into list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def payment_callback_url(self) -> str:
        """Where Paystack redirects the payer after checkout."""
        return f"{self.frontend_url.rstrip('/')}/billing/verify"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env.lower() == "development"


class PaystackSecrets(BaseSettings):
    """Paystack credentials, loaded fresh on every instantiation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    paystack_secret_key: str = ""


def get_paystack_secret_key() -> str:
    """
    Read the Paystack secret key from the environment.

    Never cache the return value.

    Raises:
        ConfigurationException: If PAYSTACK_SECRET_KEY is not configured
    """
    key = PaystackSecrets().paystack_secret_key.strip()
    if not key:
        raise ConfigurationException(
            "PAYSTACK_SECRET_KEY is not configured in environment variables"
        )
    return key


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()


# Export settings instance
settings = get_settings()
