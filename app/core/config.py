import os
from decimal import Decimal
from enum import StrEnum

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"
    STAGING = "staging"


ENVIRONMENT = os.getenv("RENDER_ENV", Environment.DEVELOPMENT)


class Settings(BaseSettings):
    app_name: str = "KIIT Saathi - Resale"
    db_user: str
    db_password: str
    db_name: str
    db_host: str
    db_port: int
    db_echo: bool = False
    testing: str | None = None
    render_env: str = ENVIRONMENT
    log_level: str = "INFO"

    # firebase (auth, storage for listing images, cloud messaging)
    firebase_credentials_path: str = "kiit-saathi-service-account.json"
    firebase_storage_bucket: str | None = None
    signed_url_expiration_seconds: int = 300

    # only college accounts may register
    allowed_email_domain: str = "kiit.ac.in"

    # payment gateway
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_api_url: str = "https://api.razorpay.com/v1"
    razorpay_timeout_seconds: float = 20.0
    payment_currency: str = "INR"

    # marketplace rules
    platform_fee_percent: Decimal = Decimal("10")
    min_listing_price: Decimal = Decimal("10")
    max_listing_price: Decimal = Decimal("1000000")
    max_listing_images: int = 6
    max_campus_number: int = 25
    max_page_size: int = 50

    # escrow transactions that never receive a payment are cancelled
    unpaid_transaction_timeout_minutes: int = 30
    expire_unpaid_job_interval_minutes: int = 5

    socket_cors_origins: str = "*"

    model_config = SettingsConfigDict(
        env_file=".env" if ENVIRONMENT != Environment.PRODUCTION else None,
        env_file_encoding="utf-8",
    )

    @property
    def is_testing(self) -> bool:
        return self.testing == "1"


config = Settings()
