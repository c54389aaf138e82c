from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application configuration loaded from environment variables / .env file."""

    app_name: str = "Fulfillment API"
    app_env: str = "development"
    app_port: int = 8000
    frontend_url: str = "http://localhost:3000"

    # Database (PostgreSQL via asyncpg or SQLite for local dev)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./fulfillment_dev.db",
        alias="DATABASE_URL",
    )
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # Write requests recorded to audit_trail by AuditMiddleware
    audit_requests: bool = Field(default=True, alias="AUDIT_REQUESTS")

    # Multi-tenancy default
    default_client_id: str = Field(default="default", alias="DEFAULT_CLIENT_ID")

    # Payment gateway
    payment_gateway_url: str = Field(
        default="http://localhost:9001", alias="PAYMENT_GATEWAY_URL",
    )
    payment_api_key: str | None = Field(default=None, alias="PAYMENT_API_KEY")
    payment_timeout: float = Field(default=30.0, alias="PAYMENT_TIMEOUT")

    # Distributor order submission
    distributor_url: str = Field(default="http://localhost:9002", alias="DISTRIBUTOR_URL")
    distributor_api_key: str | None = Field(default=None, alias="DISTRIBUTOR_API_KEY")
    distributor_timeout: float = Field(default=20.0, alias="DISTRIBUTOR_TIMEOUT")

    # CRM
    crm_url: str = Field(default="http://localhost:9003", alias="CRM_URL")
    crm_api_key: str | None = Field(default=None, alias="CRM_API_KEY")
    crm_timeout: float = Field(default=15.0, alias="CRM_TIMEOUT")

    # Product catalog lookups during summary enrichment
    catalog_timeout: float = Field(default=5.0, alias="CATALOG_TIMEOUT")

    # Outbox worker
    outbox_poll_interval: float = Field(default=10.0, alias="OUTBOX_POLL_INTERVAL")
    outbox_max_attempts: int = Field(default=5, alias="OUTBOX_MAX_ATTEMPTS")
    outbox_retry_backoff: float = Field(
        default=30.0, alias="OUTBOX_RETRY_BACKOFF",
    )  # seconds, multiplied by the attempt number
    outbox_batch_size: int = Field(default=20, alias="OUTBOX_BATCH_SIZE")
    outbox_worker_enabled: bool = Field(default=True, alias="OUTBOX_WORKER_ENABLED")

    # Order numbers
    order_number_width: int = Field(default=7, alias="ORDER_NUMBER_WIDTH")
    order_number_test_mode: bool = Field(default=False, alias="ORDER_NUMBER_TEST_MODE")
    order_number_test_prefix: str = Field(default="test", alias="ORDER_NUMBER_TEST_PREFIX")
    order_number_test_width: int = Field(default=3, alias="ORDER_NUMBER_TEST_WIDTH")

    # Compliance policy used when no active config row exists
    default_firearm_window_days: int = Field(default=30, alias="DEFAULT_FIREARM_WINDOW_DAYS")
    default_firearm_limit: int = Field(default=5, alias="DEFAULT_FIREARM_LIMIT")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "populate_by_name": True,
    }

settings = Settings()
