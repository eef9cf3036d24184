"""Configuration settings for the subsync service.

Wraps environment variables and provides defaults.
"""

from typing import Optional

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pydantic settings class.

    Attributes:
    ----------
        PROJECT_NAME (str): The name of the project.
        LOCAL_DEVELOPMENT (bool): Whether the application is running locally.
        ENVIRONMENT (str): The deployment environment (local, dev, test, prd).
        DEBUG (bool): Whether debug mode is enabled.
        LOG_LEVEL (str): The logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        POSTGRES_HOST (Optional[str]): The PostgreSQL server hostname.
        POSTGRES_DB (str): The PostgreSQL database name.
        POSTGRES_USER (Optional[str]): The PostgreSQL username.
        POSTGRES_PASSWORD (Optional[str]): The PostgreSQL password.
        SQLALCHEMY_ASYNC_DATABASE_URI (str): The SQLAlchemy async database URI.
        CREATE_TABLES_ON_STARTUP (bool): Whether to create missing tables and seed the
            plan catalog when the API starts.
        STRIPE_SECRET_KEY (Optional[str]): Secret API key for the payment processor.
        STRIPE_WEBHOOK_SECRET (Optional[str]): Shared secret used to sign webhook payloads.
        STRIPE_TIMEOUT_SECONDS (float): Upper bound for a single processor call.
        FRONTEND_URL (str): Base URL used to build default checkout redirect destinations.
        CHECKOUT_TRIAL_PERIOD_DAYS (int): Trial length granted on new checkouts (0 disables).
        TRIAL_EXTENSION_DAYS (int): Days added by the one-shot trial extension.
        INVOICE_LOOKBACK_DAYS (int): How far back invoice listings reach.
        PLAN_CATALOG (dict[str, list[str]]): Plan id to processor price ids, seeded on startup.
        RESEND_API_KEY (Optional[str]): API key for transactional billing notifications.
        RESEND_FROM_EMAIL (Optional[str]): Sender address for billing notifications.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    PROJECT_NAME: str = "subsync"
    LOCAL_DEVELOPMENT: bool = False
    ENVIRONMENT: str = "local"

    # Debug configuration
    DEBUG: bool = False

    # Logging configuration
    LOG_LEVEL: str = "INFO"

    POSTGRES_HOST: Optional[str] = None
    POSTGRES_DB: str = "subsync"
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    SQLALCHEMY_ASYNC_DATABASE_URI: Optional[str] = Field(default=None, validate_default=True)

    CREATE_TABLES_ON_STARTUP: bool = True

    # Payment processor configuration
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_TIMEOUT_SECONDS: float = 10.0

    FRONTEND_URL: str = "http://localhost:5173"

    # Subscription lifecycle rules
    CHECKOUT_TRIAL_PERIOD_DAYS: int = 30
    TRIAL_EXTENSION_DAYS: int = 7
    INVOICE_LOOKBACK_DAYS: int = 365

    PLAN_CATALOG: dict[str, list[str]] = {}

    # Notifications
    RESEND_API_KEY: Optional[str] = None
    RESEND_FROM_EMAIL: Optional[str] = None

    @field_validator("SQLALCHEMY_ASYNC_DATABASE_URI", mode="before")
    def assemble_db_connection(cls, v: Optional[str], info: ValidationInfo) -> str:
        """Build the SQLAlchemy database URI.

        Args:
        ----
            v (Optional[str]): The value of the SQLALCHEMY_ASYNC_DATABASE_URI setting.
            info (ValidationInfo): The validation context containing all field values.

        Returns:
        -------
            str: The assembled SQLAlchemy async database URI. Falls back to a local
                SQLite file when no PostgreSQL host is configured.

        """
        if isinstance(v, str) and v:
            return v

        host = info.data.get("POSTGRES_HOST")
        if not host:
            return "sqlite+aiosqlite:///./subsync.db"

        user = info.data.get("POSTGRES_USER") or ""
        password = info.data.get("POSTGRES_PASSWORD") or ""
        credentials = f"{user}:{password}@" if user else ""
        return f"postgresql+asyncpg://{credentials}{host}/{info.data.get('POSTGRES_DB') or ''}"

    @property
    def stripe_enabled(self) -> bool:
        """Whether processor credentials are configured.

        Returns:
            bool: True when both the API key and the webhook secret are set.
        """
        return bool(self.STRIPE_SECRET_KEY and self.STRIPE_WEBHOOK_SECRET)

    @property
    def checkout_success_url(self) -> str:
        """Default redirect after a completed checkout."""
        return f"{self.FRONTEND_URL}/dashboard/settings?success=true"

    @property
    def checkout_cancel_url(self) -> str:
        """Default redirect after an abandoned checkout."""
        return f"{self.FRONTEND_URL}/pricing?canceled=true"


settings = Settings()
