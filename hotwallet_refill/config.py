from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    DATABASE_URL: str = "sqlite+aiosqlite:///./refill.db"
    LOG_LEVEL: str = "INFO"

    # Inbound request authentication (RS256 JWT issued by the balance monitor)
    AUTH_ENABLED: bool = True
    AUTH_PUBLIC_KEY: str = ""
    JWT_MAX_LIFETIME_SECONDS: int = 300

    # Outbound response signing, disabled when empty
    CALLBACK_PRIVATE_KEY: str = ""

    # Reconciliation loop
    RECONCILIATION_ENABLED: bool = True
    RECONCILIATION_INTERVAL_SECONDS: int = 30
    RECONCILIATION_BATCH_SIZE: int = 100
    PENDING_ALERT_THRESHOLD_SECONDS: int = 1800
    STATUS_CHECK_TIMEOUT_SECONDS: float = 15.0

    # Bound on every custody provider call
    PROVIDER_TIMEOUT_SECONDS: float = 30.0

    SLACK_WEBHOOK_URL: str = ""

    # Fireblocks
    FIREBLOCKS_API_KEY: str = ""
    FIREBLOCKS_PRIVATE_KEY: str = ""
    FIREBLOCKS_API_BASE_URL: str = "https://api.fireblocks.io"

    # Liminal
    LIMINAL_CLIENT_ID: str = ""
    LIMINAL_CLIENT_SECRET: str = ""
    LIMINAL_AUTH_AUDIENCE: str = ""
    LIMINAL_ENV: str = "dev"
    LIMINAL_API_BASE_URL: str = ""
    LIMINAL_AUTH_URL: str = ""

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v):
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    @property
    def fireblocks_configured(self) -> bool:
        return bool(self.FIREBLOCKS_API_KEY and self.FIREBLOCKS_PRIVATE_KEY)

    @property
    def liminal_configured(self) -> bool:
        return bool(self.LIMINAL_CLIENT_ID and self.LIMINAL_CLIENT_SECRET and self.LIMINAL_AUTH_AUDIENCE)

settings = Settings()
