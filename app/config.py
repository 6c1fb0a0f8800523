from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Supabase settings
    SUPABASE_URL: str
    SUPABASE_SERVICE_ROLE_KEY: str
    SUPABASE_DB_URL: str

    # Scheduler shared secret (x-cron-secret header)
    CRON_SECRET: str | None = None

    # Mailbox settings
    GMAIL_USER: str | None = None
    GMAIL_APP_PASSWORD: str | None = None
    IMAP_HOST: str = "imap.gmail.com"
    IMAP_PORT: int = 993
    IMAP_TIMEOUT_SECONDS: float = 60.0
    GMAIL_SYNC_LIMIT: int = 50

    # Attachment storage
    EMAIL_ATTACHMENTS_BUCKET: str = "email-attachments"
    STORAGE_TIMEOUT_SECONDS: float = 30.0
    ATTACHMENT_BACKFILL_COUNT: int = 150

    # Follow-up scheduling
    FOLLOWUP_DAYS: int = 10
    CRM_TIMEZONE: str = "UTC"

    # AI inference (any OpenAI-compatible endpoint, Groq by default)
    AI_API_KEY: str | None = None
    AI_BASE_URL: str = "https://api.groq.com/openai/v1"
    AI_MODEL: str = "llama-3.3-70b-versatile"
    AI_TIMEOUT_SECONDS: float = 30.0
    AI_MAX_ATTEMPTS: int = 1
    AI_TEMPERATURE: float = 0.2
    SUMMARY_EMAIL_LIMIT: int = 40
    SUMMARY_RECENT_COUNT: int = 8
    AI_CLASSIFY_BATCH: int = 15

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 8
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def sync_batch_limit(self) -> int:
        """Per-run message cap, never below one."""
        return max(1, self.GMAIL_SYNC_LIMIT)

    def followup_days(self) -> int:
        return max(1, self.FOLLOWUP_DAYS)

    def classify_batch_size(self) -> int:
        """Contacts per classification batch, clamped to 1..50."""
        return min(50, max(1, self.AI_CLASSIFY_BATCH))

    def attachment_backfill_count(self, requested: int | None = None) -> int:
        value = requested if requested is not None else self.ATTACHMENT_BACKFILL_COUNT
        return min(400, max(1, value))

    def owner_address(self) -> str | None:
        """Mailbox owner's address, normalized for comparisons."""
        if not self.GMAIL_USER:
            return None
        return self.GMAIL_USER.strip().lower()

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            # Cron jobs and a single UI, keep it small locally
            config.update({"min_size": 1, "max_size": 4, "timeout": 15.0})

        return config


settings = Settings()
