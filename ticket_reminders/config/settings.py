"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "maintenance_tickets"

    # Cron trigger - shared secret for the scheduler endpoint
    cron_secret: str = ""

    # WhatsApp Business API (outbound reminder channel)
    whatsapp_api_url: str = "https://graph.facebook.com/v18.0"
    whatsapp_access_token: str = ""
    whatsapp_phone_number_id: str = ""
    whatsapp_webhook_verify_token: str = ""
    whatsapp_language_code: str = "en"
    whatsapp_timeout_seconds: float = 15.0
    default_country_code: str = "91"

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # Scheduler
    scheduler_enabled: bool = True
    scheduler_interval_minutes: int = 15  # Cron cadence recommended for the trigger too
    scheduler_lock_name: str = "notification_scheduler"
    scheduler_lock_ttl_minutes: int = 10  # Lease expiry so a crashed run cannot block forever
    dispatch_concurrency: int = 1  # 1 = strictly sequential dispatch
    default_max_reminders: int = 3

    # CORS - comma-separated origins, "*" for any
    cors_origins: str = "*"

    # Environment
    environment: str = "development"
    debug: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string into list"""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment.lower() == "production"

    @property
    def whatsapp_configured(self) -> bool:
        """Check if WhatsApp credentials are present"""
        return bool(self.whatsapp_access_token and self.whatsapp_phone_number_id)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
