"""
Configuration management for MedAdhere
"""

from typing import Optional
from pydantic_settings import BaseSettings
from celery.schedules import crontab
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "MedAdhere"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENV: str = "development"

    # API
    API_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite:///./medadhere.db"
    DATABASE_ECHO: bool = False

    # Security
    SECRET_KEY: str = "your-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Background scheduling
    SCHEDULER_ENABLED: bool = True
    SWEEP_STARTUP_DELAY_SECONDS: int = 5
    REMINDER_COOLDOWN_SECONDS: int = 240  # 4 minutes
    REMINDERS_ON_REQUEST: bool = True

    # Ledger
    UPSERT_MAX_ATTEMPTS: int = 3

    # Email (SMTP). Without SMTP_HOST reminders are only logged.
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    EMAIL_FROM: str = "MedAdhere <no-reply@medadhere.local>"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


class SchedulerConfig:
    """Crontabs for the background jobs (server local time)"""

    # Reminder emails
    MORNING_REMINDER_CRON = crontab(minute=0, hour=8)
    AFTERNOON_REMINDER_CRON = crontab(minute=0, hour=13)
    EVENING_REMINDER_CRON = crontab(minute=0, hour=20)

    # Missed-dose sweeps
    CONTINUOUS_SWEEP_CRON = crontab()  # every minute
    MORNING_SWEEP_CRON = crontab(minute=30, hour=12)
    AFTERNOON_SWEEP_CRON = crontab(minute=30, hour=18)
    EVENING_SWEEP_CRON = crontab(minute=0, hour=22)


# Database table names
class TableNames:
    PATIENTS = "patients"
    DOCTORS = "doctors"
    DOCTOR_PATIENTS = "doctor_patients"
    PRESCRIPTIONS = "prescriptions"
    PRESCRIBED_MEDICINES = "prescribed_medicines"
    ADHERENCE_RECORDS = "adherence_records"


settings = get_settings()
scheduler_config = SchedulerConfig()
