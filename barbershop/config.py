# barbershop/config.py

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./barber.db"
    log_level: str = "INFO"

    secret_key: str = "change-me-later"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # booking rules
    min_advance_hours: int = 1
    max_days_ahead: int = 30
    client_cancel_hours: int = 4
    slot_minutes: int = 15

    notifications_enabled: bool = True
    reminder_24h_enabled: bool = True
    reminder_2h_enabled: bool = True

    business_name: str = "Barbershop"
    business_address: str = ""
    business_phone: str = ""

    mail_from: str = "noreply@barbershop.local"
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
