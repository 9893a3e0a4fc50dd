"""Application configuration via environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Guestlist"
    debug: bool = False
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all
    log_dir: Path = Path.home() / ".logs" / "guestlist"

    # Database
    database_url: str = "sqlite:///./guestlist.db"

    # QR codes
    qr_max_attempts: int = 5  # Collision retries before giving up on issuance
    qr_random_length: int = 8

    # A guest who holds a code but was marked present by hand is still
    # treated as scanner-protected while this is on.
    protect_coded_manual_checkins: bool = True

    # Check-in reminders
    reminders_enabled: bool = True
    reminder_hour: int = 9  # Local hour of the daily reminder run


settings = Settings()
