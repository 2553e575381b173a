"""
Application Settings
Environment driven configuration for the PillTracker backend
"""
import os
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

TIMING_WINDOWS = ("symmetric", "asymmetric")


class Settings:
    """Runtime settings read from the environment"""

    def __init__(self):
        self.secret_key: str = os.getenv("SECRET_KEY", "your-secret-key-for-development")
        self.access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24)))
        self.admin_email: str = os.getenv("ADMIN_EMAIL", "admin@example.com").strip().lower()
        self.timing_window: str = os.getenv("TIMING_WINDOW", "symmetric").strip().lower()
        self.reminder_timezone: str = os.getenv("REMINDER_TIMEZONE", "UTC")
        self.reminder_poll_seconds: float = float(os.getenv("REMINDER_POLL_SECONDS", "30"))
        self.password_reset_redirect: str = os.getenv("PASSWORD_RESET_REDIRECT", "pilltracker://reset-password")
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

        if self.timing_window not in TIMING_WINDOWS:
            raise ValueError(f"TIMING_WINDOW must be one of {', '.join(TIMING_WINDOWS)}, got {self.timing_window!r}")


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get settings singleton"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment"""
    global _settings
    _settings = None
