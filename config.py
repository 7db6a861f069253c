# config.py - Configuration management

import os
from dataclasses import dataclass
from typing import List

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

_FALSE_VALUES = {"false", "0", "no"}


@dataclass(frozen=True)
class HealthCheckSettings:
    """Tunables for the liveness prober."""

    check_interval: float = 24 * 60 * 60
    batch_size: int = 50
    max_concurrent: int = 10
    request_timeout: float = 10.0
    slow_threshold: float = 5.0
    max_redirects: int = 5
    batch_pause: float = 1.0
    user_agent: str = "Linkkeeper-HealthChecker/1.0"


class Config:
    """
    Configuration class to manage database, probing and bot settings
    """

    def __init__(self):
        # Database Configuration
        self.DB_NAME = os.getenv("DB_NAME", "linkkeeper")
        self.DB_USER = os.getenv("DB_USER", "postgres")
        self.DB_PASSWORD = os.getenv("DB_PASSWORD", "postgres")
        self.DB_HOST = os.getenv("DB_HOST", "localhost")
        self.DB_PORT = os.getenv("DB_PORT", "5432")

        # Operator console
        self.TELEGRAM_TOKEN = os.getenv("TELEGRAM_TOKEN")
        self.ADMIN_USER_IDS = _parse_id_list(os.getenv("ADMIN_USER_IDS", ""))

        # Health sweeps
        self.HEALTH_CHECK_INTERVAL_HOURS = float(os.getenv("HEALTH_CHECK_INTERVAL_HOURS", "24"))
        self.HEALTH_BATCH_SIZE = int(os.getenv("HEALTH_BATCH_SIZE", "50"))
        self.HEALTH_MAX_CONCURRENT = int(os.getenv("HEALTH_MAX_CONCURRENT", "10"))
        self.HEALTH_REQUEST_TIMEOUT = float(os.getenv("HEALTH_REQUEST_TIMEOUT", "10"))
        self.HEALTH_SLOW_THRESHOLD = float(os.getenv("HEALTH_SLOW_THRESHOLD", "5"))
        self.HEALTH_MAX_REDIRECTS = int(os.getenv("HEALTH_MAX_REDIRECTS", "5"))
        self.HEALTH_BATCH_PAUSE = float(os.getenv("HEALTH_BATCH_PAUSE", "1"))
        self.HEALTH_USER_AGENT = os.getenv("HEALTH_USER_AGENT", "Linkkeeper-HealthChecker/1.0")
        self.ENABLE_HEALTH_SWEEPS = os.getenv("ENABLE_HEALTH_SWEEPS", "true").lower() not in _FALSE_VALUES
        self.ENABLE_SHORT_URL_EXPANSION = (
            os.getenv("ENABLE_SHORT_URL_EXPANSION", "true").lower() not in _FALSE_VALUES
        )

        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

        # Validate settings
        self._validate_config()

    def _validate_config(self):
        """Check that numeric settings are usable"""
        positive_vars = {
            "HEALTH_CHECK_INTERVAL_HOURS": self.HEALTH_CHECK_INTERVAL_HOURS,
            "HEALTH_BATCH_SIZE": self.HEALTH_BATCH_SIZE,
            "HEALTH_MAX_CONCURRENT": self.HEALTH_MAX_CONCURRENT,
            "HEALTH_REQUEST_TIMEOUT": self.HEALTH_REQUEST_TIMEOUT,
            "HEALTH_SLOW_THRESHOLD": self.HEALTH_SLOW_THRESHOLD,
        }
        invalid_vars = [var for var, value in positive_vars.items() if value <= 0]

        if self.HEALTH_MAX_REDIRECTS < 0:
            invalid_vars.append("HEALTH_MAX_REDIRECTS")
        if self.HEALTH_BATCH_PAUSE < 0:
            invalid_vars.append("HEALTH_BATCH_PAUSE")

        if invalid_vars:
            raise ValueError(
                f"Invalid values for environment variables: {', '.join(invalid_vars)}\n"
                f"Please check your .env file."
            )

    def require_bot_token(self) -> str:
        """Returns the Telegram token, failing loudly when it is missing."""
        if not self.TELEGRAM_TOKEN:
            raise ValueError(
                "Missing required environment variables: TELEGRAM_TOKEN\n"
                "Please check your .env file."
            )
        return self.TELEGRAM_TOKEN

    def health_settings(self) -> HealthCheckSettings:
        return HealthCheckSettings(
            check_interval=self.HEALTH_CHECK_INTERVAL_HOURS * 60 * 60,
            batch_size=self.HEALTH_BATCH_SIZE,
            max_concurrent=self.HEALTH_MAX_CONCURRENT,
            request_timeout=self.HEALTH_REQUEST_TIMEOUT,
            slow_threshold=self.HEALTH_SLOW_THRESHOLD,
            max_redirects=self.HEALTH_MAX_REDIRECTS,
            batch_pause=self.HEALTH_BATCH_PAUSE,
            user_agent=self.HEALTH_USER_AGENT,
        )

    @property
    def database_url(self) -> str:
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    def __str__(self):
        """String representation for debugging (without exposing secrets)"""
        return f"""
Config Status:
- Telegram Token: {'✅' if self.TELEGRAM_TOKEN else '❌'}
- Database: {self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}
- Sweep interval: {self.HEALTH_CHECK_INTERVAL_HOURS}h, batch {self.HEALTH_BATCH_SIZE}, max {self.HEALTH_MAX_CONCURRENT} in flight
- Short URL expansion: {'on' if self.ENABLE_SHORT_URL_EXPANSION else 'off'}
        """


def _parse_id_list(raw: str) -> List[int]:
    ids: List[int] = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if chunk.isdigit():
            ids.append(int(chunk))
    return ids
