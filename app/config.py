from pathlib import Path
from typing import Literal
import logging

from croniter import croniter
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    log_level: str = "INFO"

    database_path: str = "./data/licenses.db"
    license_store_backend: Literal["sqlite", "memory"] = "sqlite"
    license_salt: str = "LIVETV2024"
    license_retention_days: int = 180  # 0 keeps issued licenses forever
    license_purge_cron: str = "0 4 * * *"  # Daily at 4 AM
    license_purge_misfire_grace_sec: int = 3600

    stripe_webhook_secret: str | None = None
    stripe_signature_tolerance_sec: int = 300

    resend_api_key: str | None = None
    license_email_from: str = "Live TV <noreply@livetv.local>"

    fetch_connect_timeout_sec: float = 10.0
    fetch_read_timeout_sec: float = 15.0
    schedule_parse_timeout_sec: int = 120  # 0 disables timeout

    default_playlist_url: str = "https://iptv-org.github.io/iptv/countries/ie.m3u"
    client_state_dir: str = "./data/client"

    cors_allow_origins: str = "*"  # Comma-separated list

    sqlite_journal_mode: str = "WAL"
    sqlite_cache_size_kb: int = 64000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate logging level name."""
        normalized = value.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, value: str) -> str:
        """Validate database path is accessible."""
        path = Path(value)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            return value
        except (OSError, PermissionError) as exc:
            raise ValueError(f"Cannot access database path '{value}': {exc}") from exc

    @field_validator("license_salt")
    @classmethod
    def validate_license_salt(cls, value: str) -> str:
        """Reject an empty salt."""
        if not value.strip():
            raise ValueError("license_salt must not be empty")
        return value

    @field_validator("license_retention_days")
    @classmethod
    def validate_retention(cls, value: int) -> int:
        """Validate retention is a non-negative number of days."""
        if value < 0:
            raise ValueError("license_retention_days must be >= 0")
        if value > 3650:
            raise ValueError("license_retention_days must be <= 3650 days")
        return value

    @field_validator("license_purge_misfire_grace_sec", "stripe_signature_tolerance_sec")
    @classmethod
    def validate_non_negative_seconds(cls, value: int, info) -> int:
        """Validate second-based settings are non-negative."""
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("schedule_parse_timeout_sec")
    @classmethod
    def validate_parse_timeout(cls, value: int) -> int:
        """Validate XML parsing timeout (seconds)."""
        if value < 0:
            raise ValueError("schedule_parse_timeout_sec must be >= 0")
        return value

    @field_validator("fetch_connect_timeout_sec", "fetch_read_timeout_sec")
    @classmethod
    def validate_positive_timeouts(cls, value: float, info) -> float:
        """Ensure HTTP timeouts are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("default_playlist_url")
    @classmethod
    def validate_playlist_url(cls, value: str) -> str:
        """Validate the default playlist URL is HTTP/HTTPS."""
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"Playlist URL must be HTTP/HTTPS: {value}")
        return value

    @field_validator("sqlite_cache_size_kb")
    @classmethod
    def validate_cache_size(cls, value: int) -> int:
        """Ensure the SQLite cache size is positive."""
        if value <= 0:
            raise ValueError("sqlite_cache_size_kb must be > 0")
        return value

    @field_validator("sqlite_journal_mode")
    @classmethod
    def validate_journal_mode(cls, value: str) -> str:
        """Validate SQLite journal mode."""
        normalized = value.upper()
        allowed = {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"}
        if normalized not in allowed:
            raise ValueError(f"sqlite_journal_mode must be one of {sorted(allowed)}")
        return normalized

    @field_validator("license_purge_cron")
    @classmethod
    def validate_cron_expression(cls, value: str) -> str:
        """Validate cron expression is valid."""
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins."""
        origins = [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]
        return origins or ["*"]

    @model_validator(mode="after")
    def validate_license_configuration(self):
        """Validate cross-field configuration."""
        if not self.stripe_webhook_secret:
            logger.warning(
                "STRIPE_WEBHOOK_SECRET not configured - webhook signatures will not be verified"
            )

        if self.license_store_backend == "memory" and self.license_retention_days:
            logger.info("In-memory license store selected - licenses are lost on restart")

        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  License Store: %s", self.license_store_backend)
        if self.license_store_backend == "sqlite":
            logger.info("  Database: %s", self.database_path)
        logger.info(
            "  License Retention: %s",
            f"{self.license_retention_days} days" if self.license_retention_days else "forever",
        )
        logger.info("  Purge Schedule: %s", self.license_purge_cron)
        logger.info(
            "  Webhook Signature Check: %s",
            "enabled" if self.stripe_webhook_secret else "disabled",
        )
        logger.info(
            "  License Email: %s",
            "resend" if self.resend_api_key else "log only",
        )
        logger.info(
            "  Fetch Timeouts: connect=%.1fs read=%.1fs",
            self.fetch_connect_timeout_sec,
            self.fetch_read_timeout_sec,
        )
        logger.info(
            "  Schedule Parse Timeout: %s",
            f"{self.schedule_parse_timeout_sec}s" if self.schedule_parse_timeout_sec else "disabled",
        )
        logger.info("  Client State Dir: %s", self.client_state_dir)


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
