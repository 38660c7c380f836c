from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
import json
import os
import logging
from pathlib import Path

from log_utils import configure_logging

# Set up logging
logger = logging.getLogger(__name__)

# Config file location
CONFIG_DIR = Path(os.environ.get("CONFIG_DIR", "/config"))
CONFIG_FILE = CONFIG_DIR / "quality_probe.json"


class ProbeSettings(BaseSettings):
    """Quality probe settings: environment (QUALITY_PROBE_*) overlaid by the JSON config file."""

    model_config = SettingsConfigDict(
        env_prefix="QUALITY_PROBE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Overall time budget before falling back to the estimator's current snapshot
    deadline_ms: int = Field(default=30000, gt=0)
    # Name of the offscreen render target used by the test publisher/subscriber
    render_target: str = "quality-probe-offscreen"
    # Estimator tuning
    min_samples: int = Field(default=5, ge=1)  # Scored intervals required before convergence is considered
    convergence_window: int = Field(default=5, ge=1)  # Trailing intervals that must agree
    convergence_tolerance: float = Field(default=0.1, ge=0)  # Max MOS spread inside the window
    video_floor_bps: int = 30000  # Video at or below this bitrate scores 1.0
    video_target_bps: int = 1000000  # Video at or above this bitrate scores 4.5
    # Analytics (probe lifecycle events)
    analytics_enabled: bool = False
    analytics_url: str = ""
    analytics_timeout: float = Field(default=10.0, gt=0)  # seconds
    client_version: str = "py-network-test-1.0.0"
    # Log level: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = "INFO"

    def analytics_configured(self) -> bool:
        return bool(self.analytics_enabled and self.analytics_url)


# In-memory cache of settings
_cached_settings: ProbeSettings | None = None


def load_settings() -> ProbeSettings:
    """Load settings from environment plus optional config file overrides."""
    global _cached_settings

    if _cached_settings is not None:
        return _cached_settings

    if CONFIG_FILE.exists():
        try:
            data = json.loads(CONFIG_FILE.read_text())
            _cached_settings = ProbeSettings(**data)
            logger.info(f"Loaded probe settings from {CONFIG_FILE}")
            return _cached_settings
        except Exception as e:
            logger.error(f"Failed to load settings from {CONFIG_FILE}: {e}")

    logger.debug("Using environment/default probe settings (no config file found or failed to parse)")
    _cached_settings = ProbeSettings()
    return _cached_settings


def clear_settings_cache() -> None:
    """Clear the cached settings (forces reload)."""
    global _cached_settings
    _cached_settings = None
    logger.debug("Settings cache cleared")


def get_settings() -> ProbeSettings:
    """Get the current probe settings."""
    return load_settings()


def get_log_level_from_env() -> str:
    """Get log level from LOG_LEVEL, falling back to the probe settings."""
    return os.environ.get("LOG_LEVEL", get_settings().log_level).upper()


def init_logging() -> str:
    """Install safe logging and apply the configured level. Call once at startup."""
    level = get_log_level_from_env()
    configure_logging(level)
    return set_log_level(level)


def set_log_level(level: str) -> str:
    """Set the logging level for all loggers dynamically. Returns the applied level."""
    level_upper = level.upper()

    # Validate log level
    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if level_upper not in valid_levels:
        logger.warning(f"Invalid log level '{level}', using INFO")
        level_upper = "INFO"

    numeric_level = getattr(logging, level_upper)
    logging.getLogger().setLevel(numeric_level)
    for logger_name in logging.root.manager.loggerDict:
        logging.getLogger(logger_name).setLevel(numeric_level)

    logger.info(f"Log level set to {level_upper}")
    return level_upper
