"""Application configuration using pydantic-settings."""

import logging
import sys
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables
    prefixed with PARAMSYNC_ (e.g., PARAMSYNC_SERIAL_PORT).
    """

    serial_port: str = "/dev/ttyACM0"
    serial_baud: int = 57600
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    vehicle_id: int = 1
    gcs_system_id: int = 255
    gcs_component_id: int = 190

    state_dir: str = "/var/lib/paramsync-gateway"
    metadata_file: str | None = None
    default_component_param: str | None = None

    cache_timeout: float = 2.5
    initial_request_timeout: float = 6.0
    waiting_param_timeout: float = 1.0
    refresh_all_interval: float = 0.0
    max_read_retries: int = 10
    max_write_retries: int = 5
    max_batch_size: int = 10

    model_config = SettingsConfigDict(env_prefix="PARAMSYNC_")

    @property
    def cache_dir(self) -> Path:
        """Directory holding the per-vehicle parameter cache files."""
        return Path(self.state_dir) / "param_cache"


def setup_logging(level: str = "INFO") -> None:
    """Configure application logging.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )
