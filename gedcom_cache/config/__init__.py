"""Simplified configuration management using environment variables."""
from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _parse_bool(value: Union[str, bool, None]) -> bool:
    """Parse boolean value from various formats."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, str):
        return value.lower() in ("true", "1", "yes", "on", "enabled")
    return bool(value)


def _getenv(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.getenv(key, default)


def _getenv_int(key: str, default: int) -> int:
    """Get integer environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Parsed integer value

    Raises:
        ValueError: If value cannot be parsed as integer
    """
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(
            f"Invalid integer value for {key}='{value}'. "
            f"Expected integer, got: {value}"
        ) from e


@dataclass
class Config:
    """Cache configuration loaded from environment variables."""

    # ========== Caching ==========
    enable_caching: bool = field(default_factory=lambda: _parse_bool(_getenv("GEDCOM_CACHE_ENABLED", "true")))
    cache_dir: Path = field(default_factory=lambda: Path(_getenv("GEDCOM_CACHE_DIR", "./cache")))
    cache_suffix: str = field(default_factory=lambda: _getenv("GEDCOM_CACHE_SUFFIX", ".sqlite"))
    compress_payloads: bool = field(default_factory=lambda: _parse_bool(_getenv("GEDCOM_CACHE_COMPRESS", "true")))
    heartbeat_interval: int = field(default_factory=lambda: _getenv_int("GEDCOM_CACHE_HEARTBEAT", 100))

    # ========== Parsing ==========
    source_encoding: Optional[str] = field(default_factory=lambda: _getenv("GEDCOM_SOURCE_ENCODING") or None)

    # ========== Logging ==========
    log_level: str = field(default_factory=lambda: _getenv("LOG_LEVEL", "INFO").upper())
    log_file: Optional[str] = field(default_factory=lambda: _getenv("LOG_FILE") or None)

    # ========== UI Settings ==========
    verbose: bool = field(default_factory=lambda: _parse_bool(_getenv("VERBOSE", "false")))

    def __post_init__(self):
        """Validate settings that have no usable fallback."""
        self.cache_dir = Path(self.cache_dir)
        if self.heartbeat_interval <= 0:
            raise ValueError(
                f"Invalid heartbeat interval {self.heartbeat_interval}. "
                "GEDCOM_CACHE_HEARTBEAT must be a positive integer"
            )
        if self.cache_suffix and not self.cache_suffix.startswith("."):
            self.cache_suffix = f".{self.cache_suffix}"

    def cache_path_for(self, source_path: Union[str, Path]) -> Path:
        """Default cache file for a GEDCOM source: ``cache_dir/<name><suffix>``."""
        return self.cache_dir / f"{Path(source_path).name}{self.cache_suffix}"


def _load_environment() -> None:
    """Load a .env file from the current or parent directory, if one exists."""
    for env_path in (Path(".env"), Path("../.env")):
        if env_path.exists():
            load_dotenv(env_path, override=False)
            logger.debug(f"Loaded environment from {env_path}")
            break


# Singleton instance with thread-safe initialization
_config_instance: Optional[Config] = None
_config_lock = threading.Lock()


def get_config() -> Config:
    """Get global config instance (singleton pattern, thread-safe)."""
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            # Double-check pattern to prevent race conditions
            if _config_instance is None:
                _load_environment()
                _config_instance = Config()
    return _config_instance


def reset_config() -> None:
    """Drop the global instance so the next ``get_config`` re-reads the environment."""
    global _config_instance
    with _config_lock:
        _config_instance = None


__all__ = ["Config", "get_config", "reset_config"]
