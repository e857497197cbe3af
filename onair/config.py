"""
Configuration management for OnAir.

Reads configuration from an env file and environment variables with sensible defaults.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# Default env file location
DEFAULT_ENV_FILE = Path("/etc/onair/onair.env")

# Project root (parent of the onair package), used for bundled assets
PROJECT_ROOT = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Invalid configuration value."""
    pass


def _load_env_file():
    """Load environment variables from env file if it exists."""
    env_file = os.getenv("ONAIR_ENV_FILE", str(DEFAULT_ENV_FILE))
    env_path = Path(env_file)

    if env_path.exists():
        load_dotenv(env_path, override=False)  # Don't override existing env vars


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name, str(default))
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"Invalid {name}: {value} (must be an integer)")


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name, str(default))
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"Invalid {name}: {value} (must be a number)")


@dataclass
class OnAirConfig:
    """OnAir configuration loaded from env file and environment variables."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = 3000

    # Locations
    public_dir: str = str(PROJECT_ROOT / "public")
    song_path: str = str(PROJECT_ROOT / "audio" / "songs" / "conversation.mp3")
    fx_dir: str = str(PROJECT_ROOT / "audio" / "fx")

    # External audio tool
    sox_bin: str = "sox"
    audio_media_type: str = "mp3"
    song_volume: float = 0.99
    fx_volume: float = 0.1
    mix_startup_timeout_ms: int = 5000

    # Pacing
    fallback_bit_rate: int = 128000
    bit_rate_divisor: int = 8  # bits -> bytes
    pacer_ticks_per_second: int = 10

    # Listeners
    listener_buffer_bytes: int = 65536
    max_listeners: int = 100

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def mix_startup_timeout_sec(self) -> float:
        return self.mix_startup_timeout_ms / 1000.0

    @classmethod
    def load_config(cls) -> "OnAirConfig":
        """
        Load configuration from environment variables.

        Returns:
            OnAirConfig instance with loaded values

        Raises:
            ConfigError: If configuration is invalid
        """
        # Load env file first (if it exists)
        _load_env_file()

        defaults = cls()

        log_file = os.getenv("ONAIR_LOG_FILE")
        if log_file == "":
            log_file = None

        config = cls(
            host=os.getenv("ONAIR_HOST", defaults.host),
            port=_get_int("ONAIR_PORT", defaults.port),
            public_dir=os.getenv("ONAIR_PUBLIC_DIR", defaults.public_dir),
            song_path=os.getenv("ONAIR_SONG_PATH", defaults.song_path),
            fx_dir=os.getenv("ONAIR_FX_DIR", defaults.fx_dir),
            sox_bin=os.getenv("ONAIR_SOX_BIN", defaults.sox_bin),
            audio_media_type=os.getenv("ONAIR_AUDIO_MEDIA_TYPE", defaults.audio_media_type),
            song_volume=_get_float("ONAIR_SONG_VOLUME", defaults.song_volume),
            fx_volume=_get_float("ONAIR_FX_VOLUME", defaults.fx_volume),
            mix_startup_timeout_ms=_get_int("ONAIR_MIX_STARTUP_TIMEOUT_MS", defaults.mix_startup_timeout_ms),
            fallback_bit_rate=_get_int("ONAIR_FALLBACK_BIT_RATE", defaults.fallback_bit_rate),
            bit_rate_divisor=_get_int("ONAIR_BIT_RATE_DIVISOR", defaults.bit_rate_divisor),
            pacer_ticks_per_second=_get_int("ONAIR_PACER_TICKS_PER_SECOND", defaults.pacer_ticks_per_second),
            listener_buffer_bytes=_get_int("ONAIR_LISTENER_BUFFER_BYTES", defaults.listener_buffer_bytes),
            max_listeners=_get_int("ONAIR_MAX_LISTENERS", defaults.max_listeners),
            log_level=os.getenv("ONAIR_LOG_LEVEL", defaults.log_level),
            log_file=log_file,
        )

        # Validate configuration
        config.validate()

        return config

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigError: If configuration is invalid
        """
        if self.port < 1 or self.port > 65535:
            raise ConfigError(f"Invalid port: {self.port} (must be 1-65535)")

        if self.fallback_bit_rate <= 0:
            raise ConfigError(f"Invalid fallback bit rate: {self.fallback_bit_rate} (must be > 0)")

        if self.bit_rate_divisor <= 0:
            raise ConfigError(f"Invalid bit rate divisor: {self.bit_rate_divisor} (must be > 0)")

        if self.pacer_ticks_per_second <= 0:
            raise ConfigError(
                f"Invalid pacer tick rate: {self.pacer_ticks_per_second} (must be > 0)"
            )

        for name in ("song_volume", "fx_volume"):
            volume = getattr(self, name)
            if volume < 0:
                raise ConfigError(f"Invalid {name}: {volume} (must be >= 0)")

        if self.mix_startup_timeout_ms <= 0:
            raise ConfigError(
                f"Invalid mix startup timeout: {self.mix_startup_timeout_ms} (must be > 0)"
            )

        if self.listener_buffer_bytes <= 0:
            raise ConfigError(
                f"Invalid listener buffer size: {self.listener_buffer_bytes} (must be > 0)"
            )

        if self.max_listeners <= 0:
            raise ConfigError(f"Invalid max listeners: {self.max_listeners} (must be > 0)")

        tick_bytes = self.fallback_bit_rate // self.bit_rate_divisor // self.pacer_ticks_per_second
        if self.listener_buffer_bytes < tick_bytes:
            raise ConfigError(
                f"Invalid listener buffer size: {self.listener_buffer_bytes} "
                f"(must hold one pacer tick, {tick_bytes} bytes)"
            )

        if not self.sox_bin:
            raise ConfigError("ONAIR_SOX_BIN cannot be empty")

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_log_levels:
            raise ConfigError(
                f"Invalid log level: {self.log_level} "
                f"(must be one of: {', '.join(valid_log_levels)})"
            )

        # Song and effects paths are checked when used
        if not Path(self.public_dir).is_dir():
            logger.warning(f"Public directory does not exist: {self.public_dir}")


def load_config() -> OnAirConfig:
    """
    Load and validate OnAir configuration from environment variables.

    Returns:
        OnAirConfig instance with loaded and validated values

    Raises:
        ConfigError: If configuration is invalid
    """
    try:
        return OnAirConfig.load_config()
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        raise
