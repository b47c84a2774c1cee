"""Download configuration from environment variables and config.yaml."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from rangefetch.errors.exceptions import ConfigurationError

# Default config path: config.yaml in the working directory
DEFAULT_CONFIG_PATH = Path("config.yaml")

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_or(data: Dict[str, Any], env_var: str, key: str, default: Any) -> Any:
    """Resolve a setting: environment variable, then config.yaml, then default."""
    value = os.getenv(env_var)
    if value is not None and value != "":
        return value
    return data.get(key, default)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


@dataclass
class DownloadConfig:
    """Chunked download configuration.

    Load from environment using DownloadConfig.from_env(), or from
    config.yaml plus environment using DownloadConfig.load_config().
    All timing values in seconds.
    """

    # Range planning
    parts: int = 4

    # Per-part retry budget (total attempts, not extra attempts)
    max_retries: int = 3
    retry_delay: float = 1.0  # attempt N waits N * retry_delay before N+1

    # Deadlines
    timeout_seconds: float = 300.0  # whole operation
    request_timeout: float = 60.0  # single HEAD/GET attempt

    # Streaming and part storage
    chunk_size: int = 1024 * 1024
    memory_threshold: int = 8 * 1024 * 1024  # parts held in memory at or below this total size
    work_dir: Optional[str] = None  # None = system temp directory

    # Orchestration
    fail_fast: bool = False
    max_connections_per_host: int = 0  # 0 = no per-host limit

    def validate(self) -> "DownloadConfig":
        """Check value ranges.

        Raises:
            ConfigurationError: If any value is out of range
        """
        if self.parts < 1:
            raise ConfigurationError(f"parts must be >= 1, got {self.parts}")
        if self.max_retries < 1:
            raise ConfigurationError(
                f"max_retries must be >= 1, got {self.max_retries}"
            )
        if self.retry_delay < 0:
            raise ConfigurationError(
                f"retry_delay must be >= 0, got {self.retry_delay}"
            )
        if self.timeout_seconds <= 0:
            raise ConfigurationError(
                f"timeout_seconds must be > 0, got {self.timeout_seconds}"
            )
        if self.request_timeout <= 0:
            raise ConfigurationError(
                f"request_timeout must be > 0, got {self.request_timeout}"
            )
        if self.chunk_size < 1:
            raise ConfigurationError(f"chunk_size must be >= 1, got {self.chunk_size}")
        if self.memory_threshold < 0:
            raise ConfigurationError(
                f"memory_threshold must be >= 0, got {self.memory_threshold}"
            )
        if self.max_connections_per_host < 0:
            raise ConfigurationError(
                "max_connections_per_host must be >= 0, "
                f"got {self.max_connections_per_host}"
            )
        return self

    @classmethod
    def from_env(cls) -> "DownloadConfig":
        """Load configuration from environment variables only.

        Optional environment variables (with defaults):
            RANGEFETCH_PARTS: 4
            RANGEFETCH_MAX_RETRIES: 3
            RANGEFETCH_RETRY_DELAY: 1.0
            RANGEFETCH_TIMEOUT_SECONDS: 300
            RANGEFETCH_REQUEST_TIMEOUT: 60
            RANGEFETCH_CHUNK_SIZE: 1048576
            RANGEFETCH_MEMORY_THRESHOLD: 8388608
            RANGEFETCH_WORK_DIR: system temp directory
            RANGEFETCH_FAIL_FAST: false
            RANGEFETCH_MAX_CONNECTIONS_PER_HOST: 0

        Raises:
            ConfigurationError: If a value cannot be parsed or is out of range
        """
        return cls._from_mapping({})

    @classmethod
    def load_config(cls, config_path: Optional[Path] = None) -> "DownloadConfig":
        """Load configuration from config.yaml and environment variables.

        Configuration priority (highest to lowest):
        1. Environment variables
        2. config.yaml file (under 'download:' key)
        3. Dataclass defaults

        Raises:
            ConfigurationError: If the file cannot be parsed or a value is invalid
        """
        config_path = config_path or DEFAULT_CONFIG_PATH

        download_data: Dict[str, Any] = {}
        if config_path.exists():
            try:
                with open(config_path, "r") as f:
                    yaml_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    f"Invalid YAML in {config_path}", cause=e
                ) from e
            download_data = yaml_data.get("download", {}) or {}

        return cls._from_mapping(download_data)

    @classmethod
    def _from_mapping(cls, data: Dict[str, Any]) -> "DownloadConfig":
        defaults = cls()
        try:
            config = cls(
                parts=int(_env_or(data, "RANGEFETCH_PARTS", "parts", defaults.parts)),
                max_retries=int(
                    _env_or(
                        data, "RANGEFETCH_MAX_RETRIES", "max_retries", defaults.max_retries
                    )
                ),
                retry_delay=float(
                    _env_or(
                        data, "RANGEFETCH_RETRY_DELAY", "retry_delay", defaults.retry_delay
                    )
                ),
                timeout_seconds=float(
                    _env_or(
                        data,
                        "RANGEFETCH_TIMEOUT_SECONDS",
                        "timeout_seconds",
                        defaults.timeout_seconds,
                    )
                ),
                request_timeout=float(
                    _env_or(
                        data,
                        "RANGEFETCH_REQUEST_TIMEOUT",
                        "request_timeout",
                        defaults.request_timeout,
                    )
                ),
                chunk_size=int(
                    _env_or(
                        data, "RANGEFETCH_CHUNK_SIZE", "chunk_size", defaults.chunk_size
                    )
                ),
                memory_threshold=int(
                    _env_or(
                        data,
                        "RANGEFETCH_MEMORY_THRESHOLD",
                        "memory_threshold",
                        defaults.memory_threshold,
                    )
                ),
                work_dir=_env_or(data, "RANGEFETCH_WORK_DIR", "work_dir", None),
                fail_fast=_as_bool(
                    _env_or(data, "RANGEFETCH_FAIL_FAST", "fail_fast", defaults.fail_fast)
                ),
                max_connections_per_host=int(
                    _env_or(
                        data,
                        "RANGEFETCH_MAX_CONNECTIONS_PER_HOST",
                        "max_connections_per_host",
                        defaults.max_connections_per_host,
                    )
                ),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid download configuration: {e}", cause=e) from e

        return config.validate()
