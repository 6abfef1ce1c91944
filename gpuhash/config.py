"""
Configuration management for gpuhash.

Supports configuration via:
1. Environment variables (highest priority)
2. Config file (JSON)
3. Programmatic API
4. Defaults (lowest priority)
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from gpuhash.backends.base import BackendKind
from gpuhash.backends.host import DEFAULT_MEMORY_LIMIT
from gpuhash.core.planner import DEFAULT_BLOCK_SIZE
from gpuhash.core.probe import BackendFactory, default_backend_factories
from gpuhash.core.selector import AUTO, AUTO_PRIORITY, is_auto
from gpuhash.exceptions import InvalidConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "GPUHASH_"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off", ""):
        return False
    raise InvalidConfigurationError(name, value, "expected a boolean (0/1, true/false)")


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise InvalidConfigurationError(name, value, "expected an integer") from None


def _parse_priority(name: str, value: str) -> tuple[BackendKind, ...]:
    return tuple(BackendKind.parse(part) for part in value.split(",") if part.strip())


def _parse_str(name: str, value: str) -> str:
    return value


# Environment suffix -> (field name, parser)
_ENV_FIELDS: dict[str, tuple[str, Callable[[str, str], Any]]] = {
    "BACKEND": ("backend", _parse_str),
    "ALGORITHM": ("algorithm", _parse_str),
    "DEVICE": ("device_index", _parse_int),
    "BLOCK_SIZE": ("block_size", _parse_int),
    "AUTO_PRIORITY": ("auto_priority", _parse_priority),
    "OPENCL_ALLOW_CPU": ("opencl_allow_cpu", _parse_bool),
    "HOST_MEMORY_MB": ("host_memory_mb", _parse_int),
    "LOG_LEVEL": ("log_level", _parse_str),
}


@dataclass
class HashConfig:
    """
    Settings for hash requests.

    Environment variables:
    - GPUHASH_BACKEND: Backend mode ('auto', 'cuda', 'opencl', 'host')
    - GPUHASH_ALGORITHM: Default algorithm id
    - GPUHASH_DEVICE: Device index within the selected backend
    - GPUHASH_BLOCK_SIZE: Preferred threads per block
    - GPUHASH_AUTO_PRIORITY: Comma-separated order for 'auto'
    - GPUHASH_OPENCL_ALLOW_CPU: Accept OpenCL CPU devices (0 or 1)
    - GPUHASH_HOST_MEMORY_MB: Memory limit of the host backend
    - GPUHASH_LOG_LEVEL: Logging level for the command line
    """

    backend: str = AUTO
    algorithm: str = "sha256"
    device_index: int | None = None
    block_size: int = DEFAULT_BLOCK_SIZE
    auto_priority: tuple[BackendKind, ...] = field(default=AUTO_PRIORITY)
    opencl_allow_cpu: bool = False
    host_memory_mb: int = 1024
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        """Normalize and validate settings."""
        self.backend = self.backend.strip().lower()
        if not is_auto(self.backend):
            BackendKind.parse(self.backend)
        self.algorithm = self.algorithm.strip().lower()
        self.auto_priority = tuple(BackendKind.parse(k) for k in self.auto_priority)
        self.log_level = self.log_level.strip().upper()

        if self.device_index is not None and self.device_index < 0:
            raise InvalidConfigurationError("device_index", self.device_index, "must be >= 0")
        if self.block_size <= 0:
            raise InvalidConfigurationError("block_size", self.block_size, "must be positive")
        if self.host_memory_mb <= 0:
            raise InvalidConfigurationError(
                "host_memory_mb", self.host_memory_mb, "must be positive"
            )
        if self.log_level not in LOG_LEVELS:
            raise InvalidConfigurationError(
                "log_level", self.log_level, f"expected one of {LOG_LEVELS}"
            )

    @property
    def host_memory_limit(self) -> int:
        """Get the host backend memory limit in bytes."""
        return self.host_memory_mb * 1024 * 1024

    @property
    def uses_default_backends(self) -> bool:
        """Check whether the backend settings match the built-in defaults."""
        return not self.opencl_allow_cpu and self.host_memory_limit == DEFAULT_MEMORY_LIMIT

    def backend_factories(self) -> dict[BackendKind, BackendFactory]:
        """Get backend factories configured by these settings."""
        return default_backend_factories(
            opencl_allow_cpu=self.opencl_allow_cpu,
            host_memory_limit=self.host_memory_limit,
        )

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        base: HashConfig | None = None,
    ) -> HashConfig:
        """
        Build a config from ``GPUHASH_*`` environment variables.

        Args:
            environ: Environment mapping (default: ``os.environ``).
            base: Settings to start from (default: defaults).
        """
        env = os.environ if environ is None else environ
        values = base.to_dict() if base is not None else {}

        for suffix, (key, parse) in _ENV_FIELDS.items():
            name = ENV_PREFIX + suffix
            raw = env.get(name)
            if raw is not None:
                values[key] = parse(name, raw)

        return cls(**values)

    @classmethod
    def from_file(cls, config_file: str | Path) -> HashConfig:
        """
        Load a config from a JSON file, then apply environment overrides.

        Unknown keys are logged and ignored.

        Raises:
            InvalidConfigurationError: If the file cannot be read or parsed.
        """
        path = Path(config_file)
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise InvalidConfigurationError("config_file", str(path), str(e)) from e

        if not isinstance(data, dict):
            raise InvalidConfigurationError("config_file", str(path), "expected a JSON object")

        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            if key in known:
                values[key] = value
            else:
                logger.warning("Unknown config key: %s", key)

        if "auto_priority" in values:
            values["auto_priority"] = tuple(values["auto_priority"])

        return cls.from_env(base=cls(**values))

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a dictionary of constructor arguments."""
        return asdict(self)

    def save_to_file(self, config_file: str | Path) -> None:
        """Save configuration to a JSON file."""
        path = Path(config_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.to_dict()
        data["auto_priority"] = [k.value for k in self.auto_priority]
        with open(path, "w") as f:
            json.dump(data, f, indent=2)
