"""
TRADE-UP Configuration System

Two kinds of configuration live here:

    TradeUpConfig   process-wide settings (defaults, logging), loaded from YAML
                    files and TRADEUP_* environment variables
    EscrowConfig    the immutable parameters of one escrow, fixed at creation
                    and handed read-only to every escrow component

Configuration Sources (in order of precedence):
    1. Environment variables (TRADEUP_*)
    2. Runtime overrides
    3. User config file (~/.tradeup/config.yaml)
    4. Project config file (./tradeup.yaml)
    5. Default values

Copyright (c) 2024 Momentum. All rights reserved.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from tradeup.assets import AssetSpec, asset_class_name
from tradeup.hardening import Validators

T = TypeVar("T")


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding,
    validation, and change callbacks.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[T, T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])
        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Set the value with validation."""
        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"Invalid value for config: {value}")

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            return int(value)  # type: ignore
        else:
            return value  # type: ignore

    def on_change(self, callback: Callable[[T, T], None]) -> None:
        """Register a change callback."""
        self._callbacks.append(callback)


@dataclass
class EscrowDefaults:
    """Defaults applied when an escrow is created."""
    default_ttl_seconds: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=7 * 24 * 60 * 60,
        env_var="TRADEUP_DEFAULT_TTL",
        description="Chain time-to-live in seconds when none is given",
        validator=lambda x: isinstance(x, int) and x > 0,
    ))
    max_chain_length: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=0,
        env_var="TRADEUP_MAX_CHAIN_LENGTH",
        description="Maximum deposits per chain (0 = unbounded)",
        validator=lambda x: isinstance(x, int) and x >= 0,
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for Observability."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="TRADEUP_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="TRADEUP_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class TradeUpConfig:
    """
    Root configuration for TRADE-UP.

    Aggregates all component configurations and provides
    loading/saving functionality.
    """
    escrow: EscrowDefaults = field(default_factory=EscrowDefaults)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False)


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton that manages configuration lifecycle.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._config = TradeUpConfig()
        self._config_paths: List[Path] = []
        self._initialized = True

    @property
    def config(self) -> TradeUpConfig:
        """Get the current configuration."""
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {path}")

        self._apply_dict(data)
        self._config_paths.append(path)

    def load_defaults(self) -> List[Path]:
        """Load default configuration files if they exist. Returns the files loaded."""
        default_paths = [
            Path("tradeup.yaml"),
            Path("config/tradeup.yaml"),
            Path.home() / ".tradeup" / "config.yaml",
        ]

        loaded = []
        for path in default_paths:
            if path.exists():
                self.load_from_file(path)
                loaded.append(path)
        return loaded

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        """Apply dictionary values to configuration."""
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                path = f"{prefix}{key}"
                if not hasattr(config_obj, key):
                    raise ConfigError(f"Unknown config key: {path}")
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, f"{path}.")
                else:
                    raise ConfigError(f"Expected a mapping for config section: {path}")

        apply_to_config(self._config, data, "")

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("escrow.default_ttl_seconds", 3600)
        """
        attr = self._resolve(path)
        if isinstance(attr, ConfigValue):
            attr.set(value)
        else:
            raise ConfigError(f"Invalid config path: {path}")

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("observability.log_level")
        """
        obj = self._resolve(path)
        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def _resolve(self, path: str) -> Any:
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        return obj

    def reset(self) -> None:
        """Drop runtime overrides and forget loaded files."""
        self._config = TradeUpConfig()
        self._config_paths = []

    def validate(self) -> List[str]:
        """
        Validate all configuration values.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value}")
                except ValueError as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema


def get_config() -> TradeUpConfig:
    """Get the current TRADE-UP configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()


# =============================================================================
# PER-ESCROW CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class EscrowConfig:
    """
    Immutable parameters of one escrow.

    starting    exact spec the first deposit must equal for the chain to start
    final       exact or wildcard spec that completes the chain
    expires_at  timestamp at and after which an unfinished chain is expired
    minter      optional collaborator credited on each successful redemption
    """
    starting: AssetSpec
    final: AssetSpec
    expires_at: int
    minter: Any = None
    max_chain_length: int = 0

    def __post_init__(self) -> None:
        if self.starting.is_wildcard:
            raise ConfigValidationError("Starting asset spec must name an exact asset")
        for result in (
            Validators.validate_asset_id(self.starting.asset_id, "starting.asset_id"),
            Validators.validate_asset_id(self.final.asset_id, "final.asset_id", allow_wildcard=True),
        ):
            if not result.is_valid:
                raise ConfigValidationError(str(result.errors[0]))
        if isinstance(self.expires_at, bool) or not isinstance(self.expires_at, int):
            raise ConfigValidationError(f"expires_at must be an integer timestamp: {self.expires_at!r}")
        if self.max_chain_length < 0:
            raise ConfigValidationError("max_chain_length cannot be negative")

    @classmethod
    def create(
        cls,
        starting: AssetSpec,
        final: AssetSpec,
        now: int,
        ttl_seconds: Optional[int] = None,
        minter: Any = None,
        max_chain_length: Optional[int] = None,
    ) -> "EscrowConfig":
        """Build a configuration expiring `ttl_seconds` after `now`."""
        defaults = get_config().escrow
        if ttl_seconds is None:
            ttl_seconds = defaults.default_ttl_seconds.get()
        if ttl_seconds <= 0:
            raise ConfigValidationError(f"ttl_seconds must be positive: {ttl_seconds}")
        if max_chain_length is None:
            max_chain_length = defaults.max_chain_length.get()
        return cls(
            starting=starting,
            final=final,
            expires_at=now + ttl_seconds,
            minter=minter,
            max_chain_length=max_chain_length,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "starting": self.starting.to_dict(),
            "final": self.final.to_dict(),
            "expires_at": self.expires_at,
            "minter": asset_class_name(self.minter) if self.minter is not None else None,
            "max_chain_length": self.max_chain_length,
        }
