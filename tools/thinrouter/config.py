"""
THINROUTER Configuration

Typed configuration values with environment binding, validation and YAML
file loading.

Sources (in order of precedence):
    1. Environment variables (SALT_HEX, ROUTER_ARTIFACT, THINROUTER_*, ...)
    2. Values set at runtime or loaded from a YAML file
    3. Default values

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import os
import re
import threading
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from tools.thinrouter.errors import ConfigurationError

T = TypeVar("T")

_SALT_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


class ConfigValidationError(ConfigurationError):
    """A configuration value failed its validator."""


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    ``get()`` prefers the bound environment variable, then a value set at
    runtime, then the default.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)

    def get(self) -> T:
        if self.env_var and os.environ.get(self.env_var, "").strip():
            return self._coerce(os.environ[self.env_var].strip())
        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"Invalid value for config: {value!r}")
        self._value = value

    def reset(self) -> None:
        self._value = None

    def _coerce(self, value: str) -> T:
        target_type = type(self.default)
        try:
            if target_type == bool:
                return value.lower() in ("true", "1", "yes", "on")  # type: ignore
            elif target_type == int:
                return int(value, 0)  # type: ignore
            elif target_type == float:
                return float(value)  # type: ignore
            elif target_type == Decimal:
                return Decimal(value)  # type: ignore
            elif target_type == list:
                return [v.strip() for v in value.split(",") if v.strip()]  # type: ignore
        except (ValueError, InvalidOperation) as e:
            raise ConfigValidationError(f"{self.env_var}={value!r}: {e}") from e
        return value  # type: ignore


def is_salt_hex(value: str) -> bool:
    return bool(_SALT_RE.match(value or ""))


@dataclass
class DeployConfig:
    """Multi-chain deployment settings."""
    salt_hex: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="SALT_HEX",
        description="CREATE2 salt, 0x-prefixed 32 bytes (required for router deploys)",
        validator=lambda x: x == "" or is_salt_hex(x),
    ))
    router_artifact: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="out/Router.sol/Router.json",
        env_var="ROUTER_ARTIFACT",
        description="Compiler artifact holding the router creation bytecode",
    ))
    factory_artifact: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="out/Create2Factory.sol/Create2Factory.json",
        env_var="FACTORY_ARTIFACT",
        description="Compiler artifact holding the CREATE2 factory creation bytecode",
    ))
    constructor_args_json: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="CONSTRUCTOR_ARGS_JSON",
        description='JSON {"types": [...], "values": [...]} appended to the creation code',
    ))
    min_balance_eth: ConfigValue[Decimal] = field(default_factory=lambda: ConfigValue(
        default=Decimal("0.01"),
        env_var="DEPLOY_MIN_BAL_ETH",
        description="Skip chains where the deployer holds less than this (in ether)",
        validator=lambda x: Decimal(x) >= 0,
    ))
    chains: ConfigValue[list] = field(default_factory=lambda: ConfigValue(
        default=[],
        env_var="SELECT_CHAINS",
        description="Comma-separated chain names or ids to include (empty = all)",
    ))
    max_workers: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=4,
        env_var="THINROUTER_DEPLOY_WORKERS",
        description="Chains processed concurrently",
        validator=lambda x: 0 < x <= 64,
    ))
    receipt_timeout_seconds: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=180.0,
        env_var="THINROUTER_RECEIPT_TIMEOUT",
        description="Seconds to wait for a deployment receipt",
        validator=lambda x: x > 0,
    ))
    factory_fallback_gas: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=1_200_000,
        env_var="THINROUTER_FACTORY_FALLBACK_GAS",
        description="Explicit gas for the factory deploy when estimation fails",
        validator=lambda x: x > 21_000,
    ))
    router_fallback_gas: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=2_000_000,
        env_var="THINROUTER_ROUTER_FALLBACK_GAS",
        description="Explicit gas for factory.deploy when estimation fails",
        validator=lambda x: x > 21_000,
    ))
    direct_fallback_gas: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=2_500_000,
        env_var="THINROUTER_DIRECT_FALLBACK_GAS",
        description="Explicit gas for a direct router deploy when estimation fails",
        validator=lambda x: x > 21_000,
    ))
    state_dir: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="deployments",
        env_var="THINROUTER_STATE_DIR",
        description="Directory holding the persisted deployment records",
    ))
    rpc_timeout_seconds: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=30.0,
        env_var="THINROUTER_RPC_TIMEOUT",
        description="HTTP timeout for RPC requests",
        validator=lambda x: x > 0,
    ))
    rpc_retry_attempts: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=3,
        env_var="THINROUTER_RPC_RETRIES",
        description="Attempts for idempotent RPC reads",
        validator=lambda x: x >= 1,
    ))
    rpc_requests_per_minute: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=120,
        env_var="THINROUTER_RPC_RATE",
        description="Per-chain request budget",
        validator=lambda x: x > 0,
    ))
    chain_registry: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="THINROUTER_CHAINS_FILE",
        description="Chain registry YAML overriding the bundled one",
    ))


@dataclass
class RouterSettings:
    """Protocol-level settings."""
    domain_name: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="Zoopx Router",
        env_var="THINROUTER_DOMAIN_NAME",
        description="EIP-712 domain name",
    ))
    domain_version: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="1",
        env_var="THINROUTER_DOMAIN_VERSION",
        description="EIP-712 domain version",
    ))


@dataclass
class ObservabilityConfig:
    """Logging settings."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="THINROUTER_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="THINROUTER_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class ThinRouterConfig:
    """Root configuration."""
    deploy: DeployConfig = field(default_factory=DeployConfig)
    router: RouterSettings = field(default_factory=RouterSettings)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton.
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
        self._config = ThinRouterConfig()
        self._config_paths: List[Path] = []
        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton (test isolation)."""
        with cls._lock:
            cls._instance = None

    @property
    def config(self) -> ThinRouterConfig:
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if data:
            if not isinstance(data, dict):
                raise ConfigurationError(f"{path}: top level must be a mapping")
            self._apply_dict(data)
            self._config_paths.append(path)

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                if not hasattr(config_obj, key):
                    raise ConfigurationError(f"Unknown config key: {prefix}{key}")
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    if isinstance(attr.default, Decimal) and not isinstance(value, Decimal):
                        value = Decimal(str(value))
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, f"{prefix}{key}.")

        apply_to_config(self._config, data, "")

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by dotted path.

        Example: config.set("deploy.max_workers", 8)
        """
        attr = self._resolve(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigurationError(f"Invalid config path: {path}")
        attr.set(value)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by dotted path.

        Example: config.get("deploy.salt_hex")
        """
        obj = self._resolve(path)
        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def _resolve(self, path: str) -> Any:
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigurationError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        return obj

    def validate(self) -> List[str]:
        """Validate all configuration values; returns a list of problems."""
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value!r}")
                except ConfigurationError as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def require_salt(self) -> bytes:
        """
        The CREATE2 salt as 32 raw bytes.

        Raises:
            ConfigurationError: if SALT_HEX is missing or malformed. This is
                the one process-fatal configuration error.
        """
        salt = self._config.deploy.salt_hex.get()
        if not is_salt_hex(salt):
            raise ConfigurationError("SALT_HEX must be set to a 0x-prefixed 32-byte hex value")
        return bytes.fromhex(salt[2:])


def get_config() -> ThinRouterConfig:
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    return ConfigManager()


def env_override(name: str, chain_key: str = "") -> Optional[str]:
    """
    Per-chain environment override: ``NAME__<CHAIN_KEY>`` wins over ``NAME``.

    ``chain_key`` is upper-cased with non-alphanumerics folded to ``_``.
    """
    if chain_key:
        key = re.sub(r"[^A-Za-z0-9]", "_", chain_key).upper()
        scoped = os.environ.get(f"{name}__{key}", "").strip()
        if scoped:
            return scoped
    value = os.environ.get(name, "").strip()
    return value or None
