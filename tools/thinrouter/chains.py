"""
THINROUTER Chain Registry

Loads the chain list (bundled ``chains.yaml`` or a user file), validates it
against ``schemas/chains.schema.json`` and resolves each chain's RPC endpoint
from the environment.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import asdict, dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import yaml
from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from tools.thinrouter.errors import ConfigurationError

PACKAGE_DIR = Path(__file__).resolve().parent
SCHEMAS_DIR = PACKAGE_DIR / "schemas"
DEFAULT_REGISTRY = PACKAGE_DIR / "chains.yaml"

_PLACEHOLDER = re.compile(r"\$\{([A-Z0-9_]+)\}")


@dataclass(frozen=True)
class ChainConfig:
    """One target chain."""
    name: str
    chain_id: int
    rpc_env: str
    explorer_url: str = ""
    faucet_hint: str = ""
    rpc_url: str = ""

    @property
    def key(self) -> str:
        """Key used for per-chain environment overrides (``NAME__<key>``)."""
        return self.rpc_env

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v != ""}


@lru_cache(maxsize=1)
def _schema_registry() -> Registry:
    resources = []
    for schema_path in sorted(SCHEMAS_DIR.glob("*.schema.json")):
        schema = json.loads(schema_path.read_text(encoding="utf-8"))
        resource = Resource.from_contents(schema, default_specification=DRAFT202012)
        resources.append((schema["$id"], resource))
    return Registry().with_resources(resources)


def registry_validator() -> Draft202012Validator:
    schema = json.loads((SCHEMAS_DIR / "chains.schema.json").read_text(encoding="utf-8"))
    return Draft202012Validator(schema, registry=_schema_registry())


def validate_registry(data: Any) -> List[str]:
    """Return human-readable schema violations (empty when valid)."""
    errors = []
    for err in sorted(registry_validator().iter_errors(data), key=lambda e: list(e.path)):
        location = "/".join(str(p) for p in err.path) or "<root>"
        errors.append(f"{location}: {err.message}")
    return errors


def load_chain_registry(path: Optional[Union[str, Path]] = None) -> List[ChainConfig]:
    """
    Load and validate a chain registry.

    Raises:
        ConfigurationError: on unreadable YAML, schema violations or
            duplicate chain names.
    """
    path = Path(path) if path else DEFAULT_REGISTRY
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"cannot read chain registry {path}: {e}") from e

    errors = validate_registry(data)
    if errors:
        raise ConfigurationError(f"invalid chain registry {path}: " + "; ".join(errors))

    chains = [ChainConfig(**entry) for entry in data["chains"]]
    names = [c.name for c in chains]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigurationError(f"duplicate chain names in {path}: {', '.join(duplicates)}")
    return chains


def resolve_placeholders(raw: Optional[str], env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """
    Expand ``${VAR}`` from the environment, drop whitespace and surrounding
    quotes. Returns None when nothing usable remains.
    """
    if not raw:
        return None
    env = os.environ if env is None else env
    value = _PLACEHOLDER.sub(lambda m: env.get(m.group(1), ""), raw)
    value = re.sub(r"\s+", "", value)
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1]
    return value or None


def resolve_rpc(chain: ChainConfig, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Endpoint from the chain's env var, falling back to a registry ``rpc_url``."""
    env = os.environ if env is None else env
    return resolve_placeholders(env.get(chain.rpc_env), env) or resolve_placeholders(chain.rpc_url, env)


def select_chains(chains: Sequence[ChainConfig], selectors: Iterable[str]) -> List[ChainConfig]:
    """
    Filter by name, chain id or RPC env key; empty selectors keep all.

    Raises:
        ConfigurationError: if a selector matches no chain.
    """
    wanted = [s.strip() for s in selectors if s and s.strip()]
    if not wanted:
        return list(chains)

    selected: List[ChainConfig] = []
    for selector in wanted:
        matches = [
            c for c in chains
            if selector in (c.name, str(c.chain_id), c.rpc_env)
        ]
        if not matches:
            raise ConfigurationError(f"unknown chain selector: {selector}")
        selected.extend(c for c in matches if c not in selected)
    return selected


def chain_by_id(chains: Sequence[ChainConfig], chain_id: int) -> Optional[ChainConfig]:
    for chain in chains:
        if chain.chain_id == chain_id:
            return chain
    return None
