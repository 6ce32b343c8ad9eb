"""
THINROUTER Artifact Loading

Builds creation code from compiler artifacts (Foundry ``out/`` or Hardhat
``artifacts/`` JSON) with ABI-encoded constructor arguments appended.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from tools.thinrouter.errors import ConfigurationError

ROUTER_CONSTRUCTOR_TYPES = ["address", "address", "address", "uint16"]


@dataclass
class Artifact:
    path: Path
    bytecode: bytes
    abi: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def constructor_types(self) -> Optional[List[str]]:
        for entry in self.abi:
            if entry.get("type") == "constructor":
                return [i["type"] for i in entry.get("inputs", [])]
        return None

    @property
    def constructor_names(self) -> List[str]:
        for entry in self.abi:
            if entry.get("type") == "constructor":
                return [i.get("name", "") for i in entry.get("inputs", [])]
        return []


def _hex_field(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get("object")
    if isinstance(value, str) and value.strip() not in ("", "0x"):
        return value.strip()
    return None


def extract_bytecode(data: Dict[str, Any]) -> Optional[str]:
    """First non-empty creation code among bytecode, object, evm.bytecode.object.

    Runtime code (``deployedBytecode``) is never a candidate.
    """
    evm = data.get("evm") or {}
    candidates = (
        data.get("bytecode"),
        data.get("object"),
        (evm.get("bytecode") or {}),
    )
    for candidate in candidates:
        found = _hex_field(candidate)
        if found:
            return found
    return None


def resolve_artifact_path(requested: Union[str, Path], search_roots: Sequence[Path] = ()) -> Path:
    """
    Locate an artifact, trying ``requested`` as given and then under each root.

    Raises:
        ConfigurationError: if no candidate exists.
    """
    requested = Path(requested)
    candidates = [requested] + [root / requested for root in search_roots]
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    tried = ", ".join(str(c) for c in candidates)
    raise ConfigurationError(f"artifact not found, tried: {tried}")


def load_artifact(path: Union[str, Path], search_roots: Sequence[Path] = ()) -> Artifact:
    resolved = resolve_artifact_path(path, search_roots)
    try:
        data = json.loads(resolved.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"cannot read artifact {resolved}: {e}") from e

    bytecode = extract_bytecode(data)
    if not bytecode:
        raise ConfigurationError(f"artifact missing bytecode: {resolved}")
    try:
        raw = bytes.fromhex(bytecode[2:] if bytecode.startswith("0x") else bytecode)
    except ValueError as e:
        raise ConfigurationError(f"artifact bytecode is not hex (unlinked libraries?): {resolved}") from e
    return Artifact(path=resolved, bytecode=raw, abi=data.get("abi") or [])


def _coerce(abi_type: str, value: Any) -> Any:
    if abi_type.startswith(("uint", "int")) and isinstance(value, str):
        return int(value, 0)
    if abi_type == "address":
        return to_checksum_address(value)
    if abi_type.startswith("bytes") and isinstance(value, str):
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    return value


def encode_constructor_args(types: Sequence[str], values: Sequence[Any]) -> bytes:
    if len(types) != len(values):
        raise ConfigurationError(
            f"constructor expects {len(types)} arguments, got {len(values)}"
        )
    return encode(list(types), [_coerce(t, v) for t, v in zip(types, values)])


def parse_constructor_args(raw: Union[str, Any, None], artifact: Optional[Artifact] = None) -> bytes:
    """
    Encode constructor arguments given as JSON.

    Accepted shapes:
        [v1, v2, ...]                          types from the artifact ABI
        {"name": value, ...}                   matched to ABI input names
        {"types": [...], "values": [...]}      explicit types
    """
    if raw in (None, "", "{}", "[]"):
        return b""
    args = json.loads(raw) if isinstance(raw, str) else raw

    if isinstance(args, dict) and "types" in args and "values" in args:
        return encode_constructor_args(args["types"], args["values"])

    types = artifact.constructor_types if artifact else None
    if types is None:
        raise ConfigurationError("constructor args given but the artifact ABI has no constructor")
    if isinstance(args, dict):
        names = artifact.constructor_names
        if all(n in args for n in names):
            values = [args[n] for n in names]
        else:
            values = list(args.values())
    elif isinstance(args, list):
        values = args
    else:
        raise ConfigurationError(f"unsupported constructor args: {args!r}")
    return encode_constructor_args(types, values)


def creation_code(artifact: Artifact, constructor_args: bytes = b"") -> bytes:
    return artifact.bytecode + constructor_args


def router_creation_code(
    artifact: Artifact,
    admin: str,
    fee_recipient: str,
    default_target: str,
    src_chain_id: int,
) -> bytes:
    args = encode_constructor_args(
        ROUTER_CONSTRUCTOR_TYPES, [admin, fee_recipient, default_target, src_chain_id]
    )
    return creation_code(artifact, args)


def init_code_hash(code: bytes) -> bytes:
    return keccak(code)
