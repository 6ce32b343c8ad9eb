"""
THINROUTER Deployment Records

JSON documents keyed by chain id string. Writers from concurrent chain
workers are serialized; every write re-reads the file, merges one key and
atomically replaces the document, so records from other chains or other
processes that wrote in between are preserved.

    factories.json        {"84532": "0xFactory..."}
    router-deploys.json   {"84532": {"address": ..., "tx": ..., "rpc": ...,
                                     "chainId": 84532, "getters": {...}}}

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Union

from tools.thinrouter.errors import ConfigurationError
from tools.thinrouter.observability import RouterLayer, get_logger

logger = get_logger("store", RouterLayer.STORE)

FACTORIES_FILE = "factories.json"
ROUTERS_FILE = "router-deploys.json"

_locks: Dict[Path, threading.Lock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    with _locks_guard:
        return _locks.setdefault(path, threading.Lock())


class RecordStore:
    """One mergeable JSON document."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).resolve()
        self._lock = _lock_for(self.path)

    def read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"corrupt record file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"record file {self.path} must hold a JSON object")
        return data

    def get(self, chain_id: Union[int, str]) -> Optional[Any]:
        return self.read_all().get(str(chain_id))

    def put(self, chain_id: Union[int, str], value: Any) -> None:
        self.update(chain_id, lambda _old: value)

    def update(self, chain_id: Union[int, str], fn: Any) -> Any:
        """Apply ``fn(old) -> new`` to one key under the store lock."""
        key = str(chain_id)
        with self._lock:
            data = self.read_all()
            data[key] = fn(data.get(key))
            self._write(data)
            logger.debug("record written", path=str(self.path), key=key)
            return data[key]

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
                f.write("\n")
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise


class DeploymentStore:
    """Factory and router records under one state directory."""

    def __init__(self, state_dir: Union[str, Path]):
        self.state_dir = Path(state_dir)
        self.factories = RecordStore(self.state_dir / FACTORIES_FILE)
        self.routers = RecordStore(self.state_dir / ROUTERS_FILE)

    def factory_for(self, chain_id: int) -> Optional[str]:
        value = self.factories.get(chain_id)
        return value if isinstance(value, str) and value else None

    def record_factory(self, chain_id: int, address: str) -> None:
        self.factories.put(chain_id, address)

    def router_for(self, chain_id: int) -> Optional[Dict[str, Any]]:
        value = self.routers.get(chain_id)
        return value if isinstance(value, dict) else None

    def record_router(self, chain_id: int, **fields: Any) -> Dict[str, Any]:
        """Merge ``fields`` into the chain's router record."""
        def merge(old: Optional[Dict[str, Any]]) -> Dict[str, Any]:
            record = dict(old or {})
            record.update({k: v for k, v in fields.items() if v is not None})
            record["chainId"] = chain_id
            return record
        return self.routers.update(chain_id, merge)
