"""
THINROUTER Replay Guard

At-most-once consumption of 32-byte keys in named keyspaces. The router
uses two independent keyspaces: message hashes from the direct path and
intent hashes from the signed path.

Committed keys are never removed. A reservation taken for a route that
then fails before commit is released, because that route never happened.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Set

from tools.thinrouter.errors import ReplayError

MESSAGES = "messages"
INTENTS = "intents"


class ReplayGuard:
    """Append-only registry of consumed keys."""

    def __init__(self, *keyspaces: str):
        self._used: Dict[str, Set[bytes]] = {ks: set() for ks in (keyspaces or (MESSAGES, INTENTS))}
        self._lock = threading.Lock()

    def _space(self, keyspace: str) -> Set[bytes]:
        try:
            return self._used[keyspace]
        except KeyError:
            raise KeyError(f"unknown keyspace: {keyspace}") from None

    def is_used(self, keyspace: str, key: bytes) -> bool:
        with self._lock:
            return key in self._space(keyspace)

    def consume(self, keyspace: str, key: bytes) -> bool:
        """
        Mark ``key`` as used.

        Returns True when the key was fresh. Raises ReplayError, leaving
        state unchanged, when it was already consumed.
        """
        with self._lock:
            space = self._space(keyspace)
            if key in space:
                raise ReplayError(keyspace, key)
            space.add(key)
            return True

    @contextmanager
    def reserve(self, keyspace: str, key: bytes) -> Iterator[bytes]:
        """
        Consume ``key`` for the duration of an operation.

        If the enclosed block raises, the key is released and the error
        propagates; otherwise the key stays consumed.
        """
        self.consume(keyspace, key)
        try:
            yield key
        except BaseException:
            with self._lock:
                self._used[keyspace].discard(key)
            raise

    def size(self, keyspace: str) -> int:
        with self._lock:
            return len(self._space(keyspace))
