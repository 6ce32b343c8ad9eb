"""
THINROUTER Authorization State Machine

Who may invoke the direct (legacy) route path:

    OPEN                  no adapter configured; any caller is admitted
    LEGACY_ADAPTER_SET    only the single legacy adapter is admitted
    ROLE_SET              only members of the adapter role set are admitted

The state is derived from the adapter configuration, never stored
separately, so transitions happen exactly when the Admin edits adapters.
The signed path does not consult this machine.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import FrozenSet, List, Optional, Protocol

from tools.thinrouter.codec import is_zero_address, to_address


class AuthorizationState(Enum):
    """Direct-path authorization states."""
    OPEN = "open"
    LEGACY_ADAPTER_SET = "legacy_adapter_set"
    ROLE_SET = "role_set"


class Authorizer(Protocol):
    """Decides whether a caller may use the direct route path."""

    @property
    def state(self) -> AuthorizationState:
        ...

    def admits(self, caller: str) -> bool:
        ...


class OpenOrSingleAdapter:
    """Admits everyone while no adapter is set, else only the legacy adapter."""

    def __init__(self, legacy_adapter: Optional[str] = None):
        self._legacy = to_address(legacy_adapter) if legacy_adapter else None

    @property
    def state(self) -> AuthorizationState:
        if self._legacy is None:
            return AuthorizationState.OPEN
        return AuthorizationState.LEGACY_ADAPTER_SET

    def admits(self, caller: str) -> bool:
        if self._legacy is None:
            return True
        return to_address(caller) == self._legacy


class RoleSet:
    """Admits members of the adapter role set."""

    def __init__(self, members: FrozenSet[str]):
        self._members = frozenset(to_address(m) for m in members)

    @property
    def state(self) -> AuthorizationState:
        return AuthorizationState.ROLE_SET

    def admits(self, caller: str) -> bool:
        return to_address(caller) in self._members


class AdapterSet:
    """
    Adapter configuration: a role set plus the deprecated single legacy slot.

    Mutation is Admin-gated by the router; this class only holds state.
    """

    def __init__(self) -> None:
        self._roles: List[str] = []
        self._legacy: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def legacy_adapter(self) -> Optional[str]:
        return self._legacy

    @property
    def members(self) -> List[str]:
        with self._lock:
            return list(self._roles)

    def set_legacy(self, adapter: Optional[str]) -> None:
        """Set or clear (``None`` / zero address) the legacy adapter slot."""
        with self._lock:
            if adapter is None or is_zero_address(adapter):
                self._legacy = None
            else:
                self._legacy = to_address(adapter)

    def add(self, adapter: str) -> bool:
        address = to_address(adapter)
        with self._lock:
            if address in self._roles:
                return False
            self._roles.append(address)
            return True

    def remove(self, adapter: str) -> bool:
        address = to_address(adapter)
        with self._lock:
            if address not in self._roles:
                return False
            self._roles.remove(address)
            return True

    def contains(self, adapter: str) -> bool:
        address = to_address(adapter)
        with self._lock:
            return address in self._roles or address == self._legacy

    def authorizer(self) -> Authorizer:
        return select_authorizer(self)


def select_authorizer(adapters: AdapterSet) -> Authorizer:
    """A non-empty role set takes precedence over the legacy slot."""
    members = adapters.members
    if members:
        return RoleSet(frozenset(members))
    return OpenOrSingleAdapter(adapters.legacy_adapter)
