"""
THINROUTER Token Ledger

The token-transfer primitive the router settles against: debit a source,
credit a destination, query a balance. ``InMemoryTokenLedger`` models an
ERC-20 style token set with allowances. A settlement runs inside
``transaction()``, which holds the ledger for every leg and undoes them
all if any leg fails, so concurrent settlements never see or erase each
other's partial state.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import ContextManager, Dict, Iterator, Protocol, Tuple

from tools.thinrouter.codec import to_address
from tools.thinrouter.errors import TransferFailure

Key = Tuple[str, str]


class TokenLedger(Protocol):
    """Capability interface the router needs from a token."""

    def balance_of(self, asset: str, account: str) -> int:
        ...

    def transfer(self, asset: str, sender: str, recipient: str, amount: int) -> None:
        ...

    def transfer_from(self, asset: str, spender: str, owner: str, recipient: str, amount: int) -> None:
        ...

    def transaction(self) -> ContextManager[None]:
        ...


class InMemoryTokenLedger:
    """Multi-asset balances and allowances held in memory."""

    def __init__(self) -> None:
        self._balances: Dict[Key, int] = {}
        self._allowances: Dict[Tuple[str, str, str], int] = {}
        self._frozen: set = set()
        self._lock = threading.RLock()

    def mint(self, asset: str, account: str, amount: int) -> None:
        with self._lock:
            key = (to_address(asset), to_address(account))
            self._balances[key] = self._balances.get(key, 0) + amount

    def approve(self, asset: str, owner: str, spender: str, amount: int) -> None:
        with self._lock:
            self._allowances[(to_address(asset), to_address(owner), to_address(spender))] = amount

    def allowance(self, asset: str, owner: str, spender: str) -> int:
        with self._lock:
            return self._allowances.get((to_address(asset), to_address(owner), to_address(spender)), 0)

    def freeze(self, account: str) -> None:
        """Make every transfer touching ``account`` fail."""
        with self._lock:
            self._frozen.add(to_address(account))

    def balance_of(self, asset: str, account: str) -> int:
        with self._lock:
            return self._balances.get((to_address(asset), to_address(account)), 0)

    def transfer(self, asset: str, sender: str, recipient: str, amount: int) -> None:
        with self._lock:
            self._move(to_address(asset), to_address(sender), to_address(recipient), amount)

    def transfer_from(self, asset: str, spender: str, owner: str, recipient: str, amount: int) -> None:
        asset, spender, owner = to_address(asset), to_address(spender), to_address(owner)
        with self._lock:
            allowed = self._allowances.get((asset, owner, spender), 0)
            if allowed < amount:
                raise TransferFailure(f"allowance {allowed} < {amount} for {spender} on {owner}")
            self._move(asset, owner, to_address(recipient), amount)
            self._allowances[(asset, owner, spender)] = allowed - amount

    def _move(self, asset: str, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise TransferFailure(f"negative transfer amount {amount}")
        if sender in self._frozen or recipient in self._frozen:
            raise TransferFailure(f"transfer {sender} -> {recipient} rejected: account frozen")
        balance = self._balances.get((asset, sender), 0)
        if balance < amount:
            raise TransferFailure(f"balance {balance} < {amount} for {sender}")
        self._balances[(asset, sender)] = balance - amount
        self._balances[(asset, recipient)] = self._balances.get((asset, recipient), 0) + amount

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Hold the ledger for a multi-leg settlement; undo every leg if the block raises."""
        with self._lock:
            balances, allowances = dict(self._balances), dict(self._allowances)
            try:
                yield
            except BaseException:
                self._balances, self._allowances = balances, allowances
                raise
