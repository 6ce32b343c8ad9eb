"""
THINROUTER Chain Clients

The orchestrator talks to every chain through the ``ChainClient`` protocol.

    Web3ChainClient       web3.py over HTTP, transactions signed locally with
                          eth_account; reads are rate limited and retried
    InMemoryChainClient   deterministic stand-in that applies real CREATE and
                          CREATE2 address rules, for tests and dry runs

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector, keccak

from tools.thinrouter.codec import (
    contract_creation_address,
    create2_address_for_code,
    to_address,
)
from tools.thinrouter.config import env_override
from tools.thinrouter.errors import (
    DeploymentError,
    GasEstimationFailure,
    ReceiptTimeout,
    RpcUnavailable,
)
from tools.thinrouter.observability import RouterLayer, get_logger
from tools.thinrouter.resilience import RateLimiter, RetryExhaustedError, RetryPolicy
from tools.thinrouter.router import RouterIdentity

logger = get_logger("client", RouterLayer.CHAIN)

FACTORY_DEPLOY_SIGNATURE = "deploy(bytes32,bytes)"

# Minimal ABI for the identity getters every router exposes.
ROUTER_GETTERS_ABI: List[Dict[str, Any]] = [
    {"type": "function", "name": name, "stateMutability": "view", "inputs": [],
     "outputs": [{"name": "", "type": out}]}
    for name, out in (
        ("admin", "address"),
        ("feeRecipient", "address"),
        ("defaultTarget", "address"),
        ("SRC_CHAIN_ID", "uint16"),
    )
]

# Admin functions used by post-deploy configuration.
ROUTER_ADMIN_ABI: List[Dict[str, Any]] = [
    {"type": "function", "name": name, "stateMutability": "nonpayable",
     "inputs": [{"name": "value", "type": arg}], "outputs": []}
    for name, arg in (
        ("setAdapter", "address"),
        ("addAdapter", "address"),
        ("setFeeCollector", "address"),
        ("setProtocolFeeBps", "uint256"),
        ("setRelayerFeeBps", "uint256"),
        ("setProtocolShareBps", "uint256"),
        ("setLPShareBps", "uint256"),
    )
]


@dataclass(frozen=True)
class TxOverrides:
    """Optional gas and fee overrides (``GAS_LIMIT``, ``MAX_FEE_PER_GAS``, ...)."""
    gas_limit: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None

    @classmethod
    def from_env(cls, chain_key: str = "") -> "TxOverrides":
        def read(name: str) -> Optional[int]:
            raw = env_override(name, chain_key)
            if raw is None:
                return None
            try:
                return int(raw, 0)
            except ValueError:
                logger.warning("ignoring non-integer override", variable=name, value=raw)
                return None

        return cls(
            gas_limit=read("GAS_LIMIT"),
            max_fee_per_gas=read("MAX_FEE_PER_GAS"),
            max_priority_fee_per_gas=read("MAX_PRIORITY_FEE_PER_GAS"),
        )


@dataclass(frozen=True)
class Receipt:
    tx_hash: str
    status: int
    contract_address: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class ChainClient(Protocol):
    """What the orchestrator needs from one chain."""

    chain: str

    def chain_id(self) -> int:
        ...

    def get_balance(self, address: str) -> int:
        ...

    def get_transaction_count(self, address: str) -> int:
        ...

    def get_code(self, address: str) -> bytes:
        ...

    def deploy_contract(self, account: Any, creation_code: bytes, gas: Optional[int] = None,
                        overrides: TxOverrides = TxOverrides()) -> str:
        ...

    def send_factory_deploy(self, account: Any, factory: str, salt: bytes, creation_code: bytes,
                            gas: Optional[int] = None, overrides: TxOverrides = TxOverrides()) -> str:
        ...

    def send_contract_call(self, account: Any, address: str, function_name: str, args: Sequence[Any],
                           abi: Optional[List[Dict[str, Any]]] = None,
                           overrides: TxOverrides = TxOverrides()) -> str:
        ...

    def wait_for_receipt(self, tx_hash: str, timeout: float) -> Receipt:
        ...

    def read_router_identity(self, address: str) -> RouterIdentity:
        ...


def factory_deploy_calldata(salt: bytes, creation_code: bytes) -> bytes:
    """ABI calldata for ``deploy(bytes32 salt, bytes creationCode)``."""
    return function_signature_to_4byte_selector(FACTORY_DEPLOY_SIGNATURE) + encode(
        ["bytes32", "bytes"], [salt, creation_code]
    )


# =============================================================================
# WEB3
# =============================================================================


class Web3ChainClient:
    """
    ``ChainClient`` over a JSON-RPC HTTP endpoint.

    Reads go through the per-chain rate limiter and retry policy. Sends are
    issued once; callers decide whether to resubmit.
    """

    def __init__(
        self,
        chain: str,
        rpc_url: str,
        timeout_seconds: float = 30.0,
        retry: Optional[RetryPolicy] = None,
        limiter: Optional[RateLimiter] = None,
    ):
        from web3 import Web3

        self.chain = chain
        self.rpc_url = rpc_url
        self.w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout_seconds}))
        self._retry = retry or RetryPolicy(max_attempts=3)
        self._limiter = limiter or RateLimiter(requests_per_minute=120)
        self._chain_id: Optional[int] = None

    def _read(self, what: str, fn: Callable[[], Any]) -> Any:
        def attempt() -> Any:
            self._limiter.wait_and_acquire()
            return fn()
        try:
            return self._retry.execute(attempt)
        except RetryExhaustedError as e:
            raise RpcUnavailable(self.chain, f"{what} failed: {e.last_exception}") from e

    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(self._read("chain_id", lambda: self.w3.eth.chain_id))
        return self._chain_id

    def get_balance(self, address: str) -> int:
        return int(self._read("get_balance", lambda: self.w3.eth.get_balance(to_address(address))))

    def get_transaction_count(self, address: str) -> int:
        return int(self._read(
            "get_transaction_count",
            lambda: self.w3.eth.get_transaction_count(to_address(address)),
        ))

    def get_code(self, address: str) -> bytes:
        return bytes(self._read("get_code", lambda: self.w3.eth.get_code(to_address(address))))

    def _base_tx(self, account: Any, data: bytes, to: Optional[str], overrides: TxOverrides) -> Dict[str, Any]:
        tx: Dict[str, Any] = {
            "from": account.address,
            "data": data,
            "value": 0,
            "chainId": self.chain_id(),
            "nonce": self._read(
                "get_transaction_count",
                lambda: self.w3.eth.get_transaction_count(account.address, "pending"),
            ),
        }
        if to is not None:
            tx["to"] = to_address(to)
        if overrides.max_fee_per_gas is not None:
            tx["maxFeePerGas"] = overrides.max_fee_per_gas
            tx["maxPriorityFeePerGas"] = (
                overrides.max_priority_fee_per_gas
                if overrides.max_priority_fee_per_gas is not None
                else min(overrides.max_fee_per_gas, self._read("max_priority_fee", lambda: self.w3.eth.max_priority_fee))
            )
        else:
            tx["gasPrice"] = self._read("gas_price", lambda: self.w3.eth.gas_price)
        return tx

    def _send(self, account: Any, data: bytes, to: Optional[str], gas: Optional[int],
              overrides: TxOverrides) -> str:
        from web3.exceptions import Web3Exception

        tx = self._base_tx(account, data, to, overrides)
        gas = gas if gas is not None else overrides.gas_limit
        if gas is None:
            try:
                gas = int(self.w3.eth.estimate_gas(tx))
            except (Web3Exception, ValueError) as e:
                raise GasEstimationFailure(self.chain, f"estimate_gas failed: {e}") from e
        tx["gas"] = gas

        signed = account.sign_transaction(tx)
        try:
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except (Web3Exception, ValueError) as e:
            raise DeploymentError(self.chain, f"send_raw_transaction failed: {e}") from e
        return "0x" + bytes(tx_hash).hex()

    def deploy_contract(self, account: Any, creation_code: bytes, gas: Optional[int] = None,
                        overrides: TxOverrides = TxOverrides()) -> str:
        return self._send(account, creation_code, None, gas, overrides)

    def send_factory_deploy(self, account: Any, factory: str, salt: bytes, creation_code: bytes,
                            gas: Optional[int] = None, overrides: TxOverrides = TxOverrides()) -> str:
        return self._send(account, factory_deploy_calldata(salt, creation_code), factory, gas, overrides)

    def send_contract_call(self, account: Any, address: str, function_name: str, args: Sequence[Any],
                           abi: Optional[List[Dict[str, Any]]] = None,
                           overrides: TxOverrides = TxOverrides()) -> str:
        contract = self.w3.eth.contract(address=to_address(address), abi=abi or ROUTER_ADMIN_ABI)
        data = contract.encode_abi(function_name, args=list(args))
        return self._send(account, bytes.fromhex(data[2:]), address, None, overrides)

    def wait_for_receipt(self, tx_hash: str, timeout: float) -> Receipt:
        from web3.exceptions import TimeExhausted

        try:
            rc = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as e:
            raise ReceiptTimeout(self.chain, tx_hash, timeout) from e
        contract_address = rc.get("contractAddress")
        return Receipt(
            tx_hash=tx_hash,
            status=int(rc.get("status", 0)),
            contract_address=to_address(contract_address) if contract_address else None,
            block_number=rc.get("blockNumber"),
            gas_used=rc.get("gasUsed"),
        )

    def read_router_identity(self, address: str) -> RouterIdentity:
        contract = self.w3.eth.contract(address=to_address(address), abi=ROUTER_GETTERS_ABI)
        fns = contract.functions
        return RouterIdentity(
            admin=to_address(self._read("admin()", lambda: fns.admin().call())),
            fee_recipient=to_address(self._read("feeRecipient()", lambda: fns.feeRecipient().call())),
            default_target=to_address(self._read("defaultTarget()", lambda: fns.defaultTarget().call())),
            src_chain_id=int(self._read("SRC_CHAIN_ID()", lambda: fns.SRC_CHAIN_ID().call())),
        )


# =============================================================================
# IN-MEMORY
# =============================================================================


@dataclass
class SentTransaction:
    tx_hash: str
    sender: str
    to: Optional[str]
    data: bytes
    gas: Optional[int]
    kind: str


class InMemoryChainClient:
    """
    Simulated chain with CREATE / CREATE2 semantics.

    Failure injection:
        gas_estimation_failures   number of upcoming sends without explicit
                                  gas whose estimation fails
        receipt_timeouts          number of upcoming receipt waits that time
                                  out (the transaction is still applied)
        drop_transactions         sends are accepted but never mined
        unavailable_after_send    the RPC becomes unreachable right after the
                                  next accepted send
        unavailable               every call raises RpcUnavailable
    """

    def __init__(self, chain: str, chain_id: int, balances: Optional[Dict[str, int]] = None):
        self.chain = chain
        self._chain_id = chain_id
        self._balances: Dict[str, int] = {to_address(a): v for a, v in (balances or {}).items()}
        self._nonces: Dict[str, int] = {}
        self._code: Dict[str, bytes] = {}
        self._identities: Dict[str, RouterIdentity] = {}
        self._factories: set = set()
        self._pending: Dict[str, Receipt] = {}
        self._counter = itertools.count(1)
        self._lock = threading.RLock()
        self.sent: List[SentTransaction] = []
        self.calls: List[tuple] = []
        self.gas_estimation_failures = 0
        self.receipt_timeouts = 0
        self.drop_transactions = False
        self.unavailable = False
        self.unavailable_after_send = False

    def _check(self) -> None:
        if self.unavailable:
            raise RpcUnavailable(self.chain, "connection refused")

    def fund(self, address: str, wei: int) -> None:
        with self._lock:
            key = to_address(address)
            self._balances[key] = self._balances.get(key, 0) + wei

    def set_code(self, address: str, code: bytes) -> None:
        with self._lock:
            self._code[to_address(address)] = code

    def mark_factory(self, address: str, code: bytes = b"\x60\x80") -> None:
        """Place CREATE2 factory code at ``address`` without a transaction."""
        with self._lock:
            self._code[to_address(address)] = code
            self._factories.add(to_address(address))

    def chain_id(self) -> int:
        self._check()
        return self._chain_id

    def get_balance(self, address: str) -> int:
        self._check()
        with self._lock:
            return self._balances.get(to_address(address), 0)

    def get_transaction_count(self, address: str) -> int:
        self._check()
        with self._lock:
            return self._nonces.get(to_address(address), 0)

    def get_code(self, address: str) -> bytes:
        self._check()
        with self._lock:
            return self._code.get(to_address(address), b"")

    def _next_hash(self) -> str:
        return "0x" + keccak(text=f"{self.chain}:{next(self._counter)}").hex()

    def _submit(self, account: Any, to: Optional[str], data: bytes, gas: Optional[int],
                overrides: TxOverrides, kind: str, effect: Callable[[str], Receipt]) -> str:
        self._check()
        gas = gas if gas is not None else overrides.gas_limit
        with self._lock:
            if gas is None and self.gas_estimation_failures > 0:
                self.gas_estimation_failures -= 1
                raise GasEstimationFailure(self.chain, "execution reverted during estimate_gas")
            sender = to_address(account.address)
            tx_hash = self._next_hash()
            self.sent.append(SentTransaction(tx_hash, sender, to, data, gas, kind))
            receipt = None if self.drop_transactions else effect(tx_hash)
            self._nonces[sender] = self._nonces.get(sender, 0) + 1
            if receipt is not None:
                self._pending[tx_hash] = receipt
            if self.unavailable_after_send:
                self.unavailable = True
            return tx_hash

    def _register_identity(self, address: str, creation_code: bytes) -> None:
        if len(creation_code) < 128:
            return
        try:
            admin, fee_recipient, default_target, src = decode(
                ["address", "address", "address", "uint16"], creation_code[-128:]
            )
        except DecodingError:
            return
        self._identities[address] = RouterIdentity(
            to_address(admin), to_address(fee_recipient), to_address(default_target), int(src)
        )

    def deploy_contract(self, account: Any, creation_code: bytes, gas: Optional[int] = None,
                        overrides: TxOverrides = TxOverrides()) -> str:
        sender = to_address(account.address)

        def effect(tx_hash: str) -> Receipt:
            address = contract_creation_address(sender, self._nonces.get(sender, 0))
            self._code[address] = creation_code
            self._register_identity(address, creation_code)
            return Receipt(tx_hash=tx_hash, status=1, contract_address=address, block_number=len(self.sent))

        return self._submit(account, None, creation_code, gas, overrides, "create", effect)

    def send_factory_deploy(self, account: Any, factory: str, salt: bytes, creation_code: bytes,
                            gas: Optional[int] = None, overrides: TxOverrides = TxOverrides()) -> str:
        factory = to_address(factory)

        def effect(tx_hash: str) -> Receipt:
            if not self._code.get(factory):
                return Receipt(tx_hash=tx_hash, status=0, block_number=len(self.sent))
            address = create2_address_for_code(factory, salt, creation_code)
            if self._code.get(address):
                return Receipt(tx_hash=tx_hash, status=0, block_number=len(self.sent))
            self._code[address] = creation_code
            self._register_identity(address, creation_code)
            return Receipt(tx_hash=tx_hash, status=1, block_number=len(self.sent))

        return self._submit(
            account, factory, factory_deploy_calldata(salt, creation_code), gas, overrides, "create2", effect
        )

    def send_contract_call(self, account: Any, address: str, function_name: str, args: Sequence[Any],
                           abi: Optional[List[Dict[str, Any]]] = None,
                           overrides: TxOverrides = TxOverrides()) -> str:
        target = to_address(address)

        def effect(tx_hash: str) -> Receipt:
            status = 1 if self._code.get(target) else 0
            self.calls.append((target, function_name, tuple(args)))
            return Receipt(tx_hash=tx_hash, status=status, block_number=len(self.sent))

        return self._submit(account, target, b"", 100_000, overrides, "call", effect)

    def wait_for_receipt(self, tx_hash: str, timeout: float) -> Receipt:
        self._check()
        with self._lock:
            if self.receipt_timeouts > 0:
                self.receipt_timeouts -= 1
                raise ReceiptTimeout(self.chain, tx_hash, timeout)
            receipt = self._pending.get(tx_hash)
        if receipt is None:
            raise ReceiptTimeout(self.chain, tx_hash, timeout)
        return receipt

    def read_router_identity(self, address: str) -> RouterIdentity:
        self._check()
        with self._lock:
            identity = self._identities.get(to_address(address))
        if identity is None:
            raise DeploymentError(self.chain, f"no router at {to_address(address)}")
        return identity
