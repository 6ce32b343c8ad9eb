"""
THINROUTER Deterministic Deployment Orchestrator

Puts the CREATE2 factory and the router at predictable addresses on many
chains. Each chain is processed independently on a bounded worker pool:

    resolve RPC ──▶ balance ──▶ expected address ──▶ code present? ──▶ send
        │              │               │                  │ yes         │
      skip           skip      persisted factory,    already deployed   │
                               else CREATE(nonce)                       ▼
                                                      receipt (timeout ⇒ re-check code)
                                                                        │
                                                    persist ◀── confirmed only
                                                        │
                                                verify getters, persist

One chain failing never stops the others; every chain yields a
``ChainReport``. Records are written only for confirmed deployments or
confirmed pre-existing bytecode, so re-running is always safe.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from eth_utils import from_wei, to_wei

from tools.thinrouter.artifacts import Artifact, router_creation_code
from tools.thinrouter.chains import ChainConfig, resolve_placeholders, resolve_rpc
from tools.thinrouter.client import ChainClient, Receipt, TxOverrides, Web3ChainClient
from tools.thinrouter.codec import (
    ZERO_ADDRESS,
    contract_creation_address,
    create2_address_for_code,
    to_address,
)
from tools.thinrouter.config import env_override
from tools.thinrouter.errors import (
    AlreadyDeployed,
    DeploymentError,
    FactoryMissing,
    GasEstimationFailure,
    InsufficientBalance,
    ReceiptTimeout,
    RouterError,
    RpcUnavailable,
    UnconfirmedTransaction,
)
from tools.thinrouter.observability import RouterLayer, get_logger
from tools.thinrouter.resilience import RateLimiter, RetryPolicy
from tools.thinrouter.router import SRC_CHAIN_ID_MAX, RouterIdentity
from tools.thinrouter.store import DeploymentStore

logger = get_logger("orchestrator", RouterLayer.DEPLOY)

ClientFactory = Callable[[ChainConfig], ChainClient]


class ChainStatus(Enum):
    DEPLOYED = "deployed"
    ALREADY_DEPLOYED = "already_deployed"
    SKIPPED = "skipped"
    FAILED = "failed"


# Deployment errors that end a chain without counting as unexpected.
_SKIP_ERRORS = (RpcUnavailable, InsufficientBalance)


@dataclass
class ChainReport:
    """Outcome for one chain."""
    chain: str
    chain_id: int
    status: ChainStatus
    address: Optional[str] = None
    tx_hash: Optional[str] = None
    factory: Optional[str] = None
    reason: str = ""
    error_code: str = ""
    getters: Optional[Dict[str, Any]] = None
    verified: Optional[bool] = None
    transactions: int = 0
    unexpected: bool = False

    @property
    def ok(self) -> bool:
        return self.status in (ChainStatus.DEPLOYED, ChainStatus.ALREADY_DEPLOYED)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return {k: v for k, v in data.items() if v not in (None, "")}


@dataclass
class ReadinessReport:
    """Pre-flight view of one chain; produced without sending transactions."""
    chain: str
    chain_id: int
    rpc_configured: bool
    balance_wei: Optional[int] = None
    meets_minimum: Optional[bool] = None
    nonce: Optional[int] = None
    persisted_factory: Optional[str] = None
    expected_factory: Optional[str] = None
    factory_has_code: Optional[bool] = None
    expected_router: Optional[str] = None
    router_has_code: Optional[bool] = None
    error: str = ""

    @property
    def ready(self) -> bool:
        return bool(self.rpc_configured and self.meets_minimum and self.factory_has_code)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["ready"] = self.ready
        return {k: v for k, v in data.items() if v not in (None, "")}


@dataclass
class DeploySettings:
    """Knobs for one orchestrator run."""
    min_balance_wei: int = 0
    receipt_timeout_seconds: float = 180.0
    factory_fallback_gas: int = 1_200_000
    router_fallback_gas: int = 2_000_000
    direct_fallback_gas: int = 2_500_000
    max_workers: int = 4
    apply_env_overrides: bool = True

    @classmethod
    def from_config(cls, deploy_config: Any) -> "DeploySettings":
        return cls(
            min_balance_wei=to_wei(Decimal(deploy_config.min_balance_eth.get()), "ether"),
            receipt_timeout_seconds=float(deploy_config.receipt_timeout_seconds.get()),
            factory_fallback_gas=deploy_config.factory_fallback_gas.get(),
            router_fallback_gas=deploy_config.router_fallback_gas.get(),
            direct_fallback_gas=deploy_config.direct_fallback_gas.get(),
            max_workers=deploy_config.max_workers.get(),
        )


def web3_client_factory(
    timeout_seconds: float = 30.0,
    retry_attempts: int = 3,
    requests_per_minute: int = 120,
) -> ClientFactory:
    """Build a ``Web3ChainClient`` per chain from its resolved RPC endpoint."""
    def factory(chain: ChainConfig) -> ChainClient:
        rpc = resolve_rpc(chain)
        if not rpc:
            raise RpcUnavailable(chain.name, f"{chain.rpc_env} not set")
        return Web3ChainClient(
            chain.name,
            rpc,
            timeout_seconds=timeout_seconds,
            retry=RetryPolicy(max_attempts=retry_attempts, non_retryable_exceptions=(RouterError,)),
            limiter=RateLimiter(requests_per_minute=requests_per_minute),
        )
    return factory


def default_target_for(chain: ChainConfig) -> str:
    """``DEFAULT_TARGET__<KEY>``, then ``DEFAULT_TARGET``, else the zero address."""
    raw = resolve_placeholders(env_override("DEFAULT_TARGET", chain.key)) or ZERO_ADDRESS
    if raw.lower() == "0x0":
        return ZERO_ADDRESS
    return to_address(raw)


class DeploymentOrchestrator:
    """
    Deploys and verifies across a set of chains.

    Example:
        orchestrator = DeploymentOrchestrator(chains, deployer, store,
                                              web3_client_factory())
        reports = orchestrator.deploy_routers(salt, creation_code)
    """

    def __init__(
        self,
        chains: Sequence[ChainConfig],
        deployer: Any,
        store: DeploymentStore,
        client_factory: ClientFactory,
        settings: Optional[DeploySettings] = None,
    ):
        self.chains = list(chains)
        self.deployer = deployer
        self.store = store
        self.client_factory = client_factory
        self.settings = settings or DeploySettings()

    @property
    def deployer_address(self) -> str:
        return to_address(self.deployer.address)

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def _run(self, operation: str, work: Callable[[ChainConfig], ChainReport]) -> List[ChainReport]:
        if not self.chains:
            return []
        workers = max(1, min(self.settings.max_workers, len(self.chains)))
        start = time.monotonic()
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"thinrouter-{operation}") as pool:
            reports = list(pool.map(lambda c: self._guard(operation, c, work), self.chains))
        ok = sum(1 for r in reports if r.ok)
        logger.operation(
            operation,
            (time.monotonic() - start) * 1000,
            success=not any(r.unexpected for r in reports),
            chains=len(reports),
            succeeded=ok,
        )
        return reports

    def _guard(self, operation: str, chain: ChainConfig, work: Callable[[ChainConfig], ChainReport]) -> ChainReport:
        try:
            report = work(chain)
        except _SKIP_ERRORS as e:
            logger.warning(f"{operation} skipped: {e}", chain=chain.name, error_code=e.code)
            return ChainReport(chain.name, chain.chain_id, ChainStatus.SKIPPED, reason=str(e), error_code=e.code)
        except DeploymentError as e:
            logger.error(f"{operation} failed: {e}", chain=chain.name, error_code=e.code)
            return ChainReport(chain.name, chain.chain_id, ChainStatus.FAILED, reason=str(e), error_code=e.code,
                               tx_hash=getattr(e, "tx_hash", None),
                               unexpected=isinstance(e, UnconfirmedTransaction))
        except Exception as e:
            logger.error(f"{operation} crashed: {e}", chain=chain.name, error_code="unexpected", exc_info=True)
            return ChainReport(
                chain.name, chain.chain_id, ChainStatus.FAILED,
                reason=f"{type(e).__name__}: {e}", error_code="unexpected", unexpected=True,
            )
        level = logger.info if report.ok else logger.warning
        level(f"{operation}: {report.status.value}", chain=chain.name, address=report.address)
        return report

    # ------------------------------------------------------------------
    # Per-chain steps
    # ------------------------------------------------------------------

    def _connect(self, chain: ChainConfig) -> ChainClient:
        client = self.client_factory(chain)
        actual = client.chain_id()
        if actual != chain.chain_id:
            raise DeploymentError(chain.name, f"RPC reports chain id {actual}, registry says {chain.chain_id}")
        return client

    def _check_balance(self, chain: ChainConfig, client: ChainClient) -> int:
        balance = client.get_balance(self.deployer_address)
        minimum = self.settings.min_balance_wei
        if balance == 0 or balance < minimum:
            raise InsufficientBalance(chain.name, balance, minimum)
        return balance

    def _expected_factory(self, chain: ChainConfig, client: ChainClient) -> str:
        persisted = self.store.factory_for(chain.chain_id)
        if persisted:
            return to_address(persisted)
        nonce = client.get_transaction_count(self.deployer_address)
        expected = contract_creation_address(self.deployer_address, nonce)
        logger.info("no persisted factory; derived from deployer nonce",
                    chain=chain.name, nonce=nonce, factory=expected)
        return expected

    def _overrides(self, chain: ChainConfig) -> TxOverrides:
        return TxOverrides.from_env(chain.key) if self.settings.apply_env_overrides else TxOverrides()

    def _send_with_gas_retry(self, chain: ChainConfig, send: Callable[[Optional[int]], str],
                             fallback_gas: int) -> str:
        """Send once with estimation; on estimation failure retry once with explicit gas."""
        try:
            return send(None)
        except GasEstimationFailure as e:
            logger.warning("gas estimation failed; retrying with explicit gas",
                           chain=chain.name, gas=fallback_gas, error=str(e))
        try:
            return send(fallback_gas)
        except GasEstimationFailure as e:
            raise GasEstimationFailure(chain.name, f"failed with explicit gas {fallback_gas}: {e}") from e

    def _await(self, chain: ChainConfig, client: ChainClient, tx_hash: str) -> Optional[Receipt]:
        """Receipt, or None when the wait timed out."""
        try:
            return client.wait_for_receipt(tx_hash, self.settings.receipt_timeout_seconds)
        except ReceiptTimeout:
            logger.warning("receipt wait timed out; checking bytecode", chain=chain.name, tx_hash=tx_hash)
            return None

    @contextmanager
    def _confirming(self, chain: ChainConfig, tx_hash: str) -> Iterator[None]:
        """Once ``tx_hash`` is out, an unreachable RPC fails the chain instead of skipping it."""
        try:
            yield
        except RpcUnavailable as e:
            raise UnconfirmedTransaction(chain.name, tx_hash, str(e)) from e

    def _verify_getters(self, chain: ChainConfig, client: ChainClient, address: str,
                        expected: Optional[RouterIdentity]) -> tuple:
        try:
            identity = client.read_router_identity(address)
        except DeploymentError as e:
            logger.warning(f"getter verification failed: {e}", chain=chain.name, address=address)
            return None, False
        getters = identity.to_dict()
        verified = expected is None or identity == expected
        if not verified:
            logger.warning("router identity mismatch", chain=chain.name,
                           expected=expected.to_dict(), actual=getters)
        self.store.record_router(chain.chain_id, address=address, getters=getters)
        return getters, verified

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    def deploy_factories(self, factory_code: bytes) -> List[ChainReport]:
        """Deploy the CREATE2 factory with a plain CREATE on every chain."""
        return self._run("deploy_factory", lambda c: self._deploy_factory(c, factory_code))

    def _deploy_factory(self, chain: ChainConfig, factory_code: bytes) -> ChainReport:
        client = self._connect(chain)
        self._check_balance(chain, client)

        persisted = self.store.factory_for(chain.chain_id)
        if persisted:
            if client.get_code(persisted):
                return ChainReport(chain.name, chain.chain_id, ChainStatus.ALREADY_DEPLOYED,
                                   address=to_address(persisted), factory=to_address(persisted),
                                   reason=str(AlreadyDeployed(chain.name, persisted)))
            logger.warning("persisted factory has no code; redeploying", chain=chain.name, factory=persisted)

        nonce = client.get_transaction_count(self.deployer_address)
        expected = contract_creation_address(self.deployer_address, nonce)
        if client.get_code(expected):
            self.store.record_factory(chain.chain_id, expected)
            return ChainReport(chain.name, chain.chain_id, ChainStatus.ALREADY_DEPLOYED,
                               address=expected, factory=expected)

        overrides = self._overrides(chain)
        tx_hash = self._send_with_gas_retry(
            chain,
            lambda gas: client.deploy_contract(self.deployer, factory_code, gas=gas, overrides=overrides),
            self.settings.factory_fallback_gas,
        )
        with self._confirming(chain, tx_hash):
            receipt = self._await(chain, client, tx_hash)
            if receipt is not None and not receipt.succeeded:
                raise DeploymentError(chain.name, f"factory deploy {tx_hash} reverted")

            address = receipt.contract_address if receipt and receipt.contract_address else expected
            if address != expected:
                logger.warning("factory landed at unexpected address", chain=chain.name,
                               expected=expected, actual=address)
            if receipt is None and not client.get_code(address):
                raise ReceiptTimeout(chain.name, tx_hash, self.settings.receipt_timeout_seconds)

        self.store.record_factory(chain.chain_id, address)
        return ChainReport(chain.name, chain.chain_id, ChainStatus.DEPLOYED,
                           address=address, factory=address, tx_hash=tx_hash, transactions=1)

    # ------------------------------------------------------------------
    # Router via CREATE2
    # ------------------------------------------------------------------

    def expected_router_address(self, factory: str, salt: bytes, creation_code: bytes) -> str:
        return create2_address_for_code(factory, salt, creation_code)

    def deploy_routers(
        self,
        salt: bytes,
        creation_code: bytes,
        expected_identity: Optional[RouterIdentity] = None,
    ) -> List[ChainReport]:
        """
        ``factory.deploy(salt, creation_code)`` on every chain.

        The same factory address, salt and creation code give the same
        router address everywhere.
        """
        return self._run(
            "deploy_router",
            lambda c: self._deploy_router(c, salt, creation_code, expected_identity),
        )

    def _deploy_router(self, chain: ChainConfig, salt: bytes, creation_code: bytes,
                       expected_identity: Optional[RouterIdentity]) -> ChainReport:
        client = self._connect(chain)
        self._check_balance(chain, client)

        factory = self._expected_factory(chain, client)
        expected = self.expected_router_address(factory, salt, creation_code)
        report = ChainReport(chain.name, chain.chain_id, ChainStatus.DEPLOYED, address=expected, factory=factory)

        if client.get_code(expected):
            report.status = ChainStatus.ALREADY_DEPLOYED
            report.reason = str(AlreadyDeployed(chain.name, expected))
            if not self.store.router_for(chain.chain_id):
                self.store.record_router(chain.chain_id, address=expected, factory=factory,
                                         rpc=getattr(client, "rpc_url", None))
            report.getters, report.verified = self._verify_getters(chain, client, expected, expected_identity)
            return report

        if not client.get_code(factory):
            raise FactoryMissing(chain.name, factory)

        overrides = self._overrides(chain)
        tx_hash = self._send_with_gas_retry(
            chain,
            lambda gas: client.send_factory_deploy(
                self.deployer, factory, salt, creation_code, gas=gas, overrides=overrides
            ),
            self.settings.router_fallback_gas,
        )
        report.tx_hash = tx_hash
        report.transactions = 1

        with self._confirming(chain, tx_hash):
            receipt = self._await(chain, client, tx_hash)
            if receipt is not None and not receipt.succeeded:
                raise DeploymentError(chain.name, f"factory.deploy {tx_hash} reverted")
            if not client.get_code(expected):
                if receipt is None:
                    raise ReceiptTimeout(chain.name, tx_hash, self.settings.receipt_timeout_seconds)
                raise DeploymentError(chain.name, f"no code at {expected} after successful receipt")

        self.store.record_router(chain.chain_id, address=expected, tx=tx_hash, factory=factory,
                                 rpc=getattr(client, "rpc_url", None))
        report.getters, report.verified = self._verify_getters(chain, client, expected, expected_identity)
        return report

    # ------------------------------------------------------------------
    # Router via plain CREATE (per-chain constructor arguments)
    # ------------------------------------------------------------------

    def deploy_direct(
        self,
        artifact: Artifact,
        fee_recipient: Optional[str] = None,
        default_target: Callable[[ChainConfig], str] = default_target_for,
    ) -> List[ChainReport]:
        """
        Deploy the router directly with ``srcChainId = chainId & 0xffff``.

        Addresses differ per chain on this path; use ``deploy_routers`` for a
        uniform address.
        """
        return self._run(
            "deploy_direct",
            lambda c: self._deploy_direct(c, artifact, fee_recipient, default_target),
        )

    def _deploy_direct(self, chain: ChainConfig, artifact: Artifact, fee_recipient: Optional[str],
                       default_target: Callable[[ChainConfig], str]) -> ChainReport:
        client = self._connect(chain)
        self._check_balance(chain, client)

        identity = RouterIdentity(
            admin=self.deployer_address,
            fee_recipient=to_address(fee_recipient) if fee_recipient else self.deployer_address,
            default_target=default_target(chain),
            src_chain_id=chain.chain_id & SRC_CHAIN_ID_MAX,
        )
        existing = self.store.router_for(chain.chain_id)
        if existing and existing.get("address") and client.get_code(existing["address"]):
            address = to_address(existing["address"])
            getters, verified = self._verify_getters(chain, client, address, identity)
            return ChainReport(chain.name, chain.chain_id, ChainStatus.ALREADY_DEPLOYED,
                               address=address, getters=getters, verified=verified,
                               reason=str(AlreadyDeployed(chain.name, address)))

        code = router_creation_code(
            artifact, identity.admin, identity.fee_recipient, identity.default_target, identity.src_chain_id
        )
        nonce = client.get_transaction_count(self.deployer_address)
        expected = contract_creation_address(self.deployer_address, nonce)
        overrides = self._overrides(chain)
        tx_hash = self._send_with_gas_retry(
            chain,
            lambda gas: client.deploy_contract(self.deployer, code, gas=gas, overrides=overrides),
            self.settings.direct_fallback_gas,
        )
        with self._confirming(chain, tx_hash):
            receipt = self._await(chain, client, tx_hash)
            if receipt is not None and not receipt.succeeded:
                raise DeploymentError(chain.name, f"router deploy {tx_hash} reverted")
            address = receipt.contract_address if receipt and receipt.contract_address else expected
            if not client.get_code(address):
                if receipt is None:
                    raise ReceiptTimeout(chain.name, tx_hash, self.settings.receipt_timeout_seconds)
                raise DeploymentError(chain.name, f"no code at {address} after successful receipt")

        self.store.record_router(chain.chain_id, address=address, tx=tx_hash,
                                 rpc=getattr(client, "rpc_url", None))
        getters, verified = self._verify_getters(chain, client, address, identity)
        return ChainReport(chain.name, chain.chain_id, ChainStatus.DEPLOYED, address=address,
                           tx_hash=tx_hash, getters=getters, verified=verified, transactions=1)

    # ------------------------------------------------------------------
    # Post-deploy configuration
    # ------------------------------------------------------------------

    def configure_routers(
        self,
        adapters: Sequence[str] = (),
        fee_collector: Optional[str] = None,
        bps: Optional[Dict[str, int]] = None,
        abi: Optional[List[Dict[str, Any]]] = None,
    ) -> List[ChainReport]:
        """
        Apply adapter and fee settings to every recorded router.

        Adapters get the role; the first one also fills the legacy slot.
        Zero bps values are left untouched.
        """
        calls: List[tuple] = [("addAdapter", [to_address(a)]) for a in adapters]
        if adapters:
            calls.append(("setAdapter", [to_address(adapters[0])]))
        if fee_collector and to_address(fee_collector) != ZERO_ADDRESS:
            calls.append(("setFeeCollector", [to_address(fee_collector)]))
        for fn_name, value in (bps or {}).items():
            if value:
                calls.append((fn_name, [int(value)]))
        return self._run("configure", lambda c: self._configure(c, calls, abi))

    def _configure(self, chain: ChainConfig, calls: List[tuple], abi: Optional[List[Dict[str, Any]]]) -> ChainReport:
        record = self.store.router_for(chain.chain_id)
        if not record or not record.get("address"):
            return ChainReport(chain.name, chain.chain_id, ChainStatus.SKIPPED, reason="no router recorded")
        client = self._connect(chain)
        address = to_address(record["address"])
        overrides = self._overrides(chain)
        sent = 0
        last_tx: Optional[str] = None
        try:
            for fn_name, args in calls:
                last_tx = client.send_contract_call(
                    self.deployer, address, fn_name, args, abi=abi, overrides=overrides
                )
                sent += 1
                receipt = self._await(chain, client, last_tx)
                if receipt is None or not receipt.succeeded:
                    raise DeploymentError(
                        chain.name, f"{fn_name}({', '.join(map(str, args))}) not confirmed: {last_tx}"
                    )
                logger.info(f"{fn_name} applied", chain=chain.name, args=[str(a) for a in args])
        except RpcUnavailable as e:
            if last_tx is None:
                raise
            raise UnconfirmedTransaction(chain.name, last_tx, str(e)) from e
        return ChainReport(chain.name, chain.chain_id, ChainStatus.DEPLOYED, address=address, transactions=sent)

    # ------------------------------------------------------------------
    # Read-only passes
    # ------------------------------------------------------------------

    def verify(self, expected_identity: Optional[RouterIdentity] = None) -> List[ChainReport]:
        """Re-read getters of every recorded router and refresh the records."""
        def work(chain: ChainConfig) -> ChainReport:
            record = self.store.router_for(chain.chain_id)
            if not record or not record.get("address"):
                return ChainReport(chain.name, chain.chain_id, ChainStatus.SKIPPED, reason="no router recorded")
            client = self._connect(chain)
            address = to_address(record["address"])
            if not client.get_code(address):
                raise DeploymentError(chain.name, f"recorded router {address} has no code")
            getters, verified = self._verify_getters(chain, client, address, expected_identity)
            status = ChainStatus.ALREADY_DEPLOYED if getters else ChainStatus.FAILED
            return ChainReport(chain.name, chain.chain_id, status, address=address,
                               getters=getters, verified=verified)
        return self._run("verify", work)

    def readiness(self, salt: Optional[bytes] = None, creation_code: Optional[bytes] = None) -> List[ReadinessReport]:
        def work(chain: ChainConfig) -> ReadinessReport:
            report = ReadinessReport(chain.name, chain.chain_id, rpc_configured=False)
            try:
                client = self._connect(chain)
                report.rpc_configured = True
                report.balance_wei = client.get_balance(self.deployer_address)
                report.meets_minimum = (
                    report.balance_wei > 0 and report.balance_wei >= self.settings.min_balance_wei
                )
                report.nonce = client.get_transaction_count(self.deployer_address)
                report.persisted_factory = self.store.factory_for(chain.chain_id)
                factory = report.persisted_factory or contract_creation_address(
                    self.deployer_address, report.nonce
                )
                report.expected_factory = to_address(factory)
                report.factory_has_code = bool(client.get_code(factory))
                if salt is not None and creation_code is not None:
                    report.expected_router = self.expected_router_address(factory, salt, creation_code)
                    report.router_has_code = bool(client.get_code(report.expected_router))
            except RouterError as e:
                report.error = str(e)
            return report

        if not self.chains:
            return []
        workers = max(1, min(self.settings.max_workers, len(self.chains)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="thinrouter-readiness") as pool:
            return list(pool.map(work, self.chains))

    def balances(self) -> List[Dict[str, Any]]:
        def work(chain: ChainConfig) -> Dict[str, Any]:
            row: Dict[str, Any] = {"chain": chain.name, "chain_id": chain.chain_id,
                                   "address": self.deployer_address}
            try:
                client = self._connect(chain)
                wei = client.get_balance(self.deployer_address)
                row.update(balance_wei=wei, balance_eth=str(from_wei(wei, "ether")))
            except RouterError as e:
                row["error"] = str(e)
            if chain.faucet_hint:
                row["faucet"] = chain.faucet_hint
            return row

        if not self.chains:
            return []
        workers = max(1, min(self.settings.max_workers, len(self.chains)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="thinrouter-balances") as pool:
            return list(pool.map(work, self.chains))


def summarize(reports: Sequence[ChainReport]) -> Dict[str, Any]:
    counts: Dict[str, int] = {s.value: 0 for s in ChainStatus}
    for r in reports:
        counts[r.status.value] += 1
    return {
        "chains": len(reports),
        "counts": counts,
        "unexpected_errors": sum(1 for r in reports if r.unexpected),
        "addresses": sorted({r.address for r in reports if r.ok and r.address}),
    }
