"""
THINROUTER Router Protocol

State-changing entry points that move value and emit ``BridgeInitiated``.

Every route runs the same pipeline:

    Validate ──▶ Authorize ──▶ Guard ──▶ Settle ──▶ Emit
      fees         direct:       replay      pull gross into custody,
      chain pair   adapter set   keyspace    pay net to target,
      target       signed:                   pay fees to collector
      intent       EIP-712 signer

A failure at any stage leaves no trace: the replay key is released, the
settlement legs are undone and no event is published.

Two entry points share the pipeline:

    universal_bridge_transfer            direct (legacy) path, gated by the
                                         authorization state machine
    universal_bridge_transfer_with_sig   relayed path, gated by a signature
                                         from intent.recipient

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from tools.thinrouter.authority import AdapterSet, AuthorizationState
from tools.thinrouter.codec import (
    DEFAULT_DOMAIN_NAME,
    DEFAULT_DOMAIN_VERSION,
    Eip712Domain,
    HexOrBytes,
    RouteIntent,
    domain_separator,
    global_route_id,
    is_zero_address,
    message_hash,
    payload_hash,
    to_address,
    to_raw_bytes,
    typed_data_hash,
)
from tools.thinrouter.errors import (
    ConfigurationError,
    ExpiredIntentError,
    IntentMismatchError,
    InvalidRouteError,
    InvalidSignatureError,
    Unauthorized,
)
from tools.thinrouter.events import (
    AdapterChanged,
    AdminTransferred,
    BridgeInitiated,
    EventBus,
    FeeConfigChanged,
)
from tools.thinrouter.fees import FeeBreakdown, FeeConfig, compute_fees
from tools.thinrouter.ledger import TokenLedger
from tools.thinrouter.observability import (
    AuditLogger,
    RouterLayer,
    get_correlation_id,
    get_logger,
    timed_operation,
)
from tools.thinrouter.replay import INTENTS, MESSAGES, ReplayGuard
from tools.thinrouter.signing import recover_intent_signer

logger = get_logger("router", RouterLayer.ROUTER)

SRC_CHAIN_ID_MAX = 0xFFFF


@dataclass(frozen=True)
class RouterConfig:
    """Construction-time configuration of one router instance."""
    admin: str
    fee_recipient: str
    default_target: str
    src_chain_id: int
    chain_id: Optional[int] = None
    domain_name: str = DEFAULT_DOMAIN_NAME
    domain_version: str = DEFAULT_DOMAIN_VERSION
    fees: FeeConfig = field(default_factory=FeeConfig)

    @classmethod
    def for_chain(cls, chain_id: int, admin: str, fee_recipient: str, default_target: str,
                  **kwargs: Any) -> "RouterConfig":
        """Derive the 16-bit source chain id from a full chain id."""
        return cls(
            admin=admin,
            fee_recipient=fee_recipient,
            default_target=default_target,
            src_chain_id=chain_id & SRC_CHAIN_ID_MAX,
            chain_id=chain_id,
            **kwargs,
        )


@dataclass(frozen=True)
class RouterIdentity:
    """Values every deployed router exposes through its getters."""
    admin: str
    fee_recipient: str
    default_target: str
    src_chain_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "admin": self.admin,
            "feeRecipient": self.fee_recipient,
            "defaultTarget": self.default_target,
            "SRC_CHAIN_ID": self.src_chain_id,
        }


@dataclass(frozen=True)
class RouteArgs:
    """Caller-supplied arguments of one route."""
    asset: str
    amount: int
    protocol_fee: int
    relayer_fee: int
    payload: bytes
    target: str
    dst_chain_id: int
    nonce: int

    @property
    def payload_hash(self) -> bytes:
        return payload_hash(self.payload)


class RouterProtocol:
    """
    One router instance on one chain.

    Writes are serialized by an internal lock; reads return snapshots.
    """

    def __init__(
        self,
        config: RouterConfig,
        ledger: TokenLedger,
        address: str,
        bus: Optional[EventBus] = None,
    ):
        if not 0 <= config.src_chain_id <= SRC_CHAIN_ID_MAX:
            raise ConfigurationError(f"src_chain_id must fit in 16 bits: {config.src_chain_id}")
        for name in ("admin", "fee_recipient"):
            if is_zero_address(getattr(config, name)):
                raise ConfigurationError(f"{name} must not be the zero address")
        config.fees.validate()

        self._admin = to_address(config.admin)
        self._fee_recipient = to_address(config.fee_recipient)
        self._default_target = to_address(config.default_target)
        self._src_chain_id = config.src_chain_id
        self._fees = config.fees
        self._address = to_address(address)
        self._domain = Eip712Domain(
            chain_id=config.chain_id if config.chain_id is not None else config.src_chain_id,
            verifying_contract=self._address,
            name=config.domain_name,
            version=config.domain_version,
        )
        self._ledger = ledger
        self._adapters = AdapterSet()
        self._replay = ReplayGuard(MESSAGES, INTENTS)
        self._bus = bus or EventBus()
        self._audit = AuditLogger(get_logger("admin", RouterLayer.AUTHORITY))
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------

    @property
    def address(self) -> str:
        return self._address

    @property
    def admin(self) -> str:
        return self._admin

    @property
    def fee_recipient(self) -> str:
        return self._fee_recipient

    @property
    def default_target(self) -> str:
        return self._default_target

    @property
    def src_chain_id(self) -> int:
        return self._src_chain_id

    @property
    def identity(self) -> RouterIdentity:
        return RouterIdentity(self._admin, self._fee_recipient, self._default_target, self._src_chain_id)

    @property
    def domain(self) -> Eip712Domain:
        return self._domain

    @property
    def domain_separator(self) -> bytes:
        return domain_separator(self._domain)

    @property
    def fee_config(self) -> FeeConfig:
        return self._fees

    @property
    def authorization_state(self) -> AuthorizationState:
        return self._adapters.authorizer().state

    @property
    def legacy_adapter(self) -> Optional[str]:
        return self._adapters.legacy_adapter

    @property
    def events(self) -> EventBus:
        return self._bus

    @property
    def audit_log(self) -> AuditLogger:
        return self._audit

    def is_adapter(self, account: str) -> bool:
        return self._adapters.contains(account)

    def used_messages(self, key: HexOrBytes) -> bool:
        return self._replay.is_used(MESSAGES, to_raw_bytes(key))

    def used_intents(self, key: HexOrBytes) -> bool:
        return self._replay.is_used(INTENTS, to_raw_bytes(key))

    def compute_message_hash(
        self,
        src_adapter: str,
        recipient: str,
        asset: str,
        amount: int,
        payload: HexOrBytes,
        nonce: int,
        dst_chain_id: int,
    ) -> bytes:
        return message_hash(
            self._src_chain_id, src_adapter, recipient, asset, amount,
            payload_hash(payload), nonce, dst_chain_id,
        )

    def compute_global_route_id(
        self, dst_chain_id: int, initiator: str, message_hash_: HexOrBytes, nonce: int
    ) -> bytes:
        return global_route_id(self._src_chain_id, dst_chain_id, initiator, message_hash_, nonce)

    def intent_hash(self, intent: RouteIntent) -> bytes:
        return typed_data_hash(self._domain, intent)

    # ------------------------------------------------------------------
    # Route entry points
    # ------------------------------------------------------------------

    @timed_operation(logger, "universal_bridge_transfer")
    def universal_bridge_transfer(
        self,
        caller: str,
        asset: str,
        amount: int,
        protocol_fee: int,
        relayer_fee: int,
        payload: HexOrBytes,
        target: str,
        dst_chain_id: int,
        nonce: int,
    ) -> BridgeInitiated:
        """Direct path: ``caller`` is the initiator and pays ``amount``."""
        caller = to_address(caller)
        args = RouteArgs(
            asset=to_address(asset),
            amount=amount,
            protocol_fee=protocol_fee,
            relayer_fee=relayer_fee,
            payload=to_raw_bytes(payload),
            target=to_address(target),
            dst_chain_id=dst_chain_id,
            nonce=nonce,
        )
        with self._lock:
            breakdown = compute_fees(amount, protocol_fee, relayer_fee, self._fees)
            resolved_target = self._validate_route(args)

            authorizer = self._adapters.authorizer()
            if not authorizer.admits(caller):
                logger.warning(
                    "direct route rejected",
                    caller=caller,
                    state=authorizer.state.value,
                    error_code=Unauthorized.code,
                )
                raise Unauthorized(caller, "use the direct route path")

            msg_hash = message_hash(
                self._src_chain_id, caller, resolved_target, args.asset, amount,
                args.payload_hash, nonce, dst_chain_id,
            )
            with self._replay.reserve(MESSAGES, msg_hash):
                self._settle(args.asset, caller, resolved_target, breakdown)

            return self._emit(caller, args, resolved_target, breakdown, msg_hash, None)

    @timed_operation(logger, "universal_bridge_transfer_with_sig")
    def universal_bridge_transfer_with_sig(
        self,
        caller: str,
        args: RouteArgs,
        intent: RouteIntent,
        signature: HexOrBytes,
        claimed_signer: str,
        now: Optional[int] = None,
    ) -> BridgeInitiated:
        """
        Relayed path: any ``caller`` may submit; funds come from the signer.

        ``now`` defaults to the current unix time.
        """
        now = int(time.time()) if now is None else now
        if now > intent.expiry:
            raise ExpiredIntentError(intent.expiry, now)

        relayer = to_address(caller)
        with self._lock:
            breakdown = compute_fees(args.amount, args.protocol_fee, args.relayer_fee, self._fees)
            self._match_intent(args, intent)
            resolved_target = self._validate_route(args)

            signer = to_address(intent.recipient)
            if to_address(claimed_signer) != signer:
                raise InvalidSignatureError(
                    f"claimed signer {claimed_signer} is not the intent recipient {signer}"
                )
            recovered = recover_intent_signer(self._domain, intent, signature)
            if recovered != signer:
                raise InvalidSignatureError(f"signature recovers to {recovered}, expected {signer}")

            intent_key = typed_data_hash(self._domain, intent)
            msg_hash = message_hash(
                self._src_chain_id, signer, resolved_target, to_address(args.asset), args.amount,
                args.payload_hash, args.nonce, args.dst_chain_id,
            )
            with self._replay.reserve(INTENTS, intent_key):
                self._settle(to_address(args.asset), signer, resolved_target, breakdown)

            logger.debug("relayed route settled", relayer=relayer, signer=signer)
            return self._emit(signer, args, resolved_target, breakdown, msg_hash, intent_key)

    def _validate_route(self, args: RouteArgs) -> str:
        if args.dst_chain_id == self._src_chain_id:
            raise InvalidRouteError(f"destination chain {args.dst_chain_id} equals source chain")
        target = self._default_target if is_zero_address(args.target) else to_address(args.target)
        if is_zero_address(target):
            raise InvalidRouteError("no target given and no default target configured")
        return target

    @staticmethod
    def _match_intent(args: RouteArgs, intent: RouteIntent) -> None:
        pairs = (
            ("token", to_address(args.asset), to_address(intent.token)),
            ("amount", args.amount, intent.amount),
            ("protocolFee", args.protocol_fee, intent.protocol_fee),
            ("relayerFee", args.relayer_fee, intent.relayer_fee),
            ("target", to_address(args.target), to_address(intent.target)),
            ("dstChainId", args.dst_chain_id, intent.dst_chain_id),
            ("nonce", args.nonce, intent.nonce),
            ("payloadHash", args.payload_hash, bytes(intent.payload_hash)),
        )
        for name, supplied, signed in pairs:
            if supplied != signed:
                raise IntentMismatchError(name)

    def _fee_destination(self) -> str:
        collector = self._fees.fee_collector
        if collector and not is_zero_address(collector):
            return to_address(collector)
        return self._fee_recipient

    def _settle(self, asset: str, payer: str, target: str, breakdown: FeeBreakdown) -> None:
        """Move value as one ledger transaction; any failing leg undoes the others."""
        with self._ledger.transaction():
            self._ledger.transfer_from(asset, self._address, payer, self._address, breakdown.gross)
            self._ledger.transfer(asset, self._address, target, breakdown.net)
            if breakdown.total_fees:
                self._ledger.transfer(asset, self._address, self._fee_destination(), breakdown.total_fees)

    def _emit(
        self,
        initiator: str,
        args: RouteArgs,
        target: str,
        breakdown: FeeBreakdown,
        msg_hash: bytes,
        intent_key: Optional[bytes],
    ) -> BridgeInitiated:
        event = BridgeInitiated(
            correlation_id=get_correlation_id(),
            initiator=initiator,
            asset=to_address(args.asset),
            amount=breakdown.net,
            protocol_fee=breakdown.protocol_fee,
            relayer_fee=breakdown.relayer_fee,
            target=target,
            dst_chain_id=args.dst_chain_id,
            nonce=args.nonce,
            message_hash=msg_hash,
            global_route_id=global_route_id(
                self._src_chain_id, args.dst_chain_id, initiator, msg_hash, args.nonce
            ),
            intent_hash=intent_key,
            protocol_share=breakdown.protocol_share,
            lp_share=breakdown.lp_share,
        )
        self._bus.publish(event)
        logger.info(
            "BridgeInitiated",
            operation="route",
            initiator=initiator,
            dst_chain_id=args.dst_chain_id,
            nonce=args.nonce,
            message_hash=msg_hash,
        )
        return event

    # ------------------------------------------------------------------
    # Admin surface
    # ------------------------------------------------------------------

    def _require_admin(self, caller: str, action: str) -> None:
        if to_address(caller) != self._admin:
            self._audit.log(to_address(caller), action, self._address, "denied")
            raise Unauthorized(caller, action)

    def _adapter_changed(self, caller: str, action: str, adapter: str) -> None:
        state = self._adapters.authorizer().state
        self._audit.log(caller, action, self._address, "success", adapter=adapter, state=state.value)
        self._bus.publish(AdapterChanged(action=action, adapter=adapter, authorization_state=state.value))

    def set_adapter(self, caller: str, adapter: Optional[str]) -> AuthorizationState:
        """Set or clear the legacy single adapter slot."""
        with self._lock:
            self._require_admin(caller, "set_adapter")
            self._adapters.set_legacy(adapter)
            self._adapter_changed(to_address(caller), "set_adapter", adapter or "")
            return self.authorization_state

    def add_adapter(self, caller: str, adapter: str) -> bool:
        with self._lock:
            self._require_admin(caller, "add_adapter")
            if is_zero_address(adapter):
                raise ConfigurationError("adapter must not be the zero address")
            added = self._adapters.add(adapter)
            if added:
                self._adapter_changed(to_address(caller), "add_adapter", to_address(adapter))
            return added

    def remove_adapter(self, caller: str, adapter: str) -> bool:
        with self._lock:
            self._require_admin(caller, "remove_adapter")
            removed = self._adapters.remove(adapter)
            if removed:
                self._adapter_changed(to_address(caller), "remove_adapter", to_address(adapter))
            return removed

    def _update_fees(self, caller: str, setting: str, value: Any) -> FeeConfig:
        with self._lock:
            self._require_admin(caller, f"set_{setting}")
            candidate = replace(self._fees, **{setting: value})
            try:
                candidate.validate()
            except ConfigurationError:
                self._audit.log(to_address(caller), f"set_{setting}", self._address, "rejected", value=value)
                raise
            old = getattr(self._fees, setting)
            self._fees = candidate
            self._audit.log(to_address(caller), f"set_{setting}", self._address, "success", old=old, new=value)
            self._bus.publish(FeeConfigChanged(setting=setting, old_value=old, new_value=value))
            return candidate

    def set_fee_collector(self, caller: str, collector: str) -> FeeConfig:
        self._require_admin(caller, "set_fee_collector")
        if is_zero_address(collector):
            raise ConfigurationError("fee collector must not be the zero address")
        return self._update_fees(caller, "fee_collector", to_address(collector))

    def set_protocol_fee_bps(self, caller: str, bps: int) -> FeeConfig:
        return self._update_fees(caller, "protocol_fee_bps", bps)

    def set_relayer_fee_bps(self, caller: str, bps: int) -> FeeConfig:
        return self._update_fees(caller, "relayer_fee_bps", bps)

    def set_protocol_share_bps(self, caller: str, bps: int) -> FeeConfig:
        return self._update_fees(caller, "protocol_share_bps", bps)

    def set_lp_share_bps(self, caller: str, bps: int) -> FeeConfig:
        return self._update_fees(caller, "lp_share_bps", bps)

    def transfer_admin(self, caller: str, new_admin: str) -> None:
        with self._lock:
            self._require_admin(caller, "transfer_admin")
            if is_zero_address(new_admin):
                raise ConfigurationError("admin must not be the zero address")
            previous, self._admin = self._admin, to_address(new_admin)
            self._audit.log(previous, "transfer_admin", self._address, "success", new_admin=self._admin)
            self._bus.publish(AdminTransferred(previous_admin=previous, new_admin=self._admin))
