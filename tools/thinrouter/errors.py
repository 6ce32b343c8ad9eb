"""
THINROUTER Error Taxonomy

Two families of errors live here. Protocol errors are raised by the router
and always leave router state untouched. Deployment errors are scoped to a
single chain; the orchestrator catches them at the per-chain boundary and
turns them into a report entry.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from typing import Optional


class RouterError(Exception):
    """Base class for all thinrouter errors."""
    code: str = "router_error"


# =============================================================================
# PROTOCOL ERRORS
# =============================================================================


class InvalidFeeError(RouterError):
    """Fees consume the whole amount (protocol_fee + relayer_fee >= amount)."""
    code = "invalid_fee"

    def __init__(self, amount: int, protocol_fee: int, relayer_fee: int):
        self.amount = amount
        self.protocol_fee = protocol_fee
        self.relayer_fee = relayer_fee
        super().__init__(
            f"fees {protocol_fee} + {relayer_fee} must be strictly less than amount {amount}"
        )


class Unauthorized(RouterError):
    """Caller is not permitted to perform the operation."""
    code = "unauthorized"

    def __init__(self, caller: str, action: str):
        self.caller = caller
        self.action = action
        super().__init__(f"{caller} is not authorized to {action}")


class ReplayError(RouterError):
    """A message or intent hash has already been consumed."""
    code = "replay"

    def __init__(self, keyspace: str, key: bytes):
        self.keyspace = keyspace
        self.key = key
        super().__init__(f"{keyspace} key 0x{key.hex()} already used")


class ExpiredIntentError(RouterError):
    """Signed intent is past its expiry."""
    code = "expired_intent"

    def __init__(self, expiry: int, now: int):
        self.expiry = expiry
        self.now = now
        super().__init__(f"intent expired at {expiry} (now {now})")


class InvalidSignatureError(RouterError):
    """Signature does not recover to the claimed signer."""
    code = "invalid_signature"


class IntentMismatchError(RouterError):
    """Route arguments disagree with the signed intent."""
    code = "intent_mismatch"

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"route argument {field_name!r} does not match signed intent")


class InvalidRouteError(RouterError):
    """Route is structurally invalid (same-chain, no target, bad address)."""
    code = "invalid_route"


class TransferFailure(RouterError):
    """Token primitive refused a movement of value."""
    code = "transfer_failure"


class ConfigurationError(RouterError):
    """Invalid configuration value or missing required setting."""
    code = "configuration"


# =============================================================================
# DEPLOYMENT ERRORS
# =============================================================================


class DeploymentError(RouterError):
    """Base for chain-scoped deployment failures."""
    code = "deployment"

    def __init__(self, chain: str, message: str):
        self.chain = chain
        super().__init__(f"[{chain}] {message}")


class RpcUnavailable(DeploymentError):
    """No RPC endpoint could be resolved or reached for the chain."""
    code = "rpc_unavailable"


class InsufficientBalance(DeploymentError):
    """Deployer balance is below the configured minimum."""
    code = "insufficient_balance"

    def __init__(self, chain: str, balance_wei: int, minimum_wei: int):
        self.balance_wei = balance_wei
        self.minimum_wei = minimum_wei
        super().__init__(chain, f"balance {balance_wei} wei below minimum {minimum_wei} wei")


class AlreadyDeployed(DeploymentError):
    """Bytecode already exists at the expected address. Counts as success."""
    code = "already_deployed"

    def __init__(self, chain: str, address: str):
        self.address = address
        super().__init__(chain, f"code already present at {address}")


class GasEstimationFailure(DeploymentError):
    """Gas estimation failed, including the fallback attempt."""
    code = "gas_estimation"


class FactoryMissing(DeploymentError):
    """No factory bytecode at the expected factory address."""
    code = "factory_missing"

    def __init__(self, chain: str, factory: Optional[str]):
        self.factory = factory
        super().__init__(chain, f"no factory code at {factory}")


class ReceiptTimeout(DeploymentError):
    """Receipt did not arrive in time and no code appeared at the target."""
    code = "receipt_timeout"

    def __init__(self, chain: str, tx_hash: str, timeout_seconds: float):
        self.tx_hash = tx_hash
        self.timeout_seconds = timeout_seconds
        super().__init__(chain, f"no receipt for {tx_hash} after {timeout_seconds}s")


class UnconfirmedTransaction(DeploymentError):
    """A transaction went out but the RPC stopped answering before it was confirmed."""
    code = "unconfirmed"

    def __init__(self, chain: str, tx_hash: str, detail: str):
        self.tx_hash = tx_hash
        super().__init__(chain, f"sent {tx_hash} but could not confirm it: {detail}")
