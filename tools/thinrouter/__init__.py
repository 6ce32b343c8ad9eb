"""
THINROUTER: Cross-Chain Value Transfer Router

A thin router that pulls a token from a user, takes protocol and relayer
fees, forwards the net amount to a target and emits a deterministic message
identity that an off-chain relayer delivers to the destination chain. A
deployment orchestrator puts the same router at the same address on many
EVM chains through a CREATE2 factory.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                            THINROUTER                                    │
    │                                                                          │
    │  DEPLOYMENT                                                              │
    │    deploy.py      Per-chain fan-out: factory, router, verify, configure  │
    │    client.py      Web3 and in-memory chain clients                       │
    │    chains.py      Chain registry (YAML + JSON Schema)                    │
    │    artifacts.py   Compiler artifacts and creation code                   │
    │    store.py       Persisted factory and router records                   │
    │    wallet.py      Deployer key / mnemonic                                │
    │                                                                          │
    │  PROTOCOL                                                                │
    │    router.py      Direct and signed entry points, admin surface          │
    │    signing.py     EIP-712 intent signing and recovery                    │
    │    authority.py   Open / legacy adapter / role set authorization         │
    │    replay.py      Append-only consumed message and intent sets           │
    │    fees.py        Fee validation and basis-point splits                  │
    │    ledger.py      Token ledger the router settles against                │
    │    codec.py       Message hash, route id, typed data, CREATE/CREATE2     │
    │                                                                          │
    │  FOUNDATION                                                              │
    │    errors.py  events.py  observability.py  config.py  resilience.py      │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Core Concepts
─────────────

    Message hash: keccak256 over the packed route fields. Together with the
    source chain, initiator and nonce it yields the global route id that
    relayers key on.

    Route intent: an EIP-712 authorization signed by the funds owner. Any
    caller may submit it; the router checks expiry, field agreement with
    the call, the signature and single use.

    Deterministic address: keccak256(0xff ‖ factory ‖ salt ‖
    keccak256(creation code))[12:]. Same factory, salt and code give the
    same router on every chain.

Copyright (c) 2026 Momentum. All rights reserved.
"""

__version__ = "0.3.0"


def __getattr__(name):
    """Lazy import of the public surface."""

    if name in ("RouterProtocol", "RouterConfig", "RouterIdentity", "RouteArgs"):
        from tools.thinrouter import router
        return getattr(router, name)

    if name in ("RouteIntent", "Eip712Domain", "message_hash", "global_route_id",
                "typed_data_hash", "create2_address", "create2_address_for_code",
                "contract_creation_address"):
        from tools.thinrouter import codec
        return getattr(codec, name)

    if name in ("FeeConfig", "FeeBreakdown", "compute_fees"):
        from tools.thinrouter import fees
        return getattr(fees, name)

    if name in ("sign_route_intent", "recover_intent_signer", "SignedIntent"):
        from tools.thinrouter import signing
        return getattr(signing, name)

    if name in ("DeploymentOrchestrator", "ChainReport", "ChainStatus", "DeploySettings"):
        from tools.thinrouter import deploy
        return getattr(deploy, name)

    if name in ("InMemoryChainClient", "Web3ChainClient"):
        from tools.thinrouter import client
        return getattr(client, name)

    raise AttributeError(f"module 'thinrouter' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Protocol
    "RouterProtocol",
    "RouterConfig",
    "RouterIdentity",
    "RouteArgs",
    "RouteIntent",
    "Eip712Domain",
    "FeeConfig",
    "FeeBreakdown",
    "compute_fees",
    "message_hash",
    "global_route_id",
    "typed_data_hash",
    "sign_route_intent",
    "recover_intent_signer",
    "SignedIntent",
    # Deployment
    "create2_address",
    "create2_address_for_code",
    "contract_creation_address",
    "DeploymentOrchestrator",
    "ChainReport",
    "ChainStatus",
    "DeploySettings",
    "InMemoryChainClient",
    "Web3ChainClient",
]
