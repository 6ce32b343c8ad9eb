"""
THINROUTER Smoke Test Suite

Imports the public surface and walks one deployment plus one relayed route
end to end: factory and router land at the same address on two chains, the
router identity read back from each chain seeds a protocol instance, and a
signed intent settles on it exactly once.
"""

from pathlib import Path

import pytest
from eth_account import Account


class TestPublicSurface:
    """Lazy package exports."""

    def test_exports_resolve(self):
        import tools.thinrouter as thinrouter

        for name in thinrouter.__all__:
            assert getattr(thinrouter, name) is not None

    def test_unknown_export(self):
        import tools.thinrouter as thinrouter

        with pytest.raises(AttributeError):
            thinrouter.NotAThing


class TestDeployThenRoute:
    """Deployment followed by a relayed route on the deployed identity."""

    def test_end_to_end(self, tmp_path):
        from tools.thinrouter import (
            ChainStatus,
            DeploySettings,
            DeploymentOrchestrator,
            InMemoryChainClient,
            RouteArgs,
            RouteIntent,
            RouterConfig,
            RouterProtocol,
            sign_route_intent,
        )
        from tools.thinrouter.artifacts import Artifact, router_creation_code
        from tools.thinrouter.chains import load_chain_registry, select_chains
        from tools.thinrouter.codec import ZERO_ADDRESS, payload_hash
        from tools.thinrouter.errors import ReplayError
        from tools.thinrouter.events import BridgeInitiated
        from tools.thinrouter.ledger import InMemoryTokenLedger
        from tools.thinrouter.store import DeploymentStore

        deployer = Account.from_key("0x" + "d1" * 32)
        user = Account.from_key("0x" + "e2" * 32)
        relayer = "0x" + "3e" * 20
        asset = "0x" + "70" * 20
        target = "0x" + "7a" * 20

        chains = select_chains(load_chain_registry(), ["base-sepolia", "optimism-sepolia"])
        clients = {c.name: InMemoryChainClient(c.name, c.chain_id, {deployer.address: 10**18}) for c in chains}
        orchestrator = DeploymentOrchestrator(
            chains, deployer, DeploymentStore(tmp_path), lambda c: clients[c.name],
            DeploySettings(apply_env_overrides=False),
        )

        assert all(r.status == ChainStatus.DEPLOYED for r in orchestrator.deploy_factories(b"\x60\x80\x60\x40"))
        artifact = Artifact(path=Path("Router.json"), bytecode=b"\x60\x80\x60\x40\x52")
        code = router_creation_code(artifact, deployer.address, deployer.address, ZERO_ADDRESS, 0)
        reports = orchestrator.deploy_routers(b"\x01" * 32, code)
        assert len({r.address for r in reports}) == 1
        router_address = reports[0].address

        base = chains[0]
        identity = clients[base.name].read_router_identity(router_address)
        ledger = InMemoryTokenLedger()
        router = RouterProtocol(
            RouterConfig.for_chain(base.chain_id, identity.admin, identity.fee_recipient, identity.default_target),
            ledger,
            router_address,
        )
        ledger.mint(asset, user.address, 10 * 10**18)
        ledger.approve(asset, user.address, router_address, 10 * 10**18)

        payload = b"mint-on-destination"
        args = RouteArgs(
            asset=asset, amount=10**18, protocol_fee=10**15, relayer_fee=10**15,
            payload=payload, target=target, dst_chain_id=421614, nonce=1,
        )
        intent = RouteIntent(
            route_id=b"\x42" * 32, token=asset, amount=args.amount, protocol_fee=args.protocol_fee,
            relayer_fee=args.relayer_fee, target=target, dst_chain_id=421614, nonce=1,
            expiry=2_000_000_000, payload_hash=payload_hash(payload), recipient=user.address,
        )
        signed = sign_route_intent(user.key, router.domain, intent)

        event = router.universal_bridge_transfer_with_sig(
            relayer, args, intent, signed.signature, user.address, now=1_800_000_000
        )
        assert isinstance(event, BridgeInitiated)
        assert event.amount == 10**18 - 2 * 10**15
        assert ledger.balance_of(asset, target) == event.amount
        assert ledger.balance_of(asset, deployer.address) == 2 * 10**15
        assert router.used_intents(signed.digest)

        with pytest.raises(ReplayError):
            router.universal_bridge_transfer_with_sig(
                relayer, args, intent, signed.signature, user.address, now=1_800_000_000
            )
