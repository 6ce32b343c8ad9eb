"""
THINROUTER Deployment Orchestrator Tests

Runs the orchestrator against InMemoryChainClient, which applies real
CREATE / CREATE2 address rules, so addresses asserted here are the ones a
live chain would produce.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from pathlib import Path

import pytest

from tools.thinrouter.artifacts import Artifact, router_creation_code
from tools.thinrouter.chains import ChainConfig, load_chain_registry
from tools.thinrouter.client import InMemoryChainClient
from tools.thinrouter.codec import ZERO_ADDRESS, contract_creation_address, create2_address_for_code, to_address
from tools.thinrouter.deploy import (
    ChainStatus,
    DeploymentOrchestrator,
    DeploySettings,
    default_target_for,
    summarize,
    web3_client_factory,
)
from tools.thinrouter.errors import RpcUnavailable
from tools.thinrouter.router import RouterIdentity
from tools.thinrouter.store import DeploymentStore

BASE = ChainConfig("base-sepolia", 84532, "RPC_BASE_SEPOLIA", faucet_hint="Coinbase developer faucet")
ARB = ChainConfig("arbitrum-sepolia", 421614, "RPC_ARB_SEPOLIA")

FACTORY_CODE = bytes.fromhex("608060405234801561001057600080fd5b50")
ROUTER_ARTIFACT = Artifact(path=Path("Router.json"), bytecode=bytes.fromhex("6080604052"))
SALT = b"\x5a" * 32
FEE_RECIPIENT = to_address("0x" + "fe" * 20)
TARGET = to_address("0x" + "7a" * 20)
ONE_ETH = 10**18


@pytest.fixture
def clients(deployer):
    return {
        c.name: InMemoryChainClient(c.name, c.chain_id, {deployer.address: ONE_ETH})
        for c in (BASE, ARB)
    }


@pytest.fixture
def store(tmp_path):
    return DeploymentStore(tmp_path / "deployments")


def _orchestrator(deployer, store, clients, chains=(BASE, ARB), **settings):
    settings.setdefault("apply_env_overrides", False)
    return DeploymentOrchestrator(
        list(chains), deployer, store, lambda chain: clients[chain.name], DeploySettings(**settings)
    )


def _router_code(deployer):
    return router_creation_code(ROUTER_ARTIFACT, deployer.address, FEE_RECIPIENT, TARGET, 1)


def _identity(deployer):
    return RouterIdentity(to_address(deployer.address), FEE_RECIPIENT, TARGET, 1)


def _by_chain(reports):
    return {r.chain: r for r in reports}


class TestFactoryDeployment:
    """CREATE factory deployment."""

    def test_deploys_at_create_address(self, deployer, store, clients):
        reports = _by_chain(_orchestrator(deployer, store, clients).deploy_factories(FACTORY_CODE))
        expected = contract_creation_address(deployer.address, 0)
        for chain in (BASE, ARB):
            report = reports[chain.name]
            assert report.status == ChainStatus.DEPLOYED
            assert report.address == expected
            assert store.factory_for(chain.chain_id) == expected
            assert clients[chain.name].get_code(expected) == FACTORY_CODE

    def test_rerun_is_idempotent(self, deployer, store, clients):
        orchestrator = _orchestrator(deployer, store, clients)
        orchestrator.deploy_factories(FACTORY_CODE)
        sent_before = len(clients["base-sepolia"].sent)

        reports = orchestrator.deploy_factories(FACTORY_CODE)
        assert {r.status for r in reports} == {ChainStatus.ALREADY_DEPLOYED}
        assert all(r.transactions == 0 for r in reports)
        assert len(clients["base-sepolia"].sent) == sent_before

    def test_gas_estimation_falls_back_once(self, deployer, store, clients):
        clients["base-sepolia"].gas_estimation_failures = 1
        reports = _by_chain(_orchestrator(deployer, store, clients, chains=[BASE]).deploy_factories(FACTORY_CODE))
        assert reports["base-sepolia"].status == ChainStatus.DEPLOYED
        sent = clients["base-sepolia"].sent
        assert len(sent) == 1
        assert sent[0].gas == DeploySettings().factory_fallback_gas

    def test_dropped_factory_tx_not_recorded(self, deployer, store, clients):
        clients["base-sepolia"].drop_transactions = True
        report = _orchestrator(deployer, store, clients, chains=[BASE]).deploy_factories(FACTORY_CODE)[0]
        assert report.status == ChainStatus.FAILED
        assert report.error_code == "receipt_timeout"
        assert store.factory_for(BASE.chain_id) is None


class TestRouterDeployment:
    """CREATE2 router deployment through the factory."""

    def test_same_address_on_every_chain(self, deployer, store, clients):
        orchestrator = _orchestrator(deployer, store, clients)
        orchestrator.deploy_factories(FACTORY_CODE)
        code = _router_code(deployer)

        reports = orchestrator.deploy_routers(SALT, code, _identity(deployer))
        factory = contract_creation_address(deployer.address, 0)
        expected = create2_address_for_code(factory, SALT, code)

        assert [r.status for r in reports] == [ChainStatus.DEPLOYED, ChainStatus.DEPLOYED]
        assert {r.address for r in reports} == {expected}
        assert all(r.verified for r in reports)
        assert summarize(reports)["addresses"] == [expected]

        record = store.router_for(BASE.chain_id)
        assert record["address"] == expected
        assert record["factory"] == factory
        assert record["tx"] == reports[0].tx_hash
        assert record["getters"]["SRC_CHAIN_ID"] == 1
        assert record["chainId"] == BASE.chain_id

    def test_rerun_sends_nothing(self, deployer, store, clients):
        orchestrator = _orchestrator(deployer, store, clients)
        orchestrator.deploy_factories(FACTORY_CODE)
        code = _router_code(deployer)
        orchestrator.deploy_routers(SALT, code)
        record_before = store.router_for(BASE.chain_id)
        sent_before = {name: len(c.sent) for name, c in clients.items()}

        reports = orchestrator.deploy_routers(SALT, code)
        assert {r.status for r in reports} == {ChainStatus.ALREADY_DEPLOYED}
        assert {name: len(c.sent) for name, c in clients.items()} == sent_before
        assert store.router_for(BASE.chain_id) == record_before

    def test_receipt_timeout_with_code_present_succeeds(self, deployer, store, clients):
        orchestrator = _orchestrator(deployer, store, clients, chains=[BASE])
        orchestrator.deploy_factories(FACTORY_CODE)
        clients["base-sepolia"].receipt_timeouts = 1

        report = orchestrator.deploy_routers(SALT, _router_code(deployer))[0]
        assert report.status == ChainStatus.DEPLOYED
        assert store.router_for(BASE.chain_id)["address"] == report.address

    def test_dropped_transaction_is_not_recorded(self, deployer, store, clients):
        orchestrator = _orchestrator(deployer, store, clients, chains=[BASE])
        orchestrator.deploy_factories(FACTORY_CODE)
        clients["base-sepolia"].drop_transactions = True

        report = orchestrator.deploy_routers(SALT, _router_code(deployer))[0]
        assert report.status == ChainStatus.FAILED
        assert report.error_code == "receipt_timeout"
        assert not report.unexpected
        assert store.router_for(BASE.chain_id) is None

    def test_missing_factory(self, deployer, store, clients):
        report = _orchestrator(deployer, store, clients, chains=[BASE]).deploy_routers(SALT, _router_code(deployer))[0]
        assert report.status == ChainStatus.FAILED
        assert report.error_code == "factory_missing"
        assert clients["base-sepolia"].sent == []

    def test_persisted_factory_wins_over_nonce(self, deployer, store, clients):
        factory = to_address("0x" + "fa" * 20)
        clients["base-sepolia"].mark_factory(factory)
        store.record_factory(BASE.chain_id, factory)
        code = _router_code(deployer)

        report = _orchestrator(deployer, store, clients, chains=[BASE]).deploy_routers(SALT, code)[0]
        assert report.factory == factory
        assert report.address == create2_address_for_code(factory, SALT, code)

    def test_identity_mismatch_reported(self, deployer, store, clients):
        orchestrator = _orchestrator(deployer, store, clients, chains=[BASE])
        orchestrator.deploy_factories(FACTORY_CODE)
        wrong = RouterIdentity(to_address(deployer.address), FEE_RECIPIENT, TARGET, 2)

        report = orchestrator.deploy_routers(SALT, _router_code(deployer), wrong)[0]
        assert report.status == ChainStatus.DEPLOYED
        assert report.verified is False


class TestChainIsolation:
    """Per-chain outcomes never abort the run."""

    def test_insufficient_balance_skips(self, deployer, store, clients):
        clients["arbitrum-sepolia"] = InMemoryChainClient(ARB.name, ARB.chain_id)
        reports = _by_chain(_orchestrator(deployer, store, clients).deploy_factories(FACTORY_CODE))
        assert reports["arbitrum-sepolia"].status == ChainStatus.SKIPPED
        assert reports["arbitrum-sepolia"].error_code == "insufficient_balance"
        assert reports["base-sepolia"].status == ChainStatus.DEPLOYED

    def test_balance_below_minimum_skips(self, deployer, store, clients):
        reports = _orchestrator(deployer, store, clients, min_balance_wei=2 * ONE_ETH).deploy_factories(FACTORY_CODE)
        assert {r.status for r in reports} == {ChainStatus.SKIPPED}
        assert all(not c.sent for c in clients.values())

    def test_unavailable_rpc_skips(self, deployer, store, clients):
        clients["base-sepolia"].unavailable = True
        reports = _by_chain(_orchestrator(deployer, store, clients).deploy_factories(FACTORY_CODE))
        assert reports["base-sepolia"].status == ChainStatus.SKIPPED
        assert reports["base-sepolia"].error_code == "rpc_unavailable"
        assert reports["arbitrum-sepolia"].status == ChainStatus.DEPLOYED

    def test_rpc_lost_after_factory_send_fails(self, deployer, store, clients):
        clients["base-sepolia"].unavailable_after_send = True
        reports = _by_chain(_orchestrator(deployer, store, clients).deploy_factories(FACTORY_CODE))

        base = reports["base-sepolia"]
        assert base.status == ChainStatus.FAILED
        assert base.error_code == "unconfirmed"
        assert base.tx_hash == clients["base-sepolia"].sent[0].tx_hash
        assert base.unexpected
        assert store.factory_for(BASE.chain_id) is None
        assert reports["arbitrum-sepolia"].status == ChainStatus.DEPLOYED
        assert summarize(reports.values())["unexpected_errors"] == 1

    def test_rpc_lost_after_router_send_fails(self, deployer, store, clients):
        orchestrator = _orchestrator(deployer, store, clients, chains=[BASE])
        orchestrator.deploy_factories(FACTORY_CODE)
        clients["base-sepolia"].unavailable_after_send = True

        report = orchestrator.deploy_routers(SALT, _router_code(deployer))[0]
        assert report.status == ChainStatus.FAILED
        assert report.error_code == "unconfirmed"
        assert store.router_for(BASE.chain_id) is None

    def test_missing_rpc_env_skips(self, deployer, store):
        orchestrator = DeploymentOrchestrator([BASE], deployer, store, web3_client_factory())
        report = orchestrator.deploy_factories(FACTORY_CODE)[0]
        assert report.status == ChainStatus.SKIPPED
        assert "RPC_BASE_SEPOLIA" in report.reason

    def test_chain_id_mismatch_fails(self, deployer, store, clients):
        clients["base-sepolia"] = InMemoryChainClient(BASE.name, 1, {deployer.address: ONE_ETH})
        report = _by_chain(_orchestrator(deployer, store, clients).deploy_factories(FACTORY_CODE))["base-sepolia"]
        assert report.status == ChainStatus.FAILED
        assert report.error_code == "deployment"
        assert not report.unexpected

    def test_unexpected_error_is_flagged(self, deployer, store, clients):
        def factory(chain):
            if chain.name == "base-sepolia":
                raise RuntimeError("socket exploded")
            return clients[chain.name]

        orchestrator = DeploymentOrchestrator([BASE, ARB], deployer, store, factory,
                                              DeploySettings(apply_env_overrides=False))
        reports = orchestrator.deploy_factories(FACTORY_CODE)
        summary = summarize(reports)
        assert summary["unexpected_errors"] == 1
        assert summary["counts"]["failed"] == 1
        assert summary["counts"]["deployed"] == 1
        assert "RuntimeError" in _by_chain(reports)["base-sepolia"].reason

    def test_no_chains(self, deployer, store, clients):
        assert _orchestrator(deployer, store, clients, chains=[]).deploy_factories(FACTORY_CODE) == []


class TestDirectDeployment:
    """Plain CREATE with per-chain constructor arguments."""

    def test_src_chain_id_masked(self, deployer, store, clients):
        reports = _by_chain(_orchestrator(deployer, store, clients).deploy_direct(ROUTER_ARTIFACT, FEE_RECIPIENT))
        assert reports["base-sepolia"].getters["SRC_CHAIN_ID"] == 84532 & 0xFFFF
        assert reports["arbitrum-sepolia"].getters["SRC_CHAIN_ID"] == 421614 & 0xFFFF
        assert all(r.verified for r in reports.values())
        assert reports["base-sepolia"].getters["feeRecipient"] == FEE_RECIPIENT

    def test_default_target_override(self, deployer, store, clients, monkeypatch):
        monkeypatch.setenv("DEFAULT_TARGET", TARGET)
        monkeypatch.setenv("DEFAULT_TARGET__RPC_BASE_SEPOLIA", "0x0")
        reports = _by_chain(_orchestrator(deployer, store, clients).deploy_direct(ROUTER_ARTIFACT))
        assert reports["base-sepolia"].getters["defaultTarget"] == to_address(ZERO_ADDRESS)
        assert reports["arbitrum-sepolia"].getters["defaultTarget"] == TARGET
        assert reports["arbitrum-sepolia"].getters["feeRecipient"] == to_address(deployer.address)

    def test_default_target_for(self, monkeypatch):
        assert default_target_for(BASE) == ZERO_ADDRESS
        monkeypatch.setenv("DEFAULT_TARGET__RPC_BASE_SEPOLIA", TARGET.lower())
        assert default_target_for(BASE) == TARGET

    def test_rerun_reuses_record(self, deployer, store, clients):
        orchestrator = _orchestrator(deployer, store, clients, chains=[BASE])
        first = orchestrator.deploy_direct(ROUTER_ARTIFACT)[0]
        second = orchestrator.deploy_direct(ROUTER_ARTIFACT)[0]
        assert first.status == ChainStatus.DEPLOYED
        assert second.status == ChainStatus.ALREADY_DEPLOYED
        assert second.address == first.address
        assert len(clients["base-sepolia"].sent) == 1


class TestConfigure:
    """Post-deploy admin calls."""

    ADAPTER_A = to_address("0x" + "a1" * 20)
    ADAPTER_B = to_address("0x" + "b2" * 20)
    COLLECTOR = to_address("0x" + "c3" * 20)

    def test_calls_in_order(self, deployer, store, clients):
        orchestrator = _orchestrator(deployer, store, clients, chains=[BASE])
        router = orchestrator.deploy_direct(ROUTER_ARTIFACT)[0].address

        report = orchestrator.configure_routers(
            adapters=[self.ADAPTER_A, self.ADAPTER_B],
            fee_collector=self.COLLECTOR,
            bps={"setProtocolFeeBps": 30, "setRelayerFeeBps": 0},
        )[0]
        assert report.status == ChainStatus.DEPLOYED
        assert report.transactions == 5
        assert clients["base-sepolia"].calls == [
            (router, "addAdapter", (self.ADAPTER_A,)),
            (router, "addAdapter", (self.ADAPTER_B,)),
            (router, "setAdapter", (self.ADAPTER_A,)),
            (router, "setFeeCollector", (self.COLLECTOR,)),
            (router, "setProtocolFeeBps", (30,)),
        ]

    def test_chain_without_router_skipped(self, deployer, store, clients):
        report = _orchestrator(deployer, store, clients, chains=[BASE]).configure_routers(adapters=[self.ADAPTER_A])[0]
        assert report.status == ChainStatus.SKIPPED
        assert clients["base-sepolia"].sent == []

    def test_unconfirmed_call_fails(self, deployer, store, clients):
        store.record_router(BASE.chain_id, address=to_address("0x" + "99" * 20))
        report = _orchestrator(deployer, store, clients, chains=[BASE]).configure_routers(adapters=[self.ADAPTER_A])[0]
        assert report.status == ChainStatus.FAILED
        assert "addAdapter" in report.reason

    def test_rpc_lost_mid_configuration_fails(self, deployer, store, clients):
        orchestrator = _orchestrator(deployer, store, clients, chains=[BASE])
        orchestrator.deploy_direct(ROUTER_ARTIFACT)
        clients["base-sepolia"].unavailable_after_send = True

        report = orchestrator.configure_routers(adapters=[self.ADAPTER_A])[0]
        assert report.status == ChainStatus.FAILED
        assert report.error_code == "unconfirmed"
        assert report.tx_hash == clients["base-sepolia"].sent[-1].tx_hash


class TestReadOnlyPasses:
    """verify, readiness and balances."""

    def test_verify(self, deployer, store, clients):
        orchestrator = _orchestrator(deployer, store, clients)
        orchestrator.deploy_factories(FACTORY_CODE)
        orchestrator.deploy_routers(SALT, _router_code(deployer))

        reports = orchestrator.verify(_identity(deployer))
        assert all(r.verified for r in reports)
        assert {r.status for r in reports} == {ChainStatus.ALREADY_DEPLOYED}

    def test_verify_recorded_router_without_code(self, deployer, store, clients):
        store.record_router(BASE.chain_id, address=to_address("0x" + "99" * 20))
        report = _orchestrator(deployer, store, clients, chains=[BASE]).verify()[0]
        assert report.status == ChainStatus.FAILED

    def test_readiness(self, deployer, store, clients):
        clients["arbitrum-sepolia"].unavailable = True
        orchestrator = _orchestrator(deployer, store, clients)
        code = _router_code(deployer)

        before = _by_chain(orchestrator.readiness(SALT, code))
        assert before["base-sepolia"].rpc_configured
        assert not before["base-sepolia"].ready
        assert before["base-sepolia"].expected_factory == contract_creation_address(deployer.address, 0)
        assert before["arbitrum-sepolia"].rpc_configured is False
        assert before["arbitrum-sepolia"].error

        orchestrator.deploy_factories(FACTORY_CODE)
        after = _by_chain(orchestrator.readiness(SALT, code))["base-sepolia"]
        assert after.ready
        assert after.router_has_code is False
        assert clients["base-sepolia"].sent[-1].kind == "create"

    def test_readiness_malformed_record_stays_per_chain(self, deployer, store, clients):
        store.record_factory(BASE.chain_id, "0xnot-an-address")
        reports = _by_chain(_orchestrator(deployer, store, clients).readiness())

        assert "invalid address" in reports["base-sepolia"].error
        assert not reports["base-sepolia"].ready
        assert reports["arbitrum-sepolia"].error == ""
        assert reports["arbitrum-sepolia"].expected_factory == contract_creation_address(deployer.address, 0)

    def test_balances(self, deployer, store, clients):
        clients["arbitrum-sepolia"].unavailable = True
        rows = {r["chain"]: r for r in _orchestrator(deployer, store, clients).balances()}
        assert rows["base-sepolia"]["balance_wei"] == ONE_ETH
        assert rows["base-sepolia"]["balance_eth"] == "1"
        assert rows["base-sepolia"]["faucet"] == "Coinbase developer faucet"
        assert "error" in rows["arbitrum-sepolia"]

    def test_web3_factory_without_rpc(self):
        with pytest.raises(RpcUnavailable):
            web3_client_factory()(BASE)


@pytest.mark.slow
class TestRegistryWideDeployment:
    """Factory and router across every bundled chain."""

    def test_one_router_address_everywhere(self, deployer, store):
        chains = load_chain_registry()
        clients = {c.name: InMemoryChainClient(c.name, c.chain_id, {deployer.address: ONE_ETH}) for c in chains}
        orchestrator = _orchestrator(deployer, store, clients, chains=chains, max_workers=8)

        assert {r.status for r in orchestrator.deploy_factories(FACTORY_CODE)} == {ChainStatus.DEPLOYED}
        reports = orchestrator.deploy_routers(SALT, _router_code(deployer))

        assert len(reports) == len(chains)
        assert len({r.address for r in reports}) == 1
        assert set(store.routers.read_all()) == {str(c.chain_id) for c in chains}
