"""
THINROUTER Artifact and Deployment Record Tests

Copyright (c) 2026 Momentum. All rights reserved.
"""

import json
import threading

import pytest
from eth_abi import decode

from tools.thinrouter.artifacts import (
    ROUTER_CONSTRUCTOR_TYPES,
    extract_bytecode,
    load_artifact,
    parse_constructor_args,
    router_creation_code,
)
from tools.thinrouter.errors import ConfigurationError
from tools.thinrouter.store import DeploymentStore, RecordStore

ROUTER_ABI = [
    {
        "type": "constructor",
        "inputs": [
            {"name": "admin", "type": "address"},
            {"name": "feeRecipient", "type": "address"},
            {"name": "defaultTarget", "type": "address"},
            {"name": "srcChainId", "type": "uint16"},
        ],
    }
]
ADMIN = "0x" + "11" * 20
FEES = "0x" + "22" * 20
TARGET = "0x" + "33" * 20


def _write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))
    return path


class TestBytecodeExtraction:
    """Foundry, Hardhat and solc output shapes."""

    @pytest.mark.parametrize(
        "data",
        [
            {"bytecode": "0x6080"},
            {"bytecode": {"object": "0x6080"}},
            {"object": "6080"},
            {"evm": {"bytecode": {"object": "6080"}}},
        ],
    )
    def test_shapes(self, data):
        assert extract_bytecode(data).endswith("6080")

    def test_empty(self):
        assert extract_bytecode({"bytecode": "0x", "evm": {}}) is None

    def test_runtime_code_ignored(self):
        data = {"bytecode": "0x", "deployedBytecode": "0x6080", "evm": {"deployedBytecode": {"object": "6080"}}}
        assert extract_bytecode(data) is None

    def test_load_under_search_root(self, tmp_path):
        _write(tmp_path / "out" / "Router.sol" / "Router.json", {"bytecode": {"object": "0x60806040"}, "abi": ROUTER_ABI})
        artifact = load_artifact("out/Router.sol/Router.json", [tmp_path])
        assert artifact.bytecode == bytes.fromhex("60806040")
        assert artifact.constructor_types == ROUTER_CONSTRUCTOR_TYPES
        assert artifact.constructor_names == ["admin", "feeRecipient", "defaultTarget", "srcChainId"]

    def test_missing_artifact(self, tmp_path):
        with pytest.raises(ConfigurationError, match="artifact not found"):
            load_artifact("nope.json", [tmp_path])

    def test_unlinked_bytecode(self, tmp_path):
        path = _write(tmp_path / "Lib.json", {"bytecode": "0x6080__$abcdef$__"})
        with pytest.raises(ConfigurationError, match="unlinked"):
            load_artifact(path)

    def test_missing_bytecode(self, tmp_path):
        path = _write(tmp_path / "Iface.json", {"abi": []})
        with pytest.raises(ConfigurationError, match="missing bytecode"):
            load_artifact(path)

    def test_runtime_only_artifact_rejected(self, tmp_path):
        path = _write(tmp_path / "Router.json", {"abi": [], "bytecode": "0x", "deployedBytecode": "0x6080604052"})
        with pytest.raises(ConfigurationError, match="missing bytecode"):
            load_artifact(path)


class TestConstructorArgs:
    """JSON argument shapes."""

    @pytest.fixture
    def artifact(self, tmp_path):
        return load_artifact(_write(tmp_path / "Router.json", {"bytecode": "0x6080", "abi": ROUTER_ABI}))

    def test_positional(self, artifact):
        encoded = parse_constructor_args(json.dumps([ADMIN, FEES, TARGET, "0x4b34"]), artifact)
        admin, fees, target, src = decode(ROUTER_CONSTRUCTOR_TYPES, encoded)
        assert (admin, fees, target) == (ADMIN, FEES, TARGET)
        assert src == 0x4B34

    def test_named(self, artifact):
        named = {"srcChainId": 7, "defaultTarget": TARGET, "feeRecipient": FEES, "admin": ADMIN}
        assert parse_constructor_args(named, artifact) == parse_constructor_args([ADMIN, FEES, TARGET, 7], artifact)

    def test_explicit_types(self):
        encoded = parse_constructor_args({"types": ["uint256", "bytes32"], "values": ["10", "0x" + "ab" * 32]})
        assert decode(["uint256", "bytes32"], encoded) == (10, b"\xab" * 32)

    def test_empty(self, artifact):
        assert parse_constructor_args(None, artifact) == b""
        assert parse_constructor_args("[]", artifact) == b""

    def test_arity_mismatch(self, artifact):
        with pytest.raises(ConfigurationError, match="expects 4 arguments, got 2"):
            parse_constructor_args([ADMIN, FEES], artifact)

    def test_abi_without_constructor(self, tmp_path):
        artifact = load_artifact(_write(tmp_path / "Plain.json", {"bytecode": "0x6080", "abi": []}))
        with pytest.raises(ConfigurationError, match="no constructor"):
            parse_constructor_args([1], artifact)

    def test_router_creation_code(self, artifact):
        code = router_creation_code(artifact, ADMIN, FEES, TARGET, 84532 & 0xFFFF)
        assert code[:2] == b"\x60\x80"
        assert len(code) == 2 + 4 * 32
        assert decode(ROUTER_CONSTRUCTOR_TYPES, code[2:])[3] == 84532 & 0xFFFF


class TestDeploymentStore:
    """Mergeable per-chain records."""

    def test_merge_preserves_other_chains(self, tmp_path):
        store = DeploymentStore(tmp_path)
        store.record_factory(84532, "0x" + "fa" * 20)
        store.record_factory(421614, "0x" + "fb" * 20)
        assert store.factory_for(84532) == "0x" + "fa" * 20
        assert store.factory_for(1) is None
        assert set(json.loads((tmp_path / "factories.json").read_text())) == {"84532", "421614"}

    def test_router_record_merges_fields(self, tmp_path):
        store = DeploymentStore(tmp_path)
        store.record_router(84532, address="0xabc", tx="0x01", rpc=None)
        record = store.record_router(84532, getters={"srcChainId": 19252})
        assert record == {"address": "0xabc", "tx": "0x01", "getters": {"srcChainId": 19252}, "chainId": 84532}
        assert store.router_for(84532) == record

    def test_concurrent_writers(self, tmp_path):
        store = DeploymentStore(tmp_path)
        threads = [
            threading.Thread(target=store.record_factory, args=(chain_id, f"0x{chain_id:040x}"))
            for chain_id in range(1, 21)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(store.factories.read_all()) == 20

    def test_corrupt_file(self, tmp_path):
        (tmp_path / "factories.json").write_text("{not json")
        with pytest.raises(ConfigurationError, match="corrupt record file"):
            DeploymentStore(tmp_path).factory_for(1)

    def test_non_object_file(self, tmp_path):
        path = tmp_path / "records.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigurationError, match="JSON object"):
            RecordStore(path).read_all()
