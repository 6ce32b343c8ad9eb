import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import tools`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


# Environment variables read by the deployment tooling; cleared per test.
_DEPLOY_ENV = (
    "SALT_HEX", "ROUTER_ARTIFACT", "FACTORY_ARTIFACT", "CONSTRUCTOR_ARGS_JSON",
    "DEPLOY_MIN_BAL_ETH", "SELECT_CHAINS", "THINROUTER_STATE_DIR", "THINROUTER_CHAINS_FILE",
    "THINROUTER_DEPLOY_WORKERS", "THINROUTER_LOG_LEVEL", "THINROUTER_LOG_FORMAT",
    "DEPLOYER_PRIVATE_KEY", "DEPLOYER_MNEMONIC", "DEFAULT_TARGET", "FEE_RECIPIENT",
    "FEE_COLLECTOR", "ADAPTER_ADDRESSES", "ADAPTER_ADDRESS", "GAS_LIMIT",
    "MAX_FEE_PER_GAS", "MAX_PRIORITY_FEE_PER_GAS", "PROTOCOL_FEE_BPS",
    "RELAYER_FEE_BPS", "PROTOCOL_SHARE_BPS", "LP_SHARE_BPS",
)

# Well-known development key (anvil / hardhat account #0).
DEPLOYER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless THINROUTER_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_slow = _env_flag('THINROUTER_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set THINROUTER_RUN_SLOW=1 to enable'))


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    """Fresh configuration singleton and no deployment variables from the host."""
    from tools.thinrouter.config import ConfigManager

    for name in list(os.environ):
        if name in _DEPLOY_ENV or name.startswith(("RPC_", "THINROUTER_")) or "__" in name:
            monkeypatch.delenv(name, raising=False)
    ConfigManager.reset()
    yield
    ConfigManager.reset()


@pytest.fixture
def deployer():
    from eth_account import Account

    return Account.from_key(DEPLOYER_KEY)
