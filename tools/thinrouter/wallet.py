"""
THINROUTER Deployer Wallet

Derives the deployer account from ``DEPLOYER_PRIVATE_KEY`` or
``DEPLOYER_MNEMONIC``, optionally reading a project ``.env`` first.
Existing environment variables always win over ``.env`` entries.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

from eth_account import Account
from eth_account.signers.local import LocalAccount

from tools.thinrouter.errors import ConfigurationError

PRIVATE_KEY_ENV = "DEPLOYER_PRIVATE_KEY"
MNEMONIC_ENV = "DEPLOYER_MNEMONIC"
DEFAULT_DERIVATION_PATH = "m/44'/60'/0'/0/0"


def parse_dotenv(path: Path) -> Dict[str, str]:
    """KEY=VALUE lines; blank lines and ``#`` comments are skipped."""
    data: Dict[str, str] = {}
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped or stripped.startswith("#") or "=" not in stripped:
                continue
            key, raw_value = stripped.split("=", 1)
            key = key.strip()
            if key.startswith("export "):
                key = key[len("export "):].strip()
            data[key] = raw_value.strip().strip('"').strip("'")
    return data


def load_dotenv(candidates: Sequence[Path] = (Path(".env"),)) -> Optional[Path]:
    """Apply the first existing ``.env`` without overriding set variables."""
    for path in candidates:
        if path.is_file():
            for key, value in parse_dotenv(path).items():
                os.environ.setdefault(key, value)
            return path
    return None


def derive_account(secret: str, derivation_path: str = DEFAULT_DERIVATION_PATH) -> LocalAccount:
    """
    A 0x-prefixed 32-byte hex secret is a private key; anything else is
    treated as a BIP-39 mnemonic.
    """
    secret = secret.strip()
    if secret.startswith("0x") and len(secret) == 66:
        return Account.from_key(secret)
    Account.enable_unaudited_hdwallet_features()
    try:
        return Account.from_mnemonic(secret, account_path=derivation_path)
    except Exception as e:
        raise ConfigurationError(f"deployer secret is neither a private key nor a valid mnemonic: {e}") from e


def load_deployer(env: Optional[Mapping[str, str]] = None) -> LocalAccount:
    """
    Raises:
        ConfigurationError: if neither variable holds a usable secret.
    """
    env = os.environ if env is None else env
    private_key = (env.get(PRIVATE_KEY_ENV) or "").strip()
    if len(private_key) > 10:
        if not private_key.startswith("0x"):
            private_key = "0x" + private_key
        try:
            return Account.from_key(private_key)
        except ValueError as e:
            raise ConfigurationError(f"{PRIVATE_KEY_ENV} is not a valid private key") from e

    mnemonic = (env.get(MNEMONIC_ENV) or "").strip()
    if len(mnemonic) > 10:
        return derive_account(mnemonic)

    raise ConfigurationError(f"No deployer key: set {PRIVATE_KEY_ENV} or {MNEMONIC_ENV}")
