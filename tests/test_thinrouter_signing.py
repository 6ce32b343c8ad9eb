"""
THINROUTER Intent Signing Tests

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest
from eth_account import Account

from tools.thinrouter.codec import Eip712Domain, RouteIntent, payload_hash, typed_data_hash
from tools.thinrouter.errors import InvalidSignatureError
from tools.thinrouter.signing import recover_intent_signer, sign_route_intent, typed_data

SIGNER = Account.from_key("0x" + "44" * 32)
DOMAIN = Eip712Domain(chain_id=421614, verifying_contract="0x" + "40" * 20)


def _intent(**overrides):
    fields = dict(
        route_id=b"\x09" * 32,
        token="0x" + "70" * 20,
        amount=5 * 10**18,
        protocol_fee=10**16,
        relayer_fee=10**16,
        target="0x" + "7a" * 20,
        dst_chain_id=84532,
        nonce=77,
        expiry=1_900_000_000,
        payload_hash=payload_hash(b"hello"),
        recipient=SIGNER.address,
    )
    fields.update(overrides)
    return RouteIntent(**fields)


class TestSigning:
    """Sign and recover RouteIntents."""

    def test_sign_and_recover(self):
        intent = _intent()
        signed = sign_route_intent(SIGNER.key, DOMAIN, intent)
        assert signed.signer == SIGNER.address
        assert len(signed.signature) == 65
        assert signed.digest == typed_data_hash(DOMAIN, intent)
        assert recover_intent_signer(DOMAIN, intent, signed.signature) == SIGNER.address

    def test_hex_signature_accepted(self):
        intent = _intent()
        signed = sign_route_intent(SIGNER.key, DOMAIN, intent)
        assert recover_intent_signer(DOMAIN, intent, "0x" + signed.signature.hex()) == SIGNER.address

    def test_other_domain_recovers_other_address(self):
        intent = _intent()
        signed = sign_route_intent(SIGNER.key, DOMAIN, intent)
        other = Eip712Domain(chain_id=1, verifying_contract=DOMAIN.verifying_contract)
        assert recover_intent_signer(other, intent, signed.signature) != SIGNER.address

    def test_malformed_signature(self):
        with pytest.raises(InvalidSignatureError):
            recover_intent_signer(DOMAIN, _intent(), b"\x01\x02\x03")

    def test_signed_intent_serializes(self):
        data = sign_route_intent(SIGNER.key, DOMAIN, _intent()).to_dict()
        assert data["signer"] == SIGNER.address
        assert data["signature"].startswith("0x") and len(data["signature"]) == 132
        assert data["intent"]["nonce"] == 77

    def test_typed_data_shape(self):
        data = typed_data(DOMAIN, _intent())
        assert data["primaryType"] == "RouteIntent"
        assert data["domain"]["chainId"] == 421614
        assert [f["name"] for f in data["types"]["RouteIntent"]][0] == "routeId"
        assert data["message"]["recipient"] == SIGNER.address
