"""
THINROUTER Intent Signing

EIP-712 signing and signer recovery for RouteIntent, backed by eth_account.
The digest eth_account signs is the same one ``codec.typed_data_hash``
produces; tests pin the two against each other.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import to_checksum_address

from tools.thinrouter.codec import ROUTE_INTENT_FIELDS, Eip712Domain, RouteIntent, to_raw_bytes
from tools.thinrouter.errors import InvalidSignatureError


@dataclass(frozen=True)
class SignedIntent:
    intent: RouteIntent
    signer: str
    digest: bytes
    signature: bytes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent": self.intent.to_dict(),
            "signer": self.signer,
            "digest": "0x" + self.digest.hex(),
            "signature": "0x" + self.signature.hex(),
        }


def typed_data(domain: Eip712Domain, intent: RouteIntent) -> Dict[str, Any]:
    """Full EIP-712 structure (wallet ``eth_signTypedData_v4`` shape)."""
    return {
        "types": {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "RouteIntent": list(ROUTE_INTENT_FIELDS),
        },
        "primaryType": "RouteIntent",
        "domain": domain.to_dict(),
        "message": intent.to_message(),
    }


def sign_route_intent(private_key: Any, domain: Eip712Domain, intent: RouteIntent) -> SignedIntent:
    signed = Account.sign_typed_data(
        private_key,
        domain_data=domain.to_dict(),
        message_types={"RouteIntent": list(ROUTE_INTENT_FIELDS)},
        message_data=intent.to_message(),
    )
    signer = Account.from_key(private_key).address
    return SignedIntent(
        intent=intent,
        signer=signer,
        digest=bytes(signed.message_hash),
        signature=bytes(signed.signature),
    )


def recover_intent_signer(domain: Eip712Domain, intent: RouteIntent, signature: Any) -> str:
    """
    Recover the address that signed ``intent`` under ``domain``.

    Raises:
        InvalidSignatureError: if the signature is malformed.
    """
    signable = encode_typed_data(
        domain_data=domain.to_dict(),
        message_types={"RouteIntent": list(ROUTE_INTENT_FIELDS)},
        message_data=intent.to_message(),
    )
    try:
        recovered = Account.recover_message(signable, signature=to_raw_bytes(signature))
    except (BadSignature, KeyValidationError, ValueError, TypeError) as e:
        raise InvalidSignatureError(f"cannot recover signer: {e}") from e
    return to_checksum_address(recovered)
