"""
THINROUTER Hash & Address Codec

Pure functions that every other component relies on for identity:

    message_hash        packed keccak over the route fields (abi.encodePacked layout)
    global_route_id     packed keccak binding a message to its chain pair and initiator
    typed_data_hash     EIP-712 digest of a RouteIntent
    create2_address     keccak(0xff ‖ factory ‖ salt ‖ keccak(initCode))[12:]
    contract_creation_address
                        keccak(rlp([sender, nonce]))[12:]

Field order and widths are wire-level commitments. Off-chain relayers and
indexers recompute these hashes, so any change here is a breaking change.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Union

import rlp
from eth_abi import encode
from eth_abi.packed import encode_packed
from eth_utils import is_address, keccak, to_bytes, to_canonical_address, to_checksum_address

from tools.thinrouter.errors import InvalidRouteError

HexOrBytes = Union[str, bytes]

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_BYTES32 = b"\x00" * 32

UINT64_MAX = 2**64 - 1
UINT256_MAX = 2**256 - 1

MESSAGE_HASH_TYPES = [
    "uint64",   # srcChainId
    "address",  # srcAdapter
    "address",  # recipient
    "address",  # asset
    "uint256",  # amount
    "bytes32",  # payloadHash
    "uint64",   # nonce
    "uint64",   # dstChainId
]

GLOBAL_ROUTE_ID_TYPES = ["uint64", "uint64", "address", "bytes32", "uint64"]

EIP712_DOMAIN_TYPE = (
    "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
ROUTE_INTENT_TYPE = (
    "RouteIntent(bytes32 routeId,address token,uint256 amount,uint256 protocolFee,"
    "uint256 relayerFee,address target,uint256 dstChainId,uint256 nonce,uint256 expiry,"
    "bytes32 payloadHash,address recipient)"
)
EIP712_DOMAIN_TYPEHASH = keccak(text=EIP712_DOMAIN_TYPE)
ROUTE_INTENT_TYPEHASH = keccak(text=ROUTE_INTENT_TYPE)

DEFAULT_DOMAIN_NAME = "Zoopx Router"
DEFAULT_DOMAIN_VERSION = "1"

# Field list in the order of ROUTE_INTENT_TYPE, used for EIP-712 type maps.
ROUTE_INTENT_FIELDS = [
    {"name": "routeId", "type": "bytes32"},
    {"name": "token", "type": "address"},
    {"name": "amount", "type": "uint256"},
    {"name": "protocolFee", "type": "uint256"},
    {"name": "relayerFee", "type": "uint256"},
    {"name": "target", "type": "address"},
    {"name": "dstChainId", "type": "uint256"},
    {"name": "nonce", "type": "uint256"},
    {"name": "expiry", "type": "uint256"},
    {"name": "payloadHash", "type": "bytes32"},
    {"name": "recipient", "type": "address"},
]


# =============================================================================
# NORMALIZATION
# =============================================================================


def to_address(value: HexOrBytes) -> str:
    """Normalize a 20-byte address (hex or raw bytes) to checksum form."""
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            raise InvalidRouteError(f"address must be 20 bytes, got {len(value)}")
        return to_checksum_address(bytes(value))
    if not isinstance(value, str) or not is_address(value):
        raise InvalidRouteError(f"invalid address: {value!r}")
    return to_checksum_address(value)


def is_zero_address(value: HexOrBytes) -> bool:
    return to_canonical_address(to_address(value)) == b"\x00" * 20


def to_bytes32(value: HexOrBytes) -> bytes:
    """Normalize a 32-byte word given as hex or raw bytes."""
    raw = bytes(value) if isinstance(value, (bytes, bytearray)) else to_bytes(hexstr=value)
    if len(raw) != 32:
        raise InvalidRouteError(f"expected 32 bytes, got {len(raw)}")
    return raw


def to_raw_bytes(value: HexOrBytes) -> bytes:
    """Accept hex (``0x``-prefixed or not) or raw bytes."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return to_bytes(hexstr=value) if value else b""


def _check_width(name: str, value: int, maximum: int) -> int:
    if not isinstance(value, int) or value < 0 or value > maximum:
        raise InvalidRouteError(f"{name} out of range: {value!r}")
    return value


# =============================================================================
# ROUTE HASHES
# =============================================================================


def payload_hash(payload: HexOrBytes) -> bytes:
    """keccak256 of the raw payload bytes."""
    return keccak(to_raw_bytes(payload))


def message_hash(
    src_chain_id: int,
    src_adapter: HexOrBytes,
    recipient: HexOrBytes,
    asset: HexOrBytes,
    amount: int,
    payload_hash_: HexOrBytes,
    nonce: int,
    dst_chain_id: int,
) -> bytes:
    """
    Compute the packed message hash.

    Layout: srcChainId:u64 ‖ srcAdapter:address ‖ recipient:address ‖
    asset:address ‖ amount:u256 ‖ payloadHash:bytes32 ‖ nonce:u64 ‖ dstChainId:u64.
    """
    packed = encode_packed(
        MESSAGE_HASH_TYPES,
        [
            _check_width("src_chain_id", src_chain_id, UINT64_MAX),
            to_address(src_adapter),
            to_address(recipient),
            to_address(asset),
            _check_width("amount", amount, UINT256_MAX),
            to_bytes32(payload_hash_),
            _check_width("nonce", nonce, UINT64_MAX),
            _check_width("dst_chain_id", dst_chain_id, UINT64_MAX),
        ],
    )
    return keccak(packed)


def global_route_id(
    src_chain_id: int,
    dst_chain_id: int,
    initiator: HexOrBytes,
    message_hash_: HexOrBytes,
    nonce: int,
) -> bytes:
    """keccak256(srcChainId:u64 ‖ dstChainId:u64 ‖ initiator ‖ messageHash ‖ nonce:u64)."""
    packed = encode_packed(
        GLOBAL_ROUTE_ID_TYPES,
        [
            _check_width("src_chain_id", src_chain_id, UINT64_MAX),
            _check_width("dst_chain_id", dst_chain_id, UINT64_MAX),
            to_address(initiator),
            to_bytes32(message_hash_),
            _check_width("nonce", nonce, UINT64_MAX),
        ],
    )
    return keccak(packed)


# =============================================================================
# EIP-712
# =============================================================================


@dataclass(frozen=True)
class Eip712Domain:
    """EIP-712 signing domain of a router instance."""
    chain_id: int
    verifying_contract: str
    name: str = DEFAULT_DOMAIN_NAME
    version: str = DEFAULT_DOMAIN_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": to_address(self.verifying_contract),
        }


@dataclass(frozen=True)
class RouteIntent:
    """
    A user-signed authorization for one route.

    Immutable once signed; identified by its typed-data hash. ``recipient``
    is the signer and the account funds are pulled from.
    """
    route_id: bytes
    token: str
    amount: int
    protocol_fee: int
    relayer_fee: int
    target: str
    dst_chain_id: int
    nonce: int
    expiry: int
    payload_hash: bytes
    recipient: str

    def with_changes(self, **changes: Any) -> "RouteIntent":
        return replace(self, **changes)

    def to_message(self) -> Dict[str, Any]:
        """EIP-712 message dict keyed by the on-chain field names."""
        return {
            "routeId": to_bytes32(self.route_id),
            "token": to_address(self.token),
            "amount": self.amount,
            "protocolFee": self.protocol_fee,
            "relayerFee": self.relayer_fee,
            "target": to_address(self.target),
            "dstChainId": self.dst_chain_id,
            "nonce": self.nonce,
            "expiry": self.expiry,
            "payloadHash": to_bytes32(self.payload_hash),
            "recipient": to_address(self.recipient),
        }

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly form, bytes rendered as 0x-hex."""
        out = self.to_message()
        out["routeId"] = "0x" + out["routeId"].hex()
        out["payloadHash"] = "0x" + out["payloadHash"].hex()
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RouteIntent":
        return cls(
            route_id=to_bytes32(data["routeId"]),
            token=to_address(data["token"]),
            amount=int(data["amount"]),
            protocol_fee=int(data["protocolFee"]),
            relayer_fee=int(data["relayerFee"]),
            target=to_address(data["target"]),
            dst_chain_id=int(data["dstChainId"]),
            nonce=int(data["nonce"]),
            expiry=int(data["expiry"]),
            payload_hash=to_bytes32(data["payloadHash"]),
            recipient=to_address(data["recipient"]),
        )


def domain_separator(domain: Eip712Domain) -> bytes:
    return keccak(
        encode(
            ["bytes32", "bytes32", "bytes32", "uint256", "address"],
            [
                EIP712_DOMAIN_TYPEHASH,
                keccak(text=domain.name),
                keccak(text=domain.version),
                domain.chain_id,
                to_address(domain.verifying_contract),
            ],
        )
    )


def route_intent_struct_hash(intent: RouteIntent) -> bytes:
    message = intent.to_message()
    types = ["bytes32"] + [f["type"] for f in ROUTE_INTENT_FIELDS]
    values = [ROUTE_INTENT_TYPEHASH] + [message[f["name"]] for f in ROUTE_INTENT_FIELDS]
    return keccak(encode(types, values))


def typed_data_hash(domain: Eip712Domain, intent: RouteIntent) -> bytes:
    """keccak256(0x19 0x01 ‖ domainSeparator ‖ structHash)."""
    return keccak(b"\x19\x01" + domain_separator(domain) + route_intent_struct_hash(intent))


# =============================================================================
# ADDRESS DERIVATION
# =============================================================================


def create2_address(factory: HexOrBytes, salt: HexOrBytes, init_code_hash: HexOrBytes) -> str:
    """Address of a CREATE2 deployment; independent of any chain state."""
    digest = keccak(
        b"\xff"
        + to_canonical_address(to_address(factory))
        + to_bytes32(salt)
        + to_bytes32(init_code_hash)
    )
    return to_checksum_address(digest[12:])


def create2_address_for_code(factory: HexOrBytes, salt: HexOrBytes, init_code: HexOrBytes) -> str:
    return create2_address(factory, salt, keccak(to_raw_bytes(init_code)))


def contract_creation_address(sender: HexOrBytes, nonce: int) -> str:
    """Address of a plain CREATE from ``sender`` at account ``nonce``."""
    _check_width("nonce", nonce, UINT64_MAX)
    encoded = rlp.encode([to_canonical_address(to_address(sender)), nonce])
    return to_checksum_address(keccak(encoded)[12:])
