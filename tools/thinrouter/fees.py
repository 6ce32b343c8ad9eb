"""
THINROUTER Fee Engine

Splits a gross route amount into the net amount released to the target and
the fees retained by the protocol. All arithmetic is on Python integers in
token base units; basis points are out of 10_000.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Tuple

from tools.thinrouter.errors import ConfigurationError, InvalidFeeError

BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class FeeConfig:
    """Admin-owned fee settings of a router instance."""
    fee_collector: str = ""
    protocol_fee_bps: int = 0
    relayer_fee_bps: int = 0
    protocol_share_bps: int = 0
    lp_share_bps: int = 0

    def validate(self) -> None:
        for name in ("protocol_fee_bps", "relayer_fee_bps", "protocol_share_bps", "lp_share_bps"):
            check_bps(name, getattr(self, name))
        if self.protocol_share_bps and self.lp_share_bps:
            if self.protocol_share_bps + self.lp_share_bps > BPS_DENOMINATOR:
                raise ConfigurationError(
                    "protocol_share_bps + lp_share_bps exceeds "
                    f"{BPS_DENOMINATOR}: {self.protocol_share_bps} + {self.lp_share_bps}"
                )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FeeBreakdown:
    """
    Result of splitting a gross amount.

    Invariant: net + protocol_fee + relayer_fee == gross.
    """
    gross: int
    net: int
    protocol_fee: int
    relayer_fee: int
    protocol_share: int = 0
    lp_share: int = 0

    @property
    def total_fees(self) -> int:
        return self.protocol_fee + self.relayer_fee

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def check_bps(name: str, bps: int) -> int:
    if not isinstance(bps, int) or bps < 0 or bps > BPS_DENOMINATOR:
        raise ConfigurationError(f"{name} must be within 0..{BPS_DENOMINATOR}, got {bps!r}")
    return bps


def split_bps(amount: int, bps: int) -> int:
    """floor(amount * bps / 10000); never overflows for any u256 amount."""
    return amount * bps // BPS_DENOMINATOR


def split_protocol_fee(
    protocol_fee: int,
    protocol_share_bps: int,
    lp_share_bps: int,
) -> Tuple[int, int]:
    """Divide the protocol fee into (protocol share, LP share)."""
    if not protocol_share_bps and not lp_share_bps:
        return protocol_fee, 0
    return split_bps(protocol_fee, protocol_share_bps), split_bps(protocol_fee, lp_share_bps)


def compute_fees(
    amount: int,
    protocol_fee: int,
    relayer_fee: int,
    config: FeeConfig = FeeConfig(),
) -> FeeBreakdown:
    """
    Validate caller-supplied fees and derive the net amount.

    Raises:
        InvalidFeeError: if any value is negative or fees are not strictly
            below the amount.
    """
    if min(amount, protocol_fee, relayer_fee) < 0:
        raise InvalidFeeError(amount, protocol_fee, relayer_fee)
    if protocol_fee + relayer_fee >= amount:
        raise InvalidFeeError(amount, protocol_fee, relayer_fee)

    protocol_share, lp_share = split_protocol_fee(
        protocol_fee, config.protocol_share_bps, config.lp_share_bps
    )
    return FeeBreakdown(
        gross=amount,
        net=amount - protocol_fee - relayer_fee,
        protocol_fee=protocol_fee,
        relayer_fee=relayer_fee,
        protocol_share=protocol_share,
        lp_share=lp_share,
    )


def quote_fees(amount: int, config: FeeConfig) -> FeeBreakdown:
    """Derive absolute fees from the configured basis points."""
    return compute_fees(
        amount,
        split_bps(amount, config.protocol_fee_bps),
        split_bps(amount, config.relayer_fee_bps),
        config,
    )
