"""
THINROUTER Fee Engine Tests

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest

from tools.thinrouter.errors import ConfigurationError, InvalidFeeError
from tools.thinrouter.fees import (
    BPS_DENOMINATOR,
    FeeConfig,
    check_bps,
    compute_fees,
    quote_fees,
    split_bps,
    split_protocol_fee,
)

E18 = 10**18


class TestComputeFees:
    """Validation and net amount derivation."""

    def test_reference_scenario(self):
        breakdown = compute_fees(100 * E18, E18 // 10, E18 // 10)
        assert breakdown.net == 998 * E18 // 10
        assert breakdown.total_fees == E18 // 5
        assert breakdown.net + breakdown.protocol_fee + breakdown.relayer_fee == breakdown.gross

    def test_zero_fees_allowed(self):
        breakdown = compute_fees(1, 0, 0)
        assert breakdown.net == 1
        assert breakdown.total_fees == 0

    def test_fees_equal_to_amount_rejected(self):
        with pytest.raises(InvalidFeeError) as exc:
            compute_fees(100, 60, 40)
        assert exc.value.amount == 100

    def test_fees_above_amount_rejected(self):
        with pytest.raises(InvalidFeeError):
            compute_fees(100, 101, 0)

    def test_zero_amount_rejected(self):
        with pytest.raises(InvalidFeeError):
            compute_fees(0, 0, 0)

    def test_negative_values_rejected(self):
        with pytest.raises(InvalidFeeError):
            compute_fees(100, -1, 0)

    def test_u256_amount_does_not_overflow(self):
        amount = 2**256 - 1
        breakdown = compute_fees(amount, 1, 1)
        assert breakdown.net == amount - 2


class TestProtocolShareSplit:
    """Reporting split of the protocol fee between protocol and LPs."""

    def test_no_shares_keeps_whole_fee(self):
        assert split_protocol_fee(1000, 0, 0) == (1000, 0)

    def test_split_floors(self):
        assert split_protocol_fee(999, 5000, 5000) == (499, 499)

    def test_breakdown_carries_shares(self):
        config = FeeConfig(protocol_share_bps=7000, lp_share_bps=3000)
        breakdown = compute_fees(10_000, 1000, 0, config)
        assert (breakdown.protocol_share, breakdown.lp_share) == (700, 300)

    def test_split_bps_floor(self):
        assert split_bps(10_001, 1) == 1
        assert split_bps(9_999, 1) == 0


class TestFeeConfig:
    """Basis point bounds."""

    def test_check_bps_bounds(self):
        assert check_bps("x", 0) == 0
        assert check_bps("x", BPS_DENOMINATOR) == BPS_DENOMINATOR
        with pytest.raises(ConfigurationError, match="within 0..10000"):
            check_bps("x", BPS_DENOMINATOR + 1)

    def test_share_sum_bound(self):
        FeeConfig(protocol_share_bps=6000, lp_share_bps=4000).validate()
        with pytest.raises(ConfigurationError, match="exceeds"):
            FeeConfig(protocol_share_bps=6000, lp_share_bps=4001).validate()

    def test_quote_from_bps(self):
        breakdown = quote_fees(1_000_000, FeeConfig(protocol_fee_bps=30, relayer_fee_bps=10))
        assert breakdown.protocol_fee == 3000
        assert breakdown.relayer_fee == 1000
        assert breakdown.net == 996_000
