"""
Tests for the cooldown rule and address handling.
"""

from datetime import timedelta

import pytest

from faucet_api.address import (
    is_valid_wallet_address,
    normalize_wallet_address,
    parse_wallet_address,
)
from faucet_api.db import ClaimRecord
from faucet_api.eligibility import evaluate_eligibility, format_time_remaining

from conftest import T0

WALLET = "0x1111111111111111111111111111111111111111"


def _record(last_claim=T0) -> ClaimRecord:
    return ClaimRecord(
        wallet_address=WALLET,
        last_claim_timestamp=last_claim,
        transaction_hash="0x" + "ab" * 32,
        created_at=last_claim,
    )


class TestEvaluateEligibility:
    def test_no_record_is_first_time(self) -> None:
        result = evaluate_eligibility(None, T0)
        assert result.eligible
        assert result.first_time
        assert result.last_claim_time is None
        assert result.next_claim_time is None

    def test_one_second_before_cooldown_ends(self) -> None:
        now = T0 + timedelta(hours=23, minutes=59, seconds=59)
        result = evaluate_eligibility(_record(), now)

        assert not result.eligible
        assert result.last_claim_time == T0
        assert result.next_claim_time == T0 + timedelta(hours=24)
        assert result.time_remaining == timedelta(seconds=1)
        assert result.time_remaining_ms == 1000

    def test_boundary_is_inclusive(self) -> None:
        result = evaluate_eligibility(_record(), T0 + timedelta(hours=24))
        assert result.eligible
        assert not result.first_time
        assert result.last_claim_time == T0
        assert result.next_claim_time is None

    def test_long_after_cooldown(self) -> None:
        result = evaluate_eligibility(_record(), T0 + timedelta(days=30))
        assert result.eligible

    def test_custom_cooldown(self) -> None:
        result = evaluate_eligibility(_record(), T0 + timedelta(minutes=5), cooldown=timedelta(minutes=10))
        assert not result.eligible
        assert result.next_claim_time == T0 + timedelta(minutes=10)


class TestFormatTimeRemaining:
    @pytest.mark.parametrize(
        "delta, expected",
        [
            (timedelta(0), "Available now"),
            (timedelta(seconds=-5), "Available now"),
            (timedelta(seconds=42), "42s"),
            (timedelta(minutes=3, seconds=7), "3m 7s"),
            (timedelta(hours=23, minutes=59, seconds=59), "23h 59m 59s"),
        ],
    )
    def test_format(self, delta: timedelta, expected: str) -> None:
        assert format_time_remaining(delta) == expected


class TestAddress:
    def test_valid_mixed_case(self) -> None:
        assert is_valid_wallet_address("0xAbCdEf0123456789abcdef0123456789ABCDEF01")

    @pytest.mark.parametrize(
        "value",
        [
            "not-an-address",
            "",
            None,
            12345,
            "1111111111111111111111111111111111111111",
            "0x111111111111111111111111111111111111111",
            "0x11111111111111111111111111111111111111111",
            "0xg111111111111111111111111111111111111111",
            " 0x1111111111111111111111111111111111111111",
            "0x1111111111111111111111111111111111111111\n",
        ],
    )
    def test_invalid(self, value) -> None:
        assert not is_valid_wallet_address(value)
        assert parse_wallet_address(value) is None

    def test_normalize_lowercases(self) -> None:
        mixed = "0xAbCdEf0123456789abcdef0123456789ABCDEF01"
        assert normalize_wallet_address(mixed) == mixed.lower()
        assert parse_wallet_address(mixed) == mixed.lower()
