import pytest

from defi_recon.amount import Amount, round_usd


def test_negative_amount_rejected():
    with pytest.raises(ValueError, match="negative"):
        Amount(-1, 18)


def test_value_respects_decimals():
    assert Amount(1_500_000, 6).value == 1.5
    assert Amount(10**18, 18).value == 1.0
    assert Amount(12345, 0).value == 12345.0


def test_round_usd_half_up():
    assert round_usd(0.0000005) == 0.000001
    assert round_usd(1.2345674) == 1.234567
    assert round_usd(-60.0) == -60.0


def test_round_usd_non_finite_is_zero():
    assert round_usd(float("nan")) == 0.0
    assert round_usd(float("inf")) == 0.0
