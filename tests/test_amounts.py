import pytest
from decimal import Decimal
from hotwallet_refill.services.amounts import (
    AmountError,
    from_atomic,
    normalize_balance,
    parse_decimal,
    to_atomic,
    to_int,
)


def test_to_atomic_scales_by_decimals():
    assert to_atomic("1", 8) == 100000000
    assert to_atomic("0.5", 8) == 50000000
    assert to_atomic(2, 6) == 2000000


def test_to_atomic_is_exact_for_18_decimal_assets():
    # 123456789.123456789123456789 ETH does not fit a float or int64
    assert to_atomic("123456789.123456789123456789", 18) == 123456789123456789123456789


def test_to_atomic_rejects_excess_precision():
    with pytest.raises(AmountError, match="decimal places"):
        to_atomic("0.000000001", 8)


def test_to_atomic_accepts_json_floats():
    assert to_atomic(0.1, 8) == 10000000


@pytest.mark.parametrize("value", ["abc", "", "NaN", "Infinity", None])
def test_parse_decimal_rejects_non_numbers(value):
    with pytest.raises(AmountError):
        parse_decimal(value)


def test_from_atomic_strips_trailing_zeros():
    assert from_atomic(50000000, 8) == "0.5"
    assert from_atomic("100000000", 8) == "1"
    assert from_atomic(0, 18) == "0"
    assert from_atomic(1, 18) == "0.000000000000000001"


def test_normalize_balance_truncates_sub_atomic_noise():
    assert normalize_balance("1.5", 8) == "150000000"
    assert normalize_balance("0.123456789", 8) == "12345678"
    assert normalize_balance("0", 6) == "0"


def test_to_int_handles_numeric_columns():
    assert to_int(None) == 0
    assert to_int(Decimal("100000000")) == 100000000
    assert to_int(Decimal("1E+2")) == 100
