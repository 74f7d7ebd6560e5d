"""
Tests for checkout fee and bundle price arithmetic.
"""

from settlement.services.pricing import allocate_bundle_price, calculate_fees, percent_of, round_half_up


def test_round_half_up():
    """Halves round away from zero, unlike round()."""
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.4999) == 2


def test_percent_of():
    assert percent_of(5000, 10) == 500
    assert percent_of(1234, 3.7) == 46  # 45.658


def test_fees_for_paid_order():
    """$100.00 subtotal: 3.7% + $1.79 platform, then 2.9% + $0.30 on top."""
    fees = calculate_fees(10000)
    assert fees.platform_fee_cents == 549
    assert fees.processing_fee_cents == 336  # round(10549 * 0.029) + 30
    assert fees.total_cents == 10885


def test_free_order_has_no_fees():
    fees = calculate_fees(0)
    assert fees.platform_fee_cents == 0
    assert fees.processing_fee_cents == 0
    assert fees.total_cents == 0


def test_bundle_price_split_sums_to_total():
    parts = allocate_bundle_price(10000, [5000, 5000, 2500])
    assert sum(parts) == 10000
    assert parts == [4000, 4000, 2000]


def test_bundle_price_split_remainder_goes_to_largest_fraction():
    parts = allocate_bundle_price(100, [1, 1, 1])
    assert parts == [34, 33, 33]


def test_bundle_price_split_zero_weights():
    assert allocate_bundle_price(90, [0, 0, 0]) == [30, 30, 30]
    assert allocate_bundle_price(0, [100, 200]) == [0, 0]
    assert allocate_bundle_price(500, []) == []
