"""
Server-side checkout pricing.

Fee model:
- platform_fee   = round(subtotal * PLATFORM_FEE_PERCENT / 100) + PLATFORM_FEE_FIXED_CENTS
- processing_fee = round((subtotal + platform_fee) * PROCESSING_FEE_PERCENT / 100)
                   + PROCESSING_FEE_FIXED_CENTS
- Applied PER ORDER on the pre-fee subtotal
- A zero subtotal (free registration) has no fees

All amounts are integer cents. Rounding is half-up, the way a buyer
reading a receipt expects; Python's round() would round half to even.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Sequence

from settlement.core.config import get_settings


def round_half_up(value) -> int:
    """Round a number to the nearest integer, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(amount: int, percent) -> int:
    return round_half_up(Decimal(amount) * Decimal(str(percent)) / Decimal(100))


@dataclass(frozen=True)
class FeeBreakdown:
    subtotal_cents: int
    platform_fee_cents: int
    processing_fee_cents: int

    @property
    def total_cents(self) -> int:
        return self.subtotal_cents + self.platform_fee_cents + self.processing_fee_cents


def calculate_fees(subtotal_cents: int) -> FeeBreakdown:
    if subtotal_cents <= 0:
        return FeeBreakdown(subtotal_cents=0, platform_fee_cents=0, processing_fee_cents=0)

    settings = get_settings()
    platform_fee = percent_of(subtotal_cents, settings.PLATFORM_FEE_PERCENT) + settings.PLATFORM_FEE_FIXED_CENTS
    processing_fee = (
        percent_of(subtotal_cents + platform_fee, settings.PROCESSING_FEE_PERCENT)
        + settings.PROCESSING_FEE_FIXED_CENTS
    )
    return FeeBreakdown(
        subtotal_cents=subtotal_cents,
        platform_fee_cents=platform_fee,
        processing_fee_cents=processing_fee,
    )


def allocate_bundle_price(total_cents: int, weights: Sequence[int]) -> list[int]:
    """
    Split `total_cents` over items proportionally to `weights` (face values).

    Uses the largest-remainder method so the parts always sum to the total.
    Ties go to the earlier item. Zero total weight splits evenly.
    """
    if not weights:
        return []
    if total_cents <= 0:
        return [0] * len(weights)

    weight_sum = sum(weights)
    if weight_sum <= 0:
        weights = [1] * len(weights)
        weight_sum = len(weights)

    shares = []
    for index, weight in enumerate(weights):
        base, remainder = divmod(total_cents * weight, weight_sum)
        shares.append([base, remainder, index])

    leftover = total_cents - sum(share[0] for share in shares)
    for share in sorted(shares, key=lambda s: (-s[1], s[2]))[:leftover]:
        share[0] += 1

    return [share[0] for share in shares]
