"""Tiered unit-price resolution.

A product may carry quantity price breaks (``PricingTier``).  The unit price
for an ordered quantity is the cheapest tier whose inclusive
``[min_quantity, max_quantity]`` range contains the quantity; an open
``max_quantity`` means "and above".  Without a matching tier the product's
base price applies.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from errors import ValidationError

logger = logging.getLogger(__name__)


def tier_matches(tier, quantity: int) -> bool:
    if quantity < tier.min_quantity:
        return False
    return tier.max_quantity is None or quantity <= tier.max_quantity


def resolve_unit_price(tiers: Iterable, quantity: int, base_price: int) -> int:
    """Return the unit price (minor units) for *quantity*.

    Overlapping tiers are allowed here; the lowest matching price wins.
    """
    if quantity is None or quantity < 1:
        raise ValidationError("Quantity must be at least 1", {"quantity": quantity})
    matches = [
        tier.price_per_unit
        for tier in tiers
        if getattr(tier, "is_active", True) and tier_matches(tier, quantity)
    ]
    if not matches:
        return base_price
    return min(matches)


def quote_line(product, quantity: int) -> tuple[int, int]:
    """Return ``(unit_price, line_total)`` for *quantity* of *product*."""
    unit_price = resolve_unit_price(product.pricing_tiers, quantity, product.base_price)
    return unit_price, unit_price * quantity


def compute_tax(subtotal: int, rate) -> int:
    """PPN on *subtotal*, rounded half-up to whole minor units."""
    amount = Decimal(subtotal) * Decimal(str(rate))
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_totals(subtotal: int, rate) -> tuple[int, int, int]:
    """Return ``(subtotal, tax_amount, total_amount)``."""
    tax = compute_tax(subtotal, rate)
    return subtotal, tax, subtotal + tax


def validate_tiers(tiers: list[dict], base_price: Optional[int] = None) -> list[dict]:
    """Check a tier definition list and return it sorted by ``min_quantity``.

    Each tier is a dict with ``min_quantity``, optional ``max_quantity`` and
    ``price_per_unit``.  Ranges are inclusive and must not overlap.
    """
    ordered = sorted(tiers, key=lambda t: t["min_quantity"])
    previous_max: Optional[int] = None
    previous_open = False
    for index, tier in enumerate(ordered):
        min_q = tier["min_quantity"]
        max_q = tier.get("max_quantity")
        price = tier["price_per_unit"]
        if min_q < 1:
            raise ValidationError("Tier min_quantity must be at least 1", {"tier": index})
        if max_q is not None and max_q < min_q:
            raise ValidationError(
                "Tier max_quantity must not be below min_quantity", {"tier": index}
            )
        if price < 0:
            raise ValidationError("Tier price_per_unit must not be negative", {"tier": index})
        if previous_open or (previous_max is not None and min_q <= previous_max):
            raise ValidationError("Pricing tiers must not overlap", {"tier": index})
        previous_max = max_q
        previous_open = max_q is None
    if base_price is not None and any(t["price_per_unit"] > base_price for t in ordered):
        logger.warning("Pricing tier above base price %s", base_price)
    return ordered
