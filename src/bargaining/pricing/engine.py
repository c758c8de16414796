"""Reference-price arithmetic for negotiation bounds.

All monetary calculations use Decimal arithmetic to avoid floating-point errors.
Values are quantized to two decimal places with ROUND_HALF_UP rounding.
"""

from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel

from bargaining.domain.errors import NegotiationValidationError

# Precision: all monetary values quantized to 2 decimal places
TWO_PLACES = Decimal("0.01")

# Default share of the reference price below which offers are refused
DEFAULT_FLOOR_RATIO = Decimal("0.3")


class OfferBounds(BaseModel, frozen=True):
    """Inclusive range an offer must fall within.

    Attributes:
        minimum: Lowest acceptable offer, or None for no floor.
        maximum: Highest acceptable offer, or None for no ceiling.
    """

    minimum: Decimal | None = None
    maximum: Decimal | None = None


def quantize_money(value: Decimal) -> Decimal:
    """Round a monetary value to 2 decimal places (ROUND_HALF_UP)."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def effective_price(price: Decimal | None, discount_price: Decimal | None) -> Decimal | None:
    """Return the price a buyer would pay today.

    A positive discount price wins over the list price.

    Args:
        price: The list price, or None if the listing has none.
        discount_price: The discounted price, if any.

    Returns:
        The effective price quantized to 2 places, or None.
    """
    if discount_price is not None and discount_price > 0:
        return quantize_money(discount_price)
    if price is None:
        return None
    return quantize_money(price)


def calculate_bounds(
    reference_value: Decimal,
    floor_ratio: Decimal = DEFAULT_FLOOR_RATIO,
) -> OfferBounds:
    """Calculate the acceptable offer range around a reference price.

    Formula: ``[reference_value * floor_ratio, reference_value]``, both ends
    quantized to 2 decimal places.

    Args:
        reference_value: The listing's effective price.
        floor_ratio: Fraction of the reference below which offers are refused.
            Defaults to 0.3.

    Returns:
        The inclusive OfferBounds.

    Raises:
        NegotiationValidationError: If the reference is not positive or the
            ratio is outside ``(0, 1]``.
    """
    if reference_value <= 0:
        raise NegotiationValidationError(
            f"reference value must be positive, got {reference_value}"
        )
    if not (Decimal("0") < floor_ratio <= Decimal("1")):
        raise NegotiationValidationError(f"floor_ratio must be in (0, 1], got {floor_ratio}")
    return OfferBounds(
        minimum=quantize_money(reference_value * floor_ratio),
        maximum=quantize_money(reference_value),
    )


def calculate_discount(reference_value: Decimal, final_value: Decimal) -> Decimal:
    """Return the percentage discount *final_value* represents off *reference_value*.

    Returns ``Decimal("0")`` when the reference is not positive.
    """
    if reference_value <= 0:
        return Decimal("0")
    discount = (reference_value - final_value) / reference_value * Decimal("100")
    return quantize_money(discount)
