"""
Calcul du prix d'une réservation (fonction pure, montants en pence).
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import NamedTuple

from clubhouse.errors import ValidationError

FULL_WEEK = "full_week"
SINGLE_DAY = "single_day"
MULTI_DAY = "multi_day"
OPTION_TYPES = (FULL_WEEK, SINGLE_DAY, MULTI_DAY)


class PriceBreakdown(NamedTuple):
    subtotal: int
    discount_amount: int
    total: int


def compute_price(
    option_type: str,
    price_per_child: int,
    date_count: int,
    child_count: int,
    discount_percent: int | float = 0,
) -> PriceBreakdown:
    """
    - full_week / single_day: prix forfaitaire par enfant
    - multi_day: prix par enfant et par jour sélectionné
    La remise est arrondie au demi supérieur; le sous-total n'est jamais arrondi.
    """
    if option_type not in OPTION_TYPES:
        raise ValidationError(f"Type d'option inconnu: {option_type}", code="invalid_option_type")
    if price_per_child is None or int(price_per_child) < 0:
        raise ValidationError("Prix par enfant invalide", code="invalid_price")
    if child_count is None or int(child_count) < 1:
        raise ValidationError("Au moins un enfant est requis", code="invalid_child_count")
    discount = Decimal(str(discount_percent or 0))
    if discount < 0 or discount > 100:
        raise ValidationError("Pourcentage de remise invalide", code="invalid_discount")

    if option_type == MULTI_DAY:
        if date_count is None or int(date_count) < 1:
            raise ValidationError("Au moins une date est requise", code="invalid_dates")
        subtotal = int(price_per_child) * int(date_count) * int(child_count)
    else:
        subtotal = int(price_per_child) * int(child_count)

    discount_amount = int((Decimal(subtotal) * discount / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return PriceBreakdown(subtotal=subtotal, discount_amount=discount_amount, total=subtotal - discount_amount)
