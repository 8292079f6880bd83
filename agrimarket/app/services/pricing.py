"""Order pricing: delivery fee table and totals."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping, Optional

from agrimarket.app.core.constants import ONE_CENT
from agrimarket.app.core.exceptions import ValidationAppError
from agrimarket.app.core.settings import get_settings


class UnknownDeliveryMethodError(ValidationAppError):
    def __init__(self, method: str, allowed):
        super().__init__(f"Unknown delivery method '{method}'. Must be one of: {sorted(allowed)}")


def delivery_fee_for(method: str, fees: Optional[Mapping[str, Decimal]] = None) -> Decimal:
    """Fee charged for `method`; the table comes from settings unless given."""
    table = fees if fees is not None else get_settings().delivery_fees
    if method not in table:
        raise UnknownDeliveryMethodError(method, table.keys())
    return Decimal(table[method])


def order_total(quantity: int, unit_price: Decimal, delivery_fee: Decimal) -> Decimal:
    """quantity * unit_price + delivery_fee, rounded to cents."""
    total = Decimal(quantity) * Decimal(unit_price) + Decimal(delivery_fee)
    return total.quantize(ONE_CENT, rounding=ROUND_HALF_UP)
