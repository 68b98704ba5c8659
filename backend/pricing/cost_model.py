"""
Cost model: pure price arithmetic for components and products.

Everything here works on Decimal and never rounds. Rounding happens only
where a value leaves the model: when it is written to a DecimalField column
(quantize_price) or rendered for display (quantize_price with places=2).
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional

from .exceptions import ValidationError

HUNDRED = Decimal('100')
ZERO = Decimal('0')

# Decimal places of stored derived prices: exact for 2-decimal prices and margins
STORED_PRICE_PLACES = 6
DISPLAY_PRICE_PLACES = 2


def to_decimal(value, field='value') -> Decimal:
    """
    Convert user/database input to Decimal.

    Floats go through str() so 0.1 stays 0.1 instead of its binary expansion.
    """
    if value is None or value == '':
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field} must be a number, got {value!r}", field=field)
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", field=field)
    return result


def non_negative(value, field) -> Decimal:
    result = to_decimal(value, field)
    if result < ZERO:
        raise ValidationError(f"{field} cannot be negative", field=field)
    return result


def positive_quantity(value, field='quantity') -> Decimal:
    result = to_decimal(value, field)
    if result < 1:
        raise ValidationError(f"{field} must be at least 1", field=field)
    return result


def quantize_price(value, places=STORED_PRICE_PLACES) -> Decimal:
    """Round a price for storage or display (ROUND_HALF_UP)"""
    exponent = Decimal(1).scaleb(-places)
    return to_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineItem:
    """One bill-of-materials line: the component's current price data and a quantity"""
    purchase_price: Decimal
    margin_percent: Decimal
    quantity: Decimal


@dataclass(frozen=True)
class Margin:
    amount: Decimal
    # None when cost is zero: a percentage of nothing is undefined
    percent: Optional[Decimal]


def component_sale_price(purchase_price, margin_percent) -> Decimal:
    """purchase_price * (1 + margin_percent / 100)"""
    price = non_negative(purchase_price, 'purchase_price')
    margin_pct = to_decimal(margin_percent, 'margin_percent')
    return price * (1 + margin_pct / HUNDRED)


def labor_cost(hourly_rate, hours) -> Decimal:
    return non_negative(hourly_rate, 'hourly_rate') * non_negative(hours, 'hours')


def product_cost(line_items: Iterable[LineItem], hourly_rate, hours) -> Decimal:
    """Sum of purchase_price * quantity over the BOM, plus labor"""
    total = ZERO
    for item in line_items:
        total += non_negative(item.purchase_price, 'purchase_price') * positive_quantity(item.quantity)
    return total + labor_cost(hourly_rate, hours)


def product_sale_price(line_items: Iterable[LineItem], hourly_rate, hours) -> Decimal:
    """
    Sum of component sale price * quantity over the BOM, plus labor.

    Each component sale price is derived from the line's purchase price and
    margin, so callers must build line items from the components' current
    rows rather than from any cached sale price.
    """
    total = ZERO
    for item in line_items:
        unit = component_sale_price(item.purchase_price, item.margin_percent)
        total += unit * positive_quantity(item.quantity)
    return total + labor_cost(hourly_rate, hours)


def margin(cost, sale) -> Margin:
    cost = to_decimal(cost, 'cost')
    sale = to_decimal(sale, 'sale')
    amount = sale - cost
    if cost == ZERO:
        return Margin(amount=amount, percent=None)
    return Margin(amount=amount, percent=amount / cost * HUNDRED)
