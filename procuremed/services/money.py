from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from procuremed.config import settings

CENT = Decimal('0.01')


def to_money(value: Decimal | int | float | str | None) -> Decimal | None:
    """Parse a price-like value into a ``Decimal``; ``None`` when it is not a finite number."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        parsed = value
    else:
        text = str(value).strip().replace(',', '')
        if not text:
            return None
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            return None
    if not parsed.is_finite():
        return None
    return parsed


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_cost(quantity: int, unit_price: Decimal) -> Decimal:
    return Decimal(quantity) * unit_price


def format_money(value: Decimal | int | str, *, symbol: str | None = None) -> str:
    amount = to_money(value)
    if amount is None:
        raise ValueError(f'Not a monetary amount: {value!r}')
    prefix = settings.currency_symbol if symbol is None else symbol
    return f'{prefix}{round_money(amount)}'
