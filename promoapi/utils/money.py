# promoapi/utils/money.py

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

Money = Decimal

def D(x) -> Money:
    if isinstance(x, Decimal):
        return x
    try:
        return Decimal(str(x if x is not None and x != "" else "0"))
    except InvalidOperation:
        raise ValueError(f"not a money amount: {x!r}")

def round_money(x: Money) -> Money:
    return D(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

def money_out(x) -> float | None:
    # JSON-friendly 2-decimal value
    return None if x is None else float(round_money(x))
