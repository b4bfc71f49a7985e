from decimal import Decimal, ROUND_HALF_UP

QUANTITY = Decimal("0.001")
UNIT_COST = Decimal("0.0001")
MONEY = Decimal("0.01")


def _as_decimal(value) -> Decimal:
    # str() first so floats keep their printed value instead of the binary expansion
    return value if isinstance(value, Decimal) else Decimal(str(value))


def to_quantity(value) -> Decimal:
    return _as_decimal(value).quantize(QUANTITY, rounding=ROUND_HALF_UP)


def to_unit_cost(value) -> Decimal:
    return _as_decimal(value).quantize(UNIT_COST, rounding=ROUND_HALF_UP)


def to_money(value) -> Decimal:
    return _as_decimal(value).quantize(MONEY, rounding=ROUND_HALF_UP)
