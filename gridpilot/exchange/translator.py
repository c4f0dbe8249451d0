"""Grid order -> exchange order translation.

Pure functions. Size is rounded to 6 decimal places and price to 2, both
half-up, so a level priced at 2500.005 becomes 2500.01.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Sequence

from gridpilot.core.exceptions import InvalidOrderError
from gridpilot.core.models import GridOrder, OrderParams, OrderSide

SIZE_QUANTUM = Decimal("0.000001")
PRICE_QUANTUM = Decimal("0.01")


def round_size(value: Decimal) -> Decimal:
    """Round a token size to 6 decimal places."""
    return value.quantize(SIZE_QUANTUM, rounding=ROUND_HALF_UP)


def round_price(value: Decimal) -> Decimal:
    """Round a USD price to 2 decimal places."""
    return value.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)


def translate_order(order: GridOrder, asset: str) -> OrderParams:
    """Convert one grid level into exchange order parameters.

    Raises:
        InvalidOrderError: If the price is not strictly positive or the
            asset is empty.
    """
    if not asset:
        raise InvalidOrderError("Asset symbol is required")
    if order.price <= 0:
        raise InvalidOrderError(f"Grid order price must be positive, got {order.price}")

    return OrderParams(
        asset=asset,
        is_buy=order.type == OrderSide.BUY,
        size=round_size(order.amount_usd / order.price),
        limit_price=round_price(order.price),
        reduce_only=False,
    )


def translate_grid_orders(orders: Sequence[GridOrder], asset: str) -> List[OrderParams]:
    """Translate a whole grid, preserving order.

    All levels are validated before any is translated, so a bad level
    yields an error and no partial list.
    """
    for index, order in enumerate(orders):
        if order.price <= 0:
            raise InvalidOrderError(
                f"Grid order #{index + 1} price must be positive, got {order.price}"
            )
    return [translate_order(order, asset) for order in orders]
