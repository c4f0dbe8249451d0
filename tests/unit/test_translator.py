"""Unit tests for grid order translation."""
from decimal import Decimal

import pytest

from gridpilot.core.exceptions import InvalidOrderError
from gridpilot.core.models import GridOrder, OrderSide
from gridpilot.exchange.translator import (
    round_price,
    round_size,
    translate_grid_orders,
    translate_order,
)


def order(side=OrderSide.BUY, price="2500", amount="100"):
    return GridOrder(type=side, price=Decimal(price), amount_usd=Decimal(amount), trigger_condition="")


# =============================================================================
# Rounding
# =============================================================================

class TestRounding:
    """Size to 6 places, price to 2, half-up."""

    def test_round_size(self):
        assert round_size(Decimal("0.0333333333")) == Decimal("0.033333")
        assert round_size(Decimal("0.0000005")) == Decimal("0.000001")

    def test_round_price(self):
        assert round_price(Decimal("2500.005")) == Decimal("2500.01")
        assert round_price(Decimal("2500.004")) == Decimal("2500.00")


# =============================================================================
# Single Order
# =============================================================================

class TestTranslateOrder:
    """Test translate_order."""

    def test_buy_order(self):
        params = translate_order(order(price="3000", amount="100"), "ETH")

        assert params.asset == "ETH"
        assert params.is_buy is True
        assert params.size == Decimal("0.033333")
        assert params.limit_price == Decimal("3000.00")
        assert params.reduce_only is False

    def test_sell_order(self):
        params = translate_order(order(side=OrderSide.SELL), "ETH")
        assert params.is_buy is False
        assert params.reduce_only is False

    @pytest.mark.parametrize(
        "price,amount,size,limit",
        [
            ("2500", "50", "0.02", "2500.00"),
            ("1.234567", "10", "8.100006", "1.23"),
            ("64123.456", "250", "0.003899", "64123.46"),
        ],
    )
    def test_size_and_price_rounding(self, price, amount, size, limit):
        """size == round(amount/price, 6) and limit == round(price, 2)."""
        params = translate_order(order(price=price, amount=amount), "BTC")
        assert params.size == Decimal(size)
        assert params.limit_price == Decimal(limit)

    @pytest.mark.parametrize("price", ["0", "-1", "-2500"])
    def test_non_positive_price_is_refused(self, price):
        with pytest.raises(InvalidOrderError):
            translate_order(order(price=price), "ETH")

    def test_empty_asset_is_refused(self):
        with pytest.raises(InvalidOrderError):
            translate_order(order(), "")


# =============================================================================
# Whole Grid
# =============================================================================

class TestTranslateGrid:
    """Test translate_grid_orders."""

    def test_preserves_order(self):
        grid = [order(price="2500"), order(side=OrderSide.SELL, price="2600"), order(price="2400")]
        params = translate_grid_orders(grid, "ETH")

        assert [p.limit_price for p in params] == [Decimal("2500.00"), Decimal("2600.00"), Decimal("2400.00")]
        assert [p.is_buy for p in params] == [True, False, True]

    def test_one_bad_level_yields_no_params(self):
        """A zero price anywhere refuses the whole grid."""
        grid = [order(price="2500"), order(price="0"), order(price="2400")]
        with pytest.raises(InvalidOrderError, match="#2"):
            translate_grid_orders(grid, "ETH")
