"""Pytest fixtures and utilities for the gridpilot test suite."""
from decimal import Decimal
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from gridpilot.core.activity_log import ActivityLog
from gridpilot.core.engine import AutonomousEngine
from gridpilot.core.models import (
    EngineSettings,
    ExecutionOutcome,
    GridOrder,
    OrderSide,
    PortfolioSnapshot,
    PortfolioToken,
    ReviewResult,
    RiskLevel,
    StrategyDraft,
)
from gridpilot.exchange.base import ExchangeGateway
from gridpilot.risk.guard import RiskGuard

WALLET = "0x" + "a1" * 20


# =============================================================================
# Helpers
# =============================================================================

def make_orders(amounts: Optional[List[str]] = None, price: str = "2500") -> List[GridOrder]:
    """Alternating buy/sell ladder with the given USD amounts."""
    amounts = amounts or ["20", "20", "20", "20", "20"]
    base = Decimal(price)
    orders = []
    for i, amount in enumerate(amounts):
        side = OrderSide.BUY if i % 2 == 0 else OrderSide.SELL
        orders.append(
            GridOrder(
                type=side,
                price=base - Decimal(i * 50),
                amount_usd=Decimal(amount),
                trigger_condition=f"Level {i + 1}",
            )
        )
    return orders


def make_draft(amounts: Optional[List[str]] = None, token: str = "ETH", **kwargs) -> StrategyDraft:
    return StrategyDraft(
        strategy_type="Grid Trading - Neutral",
        market_analysis="Range-bound market.",
        recommended_token=token,
        grid_orders=kwargs.pop("grid_orders", None) or make_orders(amounts),
        risk_level=kwargs.pop("risk_level", RiskLevel.LOW),
        expected_return="3-5%",
        rationale="ETH is liquid.",
        warnings=["Trend risk"],
        **kwargs,
    )


def make_review(approved: bool = True, confidence: float = 85, **kwargs) -> ReviewResult:
    return ReviewResult(
        approved=approved,
        confidence_score=confidence,
        risk_assessment="Acceptable",
        identified_risks=["Volatility"],
        recommendations=["Monitor"],
        approval_rationale="Conservative sizing" if approved else "Too aggressive",
        **kwargs,
    )


class FakeExchange(ExchangeGateway):
    """Exchange double that fails the order numbers it is told to fail."""

    def __init__(self, chain_id: int = 42161, fail_orders=(), raise_orders=()):
        self.chain_id = chain_id
        self.fail_orders = set(fail_orders)
        self.raise_orders = set(raise_orders)
        self.submitted = []

    async def get_chain_id(self) -> int:
        return self.chain_id

    async def sign_and_submit(self, order):
        self.submitted.append(order)
        number = len(self.submitted)
        if number in self.raise_orders:
            raise ConnectionError(f"order {number} lost")
        if number in self.fail_orders:
            return ExecutionOutcome(success=False, error=f"order {number} rejected", order=order)
        return ExecutionOutcome(success=True, order_id=f"oid-{number}", order=order)


# =============================================================================
# Model Fixtures
# =============================================================================

@pytest.fixture
def wallet_address():
    return WALLET


@pytest.fixture
def snapshot():
    """Portfolio worth $1000."""
    return PortfolioSnapshot(
        wallet_address=WALLET,
        total_balance_usd=Decimal("1000"),
        tokens=[
            PortfolioToken(
                token_symbol="ETH",
                token_name="Ethereum",
                balance="0.4",
                balance_usd=Decimal("1000"),
                price_usd=Decimal("2500"),
                chain="arbitrum",
            )
        ],
        chains=["arbitrum"],
    )


@pytest.fixture
def draft():
    """Five orders totalling $100 (10% of the $1000 snapshot)."""
    return make_draft()


@pytest.fixture
def approved_review():
    return make_review(approved=True, confidence=85)


@pytest.fixture
def settings():
    return EngineSettings(max_allocation_percent=10, max_daily_loss_percent=5)


@pytest.fixture
def guard():
    return RiskGuard()


# =============================================================================
# Engine Fixtures
# =============================================================================

@pytest.fixture
def portfolio_client(snapshot):
    client = MagicMock()
    client.fetch = AsyncMock(return_value=snapshot)
    return client


@pytest.fixture
def generator(draft):
    gen = MagicMock()
    gen.generate = AsyncMock(return_value=draft)
    return gen


@pytest.fixture
def reviewer(approved_review):
    rev = MagicMock()
    rev.review = AsyncMock(return_value=approved_review)
    return rev


@pytest.fixture
def exchange():
    return FakeExchange()


@pytest.fixture
def engine(portfolio_client, generator, reviewer, exchange, settings):
    """Engine wired to test doubles, no inter-order delay."""
    eng = AutonomousEngine(
        wallet_address=WALLET,
        portfolio=portfolio_client,
        generator=generator,
        reviewer=reviewer,
        exchange=exchange,
        settings=settings,
        activity_log=ActivityLog(),
        inter_order_delay=0,
    )
    return eng
