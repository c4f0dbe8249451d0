"""Capability interfaces for the two advisory services.

Generation and review are separate interfaces so either can be swapped or
mocked on its own. A reviewer only ever sees the finished draft.
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from gridpilot.core.models import MarketCondition, PortfolioSnapshot, ReviewResult, StrategyDraft


class StrategyGenerationGateway(ABC):
    """Proposes one grid strategy for a portfolio."""

    @abstractmethod
    async def generate(
        self,
        snapshot: PortfolioSnapshot,
        market_condition: MarketCondition = MarketCondition.NEUTRAL,
        preferred_token: Optional[str] = None,
    ) -> StrategyDraft:
        """Return exactly one draft or raise TransportError / ParseError."""


class StrategyReviewGateway(ABC):
    """Independently approves or rejects a draft."""

    @abstractmethod
    async def review(
        self,
        draft: StrategyDraft,
        wallet_address: str,
        total_balance_usd: Decimal,
    ) -> ReviewResult:
        """Return exactly one verdict bound to ``draft`` or raise."""
