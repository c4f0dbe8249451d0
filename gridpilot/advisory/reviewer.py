"""Strategy review gateway: an independent second opinion on each draft.

The reviewer builds its own prompt from the finished draft only. It has its
own HTTP client and never sees the generator's prompt or raw reply.
"""
from decimal import Decimal
from typing import Optional

import httpx
import structlog
from pydantic import ValidationError

from gridpilot.advisory.base import StrategyReviewGateway
from gridpilot.advisory.client import AdvisoryClient, extract_json
from gridpilot.core.config import AdvisoryConfig, engine_config
from gridpilot.core.exceptions import ParseError
from gridpilot.core.models import ReviewResult, StrategyDraft

logger = structlog.get_logger(__name__)

SERVICE_NAME = "reviewer"

REVIEW_PROMPT = """You are a senior risk management analyst at a digital asset hedge fund. Your job is to review trading strategies and approve or reject them based on institutional risk standards.

STRATEGY TO REVIEW:
========================
Type: {strategy_type}
Token: {token}
Risk Level: {risk_level}
Expected Return: {expected_return}

Market Analysis:
{market_analysis}

Rationale:
{rationale}

GRID ORDERS (Total: ${total_allocation:.2f} / {allocation_percentage:.1f}% of portfolio):
{orders}

Strategy Warnings:
{warnings}

Portfolio Context:
- Wallet: {wallet}
- Total Balance: ${total_balance:.2f}
- Allocation: {allocation_percentage:.1f}%

YOUR TASK:
Review this strategy against institutional risk management standards:

1. RISK ASSESSMENT:
   - Is the allocation percentage reasonable? (should be <=30% for single strategy)
   - Are grid order prices realistic and properly spaced?
   - Does the risk level match the actual risk exposure?
   - Are there hidden risks not mentioned in warnings?

2. STRATEGY VALIDATION:
   - Is the market analysis sound?
   - Are grid orders executable on a DEX?
   - Is the expected return realistic?
   - Does the rationale make sense?

3. APPROVAL DECISION:
   - APPROVE if strategy is sound and safe
   - REJECT if strategy has critical flaws or excessive risk

4. CONFIDENCE SCORE:
   - Rate 0-100 how confident you are in this strategy

CRITICAL RULES:
- Auto-reject if allocation > 30% of portfolio
- Auto-reject if risk_level = "high" but allocation > 15%
- Auto-reject if grid orders have unrealistic price levels
- Auto-reject if expected return seems too optimistic (>50%)
- Be conservative - when in doubt, reject

Respond in valid JSON format:
{{
  "approved": true or false,
  "confidence_score": 0-100,
  "risk_assessment": "Brief risk assessment (2-3 sentences)",
  "identified_risks": ["Risk 1", "Risk 2", "Risk 3"],
  "recommendations": ["Recommendation 1", "Recommendation 2"],
  "approval_rationale": "Why approved/rejected (2-3 sentences)",
  "required_changes": ["Change 1", "Change 2"] (only if rejected)
}}"""


def allocation_percentage(total_allocation: Decimal, total_balance_usd: Decimal) -> Decimal:
    """Allocation as a percent of balance; 0 when the balance is empty."""
    if total_balance_usd <= 0:
        return Decimal("0")
    return total_allocation / total_balance_usd * 100


def build_review_prompt(draft: StrategyDraft, wallet_address: str, total_balance_usd: Decimal) -> str:
    total_allocation = draft.total_allocation_usd
    orders = "\n".join(
        f"{i}. {o.type.value.upper()} at ${o.price} for ${o.amount_usd} - {o.trigger_condition}"
        for i, o in enumerate(draft.grid_orders, start=1)
    )
    warnings = "\n".join(f"{i}. {w}" for i, w in enumerate(draft.warnings, start=1)) or "(none)"

    return REVIEW_PROMPT.format(
        strategy_type=draft.strategy_type,
        token=draft.recommended_token,
        risk_level=draft.risk_level.value,
        expected_return=draft.expected_return,
        market_analysis=draft.market_analysis,
        rationale=draft.rationale,
        total_allocation=total_allocation,
        allocation_percentage=allocation_percentage(total_allocation, total_balance_usd),
        orders=orders,
        warnings=warnings,
        wallet=wallet_address,
        total_balance=total_balance_usd,
    )


class AdvisoryStrategyReviewer(StrategyReviewGateway):
    """Asks a separate advisory session to approve or reject a draft."""

    def __init__(
        self,
        config: Optional[AdvisoryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or engine_config.advisory
        self.client = AdvisoryClient(SERVICE_NAME, config=self.config, transport=transport)

    async def review(
        self,
        draft: StrategyDraft,
        wallet_address: str,
        total_balance_usd: Decimal,
    ) -> ReviewResult:
        prompt = build_review_prompt(draft, wallet_address, total_balance_usd)
        logger.info(
            "reviewer.request",
            wallet=wallet_address,
            token=draft.recommended_token,
            orders=len(draft.grid_orders),
        )

        text = await self.client.complete(
            prompt,
            max_tokens=self.config.review_max_tokens,
            temperature=self.config.review_temperature,
        )
        data = extract_json(text, service=SERVICE_NAME)

        for key in ("reviewed_at", "reviewer_model", "total_allocation_usd", "allocation_percentage"):
            data.pop(key, None)

        total_allocation = draft.total_allocation_usd
        try:
            review = ReviewResult(
                **data,
                reviewer_model=self.client.model,
                total_allocation_usd=total_allocation,
                allocation_percentage=allocation_percentage(total_allocation, total_balance_usd),
            )
        except (ValidationError, TypeError) as e:
            logger.error("reviewer.invalid_review", error=str(e))
            raise ParseError(
                f"Review does not match the expected shape: {e}",
                service=SERVICE_NAME,
                raw_response=text,
            ) from e

        logger.info(
            "reviewer.review_completed",
            approved=review.approved,
            confidence=review.confidence_score,
        )
        return review

    async def close(self) -> None:
        await self.client.close()
