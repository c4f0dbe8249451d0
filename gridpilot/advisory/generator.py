"""Strategy generation gateway backed by an advisory model."""
from typing import Optional

import httpx
import structlog
from pydantic import ValidationError

from gridpilot.advisory.base import StrategyGenerationGateway
from gridpilot.advisory.client import AdvisoryClient, extract_json
from gridpilot.core.config import AdvisoryConfig, engine_config
from gridpilot.core.exceptions import ParseError
from gridpilot.core.models import MarketCondition, PortfolioSnapshot, StrategyDraft

logger = structlog.get_logger(__name__)

SERVICE_NAME = "generator"

GENERATION_PROMPT = """You are an expert DeFi trading strategist specializing in grid trading strategies for institutional investors.

PORTFOLIO ANALYSIS:
Wallet: {wallet}
Total Balance: ${total_balance:.2f}
Market Condition: {market_condition}

Current Holdings:
{holdings}

TASK:
Generate a grid trading strategy with the following requirements:

1. STRATEGY TYPE: Grid Trading
   - In BEAR markets: Create cascading BUY orders (accumulate on dips)
   - In BULL markets: Create cascading SELL orders (take profits on rises)
   - In NEUTRAL markets: Create both buy and sell grids

2. GRID ORDERS: Generate 5-7 specific price levels
   - Each order should have: type (buy/sell), price, amount in USD, trigger condition
   - Orders should be spaced 2-5% apart
   - Total allocation should not exceed 30% of portfolio

3. RISK ASSESSMENT:
   - Classify as low/medium/high risk
   - Provide expected return percentage
   - List specific warnings and risks

4. TOKEN SELECTION:
   - {token_instruction}
   - Explain why this token is suitable for grid trading
   - Consider liquidity and volatility

IMPORTANT:
- Be conservative and realistic
- Focus on capital preservation
- Grid orders should be executable on Hyperliquid
- All prices in USD

Respond in valid JSON format with this structure:
{{
  "strategy_type": "Grid Trading - Bear/Bull/Neutral",
  "market_analysis": "Brief market analysis (2-3 sentences)",
  "recommended_token": "TOKEN_SYMBOL",
  "grid_orders": [
    {{
      "type": "buy" or "sell",
      "price": 0.00,
      "amount_usd": 0.00,
      "trigger_condition": "When price reaches X"
    }}
  ],
  "risk_level": "low" or "medium" or "high",
  "expected_return": "X-Y%",
  "rationale": "Why this strategy works (2-3 sentences)",
  "warnings": ["Warning 1", "Warning 2"]
}}"""


def build_generation_prompt(
    snapshot: PortfolioSnapshot,
    market_condition: MarketCondition,
    preferred_token: Optional[str] = None,
) -> str:
    holdings = "\n".join(
        f"- {t.token_symbol} ({t.token_name}): {t.balance} tokens @ ${t.price_usd} = ${t.balance_usd:.2f}"
        for t in snapshot.tokens
    ) or "- (no holdings reported)"

    if preferred_token:
        token_instruction = (
            f"IMPORTANT: You MUST use {preferred_token} for this strategy. "
            "The user specifically requested this token."
        )
    else:
        token_instruction = (
            "Choose ONE token from the portfolio for this strategy based on liquidity and volatility."
        )

    return GENERATION_PROMPT.format(
        wallet=snapshot.wallet_address,
        total_balance=snapshot.total_balance_usd,
        market_condition=market_condition.value,
        holdings=holdings,
        token_instruction=token_instruction,
    )


class AdvisoryStrategyGenerator(StrategyGenerationGateway):
    """Asks the advisory model for one grid strategy per call."""

    def __init__(
        self,
        config: Optional[AdvisoryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or engine_config.advisory
        self.client = AdvisoryClient(SERVICE_NAME, config=self.config, transport=transport)

    async def generate(
        self,
        snapshot: PortfolioSnapshot,
        market_condition: MarketCondition = MarketCondition.NEUTRAL,
        preferred_token: Optional[str] = None,
    ) -> StrategyDraft:
        prompt = build_generation_prompt(snapshot, market_condition, preferred_token)
        logger.info(
            "generator.request",
            wallet=snapshot.wallet_address,
            market_condition=market_condition.value,
            preferred_token=preferred_token,
        )

        text = await self.client.complete(
            prompt,
            max_tokens=self.config.generation_max_tokens,
            temperature=self.config.generation_temperature,
        )
        data = extract_json(text, service=SERVICE_NAME)

        # Metadata is ours, not the model's
        for key in ("generated_at", "model", "wallet_address"):
            data.pop(key, None)

        try:
            draft = StrategyDraft(
                **data,
                model=self.client.model,
                wallet_address=snapshot.wallet_address,
            )
        except (ValidationError, TypeError) as e:
            logger.error("generator.invalid_strategy", error=str(e))
            raise ParseError(
                f"Strategy does not match the expected shape: {e}",
                service=SERVICE_NAME,
                raw_response=text,
            ) from e

        logger.info(
            "generator.strategy_generated",
            strategy_type=draft.strategy_type,
            token=draft.recommended_token,
            orders=len(draft.grid_orders),
            risk_level=draft.risk_level.value,
        )
        return draft

    async def close(self) -> None:
        await self.client.close()
