"""Execution plans: the operator-facing summary of an approved strategy.

A plan lists every order with its estimated token amount, the USD the
wallet needs, a gas estimate and step-by-step signing instructions.
"""
import random
import string
import time
from decimal import Decimal
from typing import Optional

import structlog

from gridpilot.core.config import ARBITRUM_ONE_CHAIN_ID
from gridpilot.core.exceptions import GuardRejection
from gridpilot.core.models import ExecutionPlan, PlannedOrder, ReviewResult, StrategyDraft
from gridpilot.exchange.translator import translate_order
from gridpilot.risk.guard import ExecutionPath, RiskGuard

logger = structlog.get_logger(__name__)

# Rough Arbitrum cost per signed order
GAS_COST_PER_ORDER_USD = Decimal("0.50")
_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_execution_id() -> str:
    """EXEC_<epoch ms>_<9 random base36 chars>."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"EXEC_{int(time.time() * 1000)}_{suffix}"


def build_execution_plan(
    draft: StrategyDraft,
    review: ReviewResult,
    wallet_address: str,
    min_confidence: float = RiskGuard.DEFAULT_EXECUTION_PLAN_MIN_CONFIDENCE,
    guard: Optional[RiskGuard] = None,
) -> ExecutionPlan:
    """Build a plan for an approved draft.

    Raises:
        GuardRejection: The review is not an approval or its confidence is
            below ``min_confidence``.
        InvalidOrderError: A level has a non-positive price.
    """
    guard = guard or RiskGuard(execution_plan_min_confidence=min_confidence)
    check = guard.check_confidence(review, ExecutionPath.PLAN)
    if not check.passed:
        logger.warning("execution_plan.rejected", reason=check.reason)
        raise GuardRejection(check)

    orders = [
        PlannedOrder(
            order_number=number,
            type=order.type,
            price=order.price,
            amount_usd=order.amount_usd,
            estimated_tokens=translate_order(order, draft.recommended_token).size,
            trigger_condition=order.trigger_condition,
        )
        for number, order in enumerate(draft.grid_orders, start=1)
    ]

    total_usd = draft.total_allocation_usd
    gas = GAS_COST_PER_ORDER_USD * len(orders)

    instructions = [
        f"1. Ensure you have at least ${total_usd + gas:.2f} in your wallet "
        f"({total_usd:.2f} + {gas:.2f} gas)",
        f"2. Verify you are connected to Arbitrum network (Chain ID: {ARBITRUM_ONE_CHAIN_ID})",
        f"3. Review all {len(orders)} grid orders before confirming",
        "4. Each order will require a separate transaction signature",
        "5. Orders will be placed as limit orders on Hyperliquid",
        "6. You can monitor and cancel orders from your dashboard",
        "7. Grid orders will trigger automatically when price conditions are met",
    ]
    warnings = [
        "Trading cryptocurrency carries significant risk of loss",
        "Grid trading works best in ranging markets; trending markets may cause losses",
        "Only invest what you can afford to lose",
        "Always monitor your positions and adjust as needed",
        "High volatility may trigger multiple orders rapidly",
        f"This strategy allocates ${total_usd:.2f} of your portfolio",
    ]

    plan = ExecutionPlan(
        execution_id=new_execution_id(),
        wallet_address=wallet_address,
        token=draft.recommended_token,
        orders=orders,
        total_usd_required=total_usd,
        estimated_gas_cost=gas,
        execution_instructions=instructions,
        warnings=warnings,
        ready_to_execute=True,
    )
    logger.info(
        "execution_plan.created",
        execution_id=plan.execution_id,
        token=plan.token,
        orders=len(orders),
        total_usd=str(total_usd),
    )
    return plan
