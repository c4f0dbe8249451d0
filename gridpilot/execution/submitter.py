"""Sequential order submission.

Orders go out one at a time with a fixed pause between them. A failed
order never stops the ones after it; partially placed grids are a normal
outcome.
"""
import asyncio
from decimal import Decimal
from typing import List

import structlog

from gridpilot.core.models import ExecutionOutcome, ExecutionReport, StrategyDraft, utc_now
from gridpilot.exchange.base import ExchangeGateway
from gridpilot.exchange.translator import translate_grid_orders

logger = structlog.get_logger(__name__)


class ExecutionSubmitter:
    """Translates a draft and submits every order in sequence.

    Args:
        exchange: Signing/submission capability
        inter_order_delay: Seconds to wait between consecutive orders
    """

    DEFAULT_INTER_ORDER_DELAY = 1.0

    def __init__(self, exchange: ExchangeGateway, inter_order_delay: float = DEFAULT_INTER_ORDER_DELAY):
        if inter_order_delay < 0:
            raise ValueError("inter_order_delay must be >= 0")
        self.exchange = exchange
        self.inter_order_delay = inter_order_delay

    async def submit(self, draft: StrategyDraft, allocation_percent: Decimal = Decimal("0")) -> ExecutionReport:
        """Submit every level of ``draft``.

        Raises:
            InvalidOrderError: Translation refused the grid; nothing was sent.
        """
        orders = translate_grid_orders(draft.grid_orders, draft.recommended_token)
        report = ExecutionReport(allocation_percent=allocation_percent, started_at=utc_now())
        outcomes: List[ExecutionOutcome] = []

        logger.info(
            "submitter.execution_started",
            token=draft.recommended_token,
            orders=len(orders),
        )

        for index, params in enumerate(orders):
            if index > 0 and self.inter_order_delay > 0:
                await asyncio.sleep(self.inter_order_delay)

            try:
                outcome = await self.exchange.sign_and_submit(params)
            except Exception as e:
                # One bad order must not stop the rest of the grid
                logger.error(
                    "submitter.order_failed",
                    order_number=index + 1,
                    asset=params.asset,
                    error=str(e),
                )
                outcome = ExecutionOutcome(success=False, error=str(e), order=params)
            else:
                if outcome.order is None:
                    outcome = outcome.model_copy(update={"order": params})
                if outcome.success:
                    logger.info(
                        "submitter.order_placed",
                        order_number=index + 1,
                        order_id=outcome.order_id,
                    )
                else:
                    logger.warning(
                        "submitter.order_rejected",
                        order_number=index + 1,
                        error=outcome.error,
                    )

            outcomes.append(outcome)

        report.outcomes = outcomes
        report.completed_at = utc_now()

        logger.info(
            "submitter.execution_completed",
            token=draft.recommended_token,
            successful=report.successful_count,
            failed=report.failed_count,
        )
        return report
