"""Deterministic risk guardrails between the advisory calls and the exchange.

The guard is a set of pure predicates. It never mutates settings or stats;
the engine applies the consequences of a failed check (for example
disabling itself when the circuit breaker trips).

The allocation check runs before every execution, whatever the reviewer
said. Review approval and the guard are independent layers.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import structlog

from gridpilot.core.models import EngineSettings, GridOrder, ReviewResult, StrategyDraft

logger = structlog.get_logger(__name__)


@dataclass
class RiskCheck:
    """Result of a guard evaluation.

    Attributes:
        passed: Whether the action may proceed
        reason: Human-readable explanation if the check failed
        risk_level: Severity of the outcome
        rule_triggered: Name of the rule that failed (if any)
        metadata: Numbers behind the decision
    """
    passed: bool
    reason: str = ""
    risk_level: str = "normal"
    rule_triggered: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RiskRule:
    """Individual pre-execution rule.

    Attributes:
        name: Unique identifier for the rule
        check_fn: Function that performs the validation
        priority: Lower numbers are checked first
    """
    name: str
    check_fn: Callable[..., RiskCheck]
    priority: int = 100


class ExecutionPath(str, Enum):
    """Routes by which a strategy can reach the exchange."""
    AUTO = "auto"
    MANUAL = "manual"
    PLAN = "plan"


def calculate_allocation_percent(
    orders: Sequence[GridOrder], total_balance_usd: Decimal
) -> Decimal:
    """100 * sum(amount_usd) / total balance.

    Raises:
        ValueError: If the total balance is not positive.
    """
    if total_balance_usd <= 0:
        raise ValueError("Total balance must be positive to compute allocation")
    total = sum((o.amount_usd for o in orders), Decimal("0"))
    return total / total_balance_usd * 100


class RiskGuard:
    """
    Risk guardrails for the autonomous grid engine.

    Checks:
    - Circuit breaker: daily loss against max_daily_loss_percent of balance
    - Confidence gate: approval plus a per-path minimum review confidence
    - Order values: every level has a positive price and amount
    - Allocation cap: total grid notional against max_allocation_percent
    """

    DEFAULT_AUTO_EXECUTE_MIN_CONFIDENCE = 70.0
    DEFAULT_MANUAL_EXECUTE_MIN_CONFIDENCE = 0.0
    DEFAULT_EXECUTION_PLAN_MIN_CONFIDENCE = 60.0

    def __init__(
        self,
        auto_execute_min_confidence: float = DEFAULT_AUTO_EXECUTE_MIN_CONFIDENCE,
        manual_execute_min_confidence: float = DEFAULT_MANUAL_EXECUTE_MIN_CONFIDENCE,
        execution_plan_min_confidence: float = DEFAULT_EXECUTION_PLAN_MIN_CONFIDENCE,
    ):
        self.min_confidence: Dict[ExecutionPath, float] = {
            ExecutionPath.AUTO: auto_execute_min_confidence,
            ExecutionPath.MANUAL: manual_execute_min_confidence,
            ExecutionPath.PLAN: execution_plan_min_confidence,
        }
        self._pre_execution_rules: List[RiskRule] = [
            RiskRule(name="order_values", check_fn=self._check_order_values, priority=1),
            RiskRule(name="allocation_cap", check_fn=self._check_allocation, priority=2),
        ]
        self._pre_execution_rules.sort(key=lambda r: r.priority)

    @classmethod
    def from_config(cls, guard_config) -> "RiskGuard":
        """Build a guard from a GuardConfig section."""
        return cls(
            auto_execute_min_confidence=guard_config.auto_execute_min_confidence,
            manual_execute_min_confidence=guard_config.manual_execute_min_confidence,
            execution_plan_min_confidence=guard_config.execution_plan_min_confidence,
        )

    # === Circuit Breaker ===

    def check_circuit_breaker(
        self,
        daily_pnl: Decimal,
        total_balance_usd: Decimal,
        max_daily_loss_percent: float,
    ) -> RiskCheck:
        """Trip when today's loss reaches max_daily_loss_percent of the balance."""
        max_loss = total_balance_usd * Decimal(str(max_daily_loss_percent)) / 100
        metadata = {
            "daily_pnl": str(daily_pnl),
            "max_loss": str(max_loss),
            "max_daily_loss_percent": max_daily_loss_percent,
        }

        if daily_pnl < 0 and abs(daily_pnl) >= max_loss:
            logger.warning("risk_guard.circuit_breaker_tripped", **metadata)
            return RiskCheck(
                passed=False,
                reason=(
                    f"Daily loss (${abs(daily_pnl):.2f}) exceeded limit (${max_loss:.2f})"
                ),
                risk_level="critical",
                rule_triggered="circuit_breaker",
                metadata=metadata,
            )

        return RiskCheck(passed=True, metadata=metadata)

    # === Review Gates ===

    def check_approval(self, review: ReviewResult) -> RiskCheck:
        """The reviewer must have approved the strategy."""
        if not review.approved:
            return RiskCheck(
                passed=False,
                reason="Strategy was rejected by review",
                risk_level="warning",
                rule_triggered="review_approval",
                metadata={"confidence_score": review.confidence_score},
            )
        return RiskCheck(passed=True)

    def check_confidence(self, review: ReviewResult, path: ExecutionPath) -> RiskCheck:
        """Approval plus the minimum confidence configured for ``path``."""
        approval = self.check_approval(review)
        if not approval.passed:
            return approval

        minimum = self.min_confidence[path]
        if review.confidence_score < minimum:
            logger.info(
                "risk_guard.confidence_below_gate",
                path=path.value,
                confidence=review.confidence_score,
                minimum=minimum,
            )
            return RiskCheck(
                passed=False,
                reason=(
                    f"Review confidence ({review.confidence_score:g}%) is below "
                    f"the {path.value} threshold ({minimum:g}%)"
                ),
                risk_level="normal",
                rule_triggered="confidence_gate",
                metadata={"confidence_score": review.confidence_score, "minimum": minimum},
            )
        return RiskCheck(passed=True, metadata={"confidence_score": review.confidence_score})

    # === Pre-execution ===

    def check_pre_execution(
        self,
        draft: StrategyDraft,
        total_balance_usd: Decimal,
        settings: EngineSettings,
    ) -> RiskCheck:
        """Run every pre-execution rule in priority order; first failure wins."""
        for rule in self._pre_execution_rules:
            result = rule.check_fn(draft, total_balance_usd, settings)
            if not result.passed:
                result.rule_triggered = rule.name
                logger.warning(
                    "risk_guard.execution_rejected",
                    rule=rule.name,
                    reason=result.reason,
                    token=draft.recommended_token,
                )
                return result
        return RiskCheck(passed=True, metadata=self._allocation_metadata(draft, total_balance_usd))

    def _check_order_values(
        self,
        draft: StrategyDraft,
        total_balance_usd: Decimal,
        settings: EngineSettings,
    ) -> RiskCheck:
        """Every level needs a positive price and amount."""
        for index, order in enumerate(draft.grid_orders, start=1):
            if order.price <= 0 or order.amount_usd <= 0:
                return RiskCheck(
                    passed=False,
                    reason=(
                        f"Grid order #{index} has non-positive price or amount "
                        f"(price={order.price}, amount_usd={order.amount_usd})"
                    ),
                    risk_level="critical",
                    metadata={"order_number": index},
                )
        return RiskCheck(passed=True)

    def _check_allocation(
        self,
        draft: StrategyDraft,
        total_balance_usd: Decimal,
        settings: EngineSettings,
    ) -> RiskCheck:
        """Total grid notional must stay within max_allocation_percent."""
        if total_balance_usd <= 0:
            return RiskCheck(
                passed=False,
                reason="Portfolio balance is zero; cannot allocate",
                risk_level="critical",
                metadata={"total_balance_usd": str(total_balance_usd)},
            )

        allocation = calculate_allocation_percent(draft.grid_orders, total_balance_usd)
        limit = Decimal(str(settings.max_allocation_percent))
        if allocation > limit:
            return RiskCheck(
                passed=False,
                reason=f"Allocation ({allocation:.1f}%) exceeds limit ({limit:g}%)",
                risk_level="critical",
                metadata=self._allocation_metadata(draft, total_balance_usd),
            )
        return RiskCheck(passed=True)

    def _allocation_metadata(self, draft: StrategyDraft, total_balance_usd: Decimal) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {"total_allocation_usd": str(draft.total_allocation_usd)}
        if total_balance_usd > 0:
            metadata["allocation_percent"] = calculate_allocation_percent(
                draft.grid_orders, total_balance_usd
            )
        return metadata
