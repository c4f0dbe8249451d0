"""Autonomous engine - the loop controller that drives every cycle.

One cycle: circuit breaker -> portfolio fetch -> generate -> review ->
(auto-execute | hold for manual confirmation | discard).

States: idle -> monitoring -> analyzing -> executing -> idle, with error
reachable from any working state and always falling back to idle.

A timer fires once on enable and then every ``check_interval_minutes``
measured from cycle start. Each tick launches the cycle as its own task so
disabling the engine (which cancels only the timer) never interrupts a
cycle already under way. An in-progress flag keeps cycles from overlapping.
"""
import asyncio
from collections import deque
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Deque, Dict, List, Optional, Tuple

import structlog

from gridpilot.advisory.base import StrategyGenerationGateway, StrategyReviewGateway
from gridpilot.core.activity_log import ActivityLog
from gridpilot.core.config import ARBITRUM_ONE_CHAIN_ID
from gridpilot.core.exceptions import (
    ConfigurationError,
    EngineBusyError,
    GridPilotError,
    GuardRejection,
    NetworkMismatchError,
    NoStrategyError,
    ParseError,
)
from gridpilot.core.models import (
    CurrentStrategy,
    EngineSettings,
    EngineStatus,
    ExecutionPlan,
    ExecutionReport,
    MarketCondition,
    PortfolioSnapshot,
    TradingStats,
    utc_now,
)
from gridpilot.exchange.base import ExchangeGateway
from gridpilot.execution.plan import build_execution_plan
from gridpilot.execution.submitter import ExecutionSubmitter
from gridpilot.risk.guard import ExecutionPath, RiskCheck, RiskGuard

logger = structlog.get_logger(__name__)


class AutonomousEngine:
    """
    Engine loop controller.

    Responsibilities:
    - Schedules cycles and prevents them from overlapping
    - Trips the daily-loss circuit breaker and disables itself
    - Holds the single current draft/review pair
    - Routes approved strategies to automatic or manual execution
    - Owns settings, stats and the activity log
    """

    SECONDS_PER_MINUTE = 60
    SECONDS_PER_DAY = 24 * 60 * 60
    STATE_HISTORY_SIZE = 20

    def __init__(
        self,
        wallet_address: str,
        portfolio,
        generator: StrategyGenerationGateway,
        reviewer: StrategyReviewGateway,
        exchange: ExchangeGateway,
        guard: Optional[RiskGuard] = None,
        settings: Optional[EngineSettings] = None,
        activity_log: Optional[ActivityLog] = None,
        expected_chain_id: int = ARBITRUM_ONE_CHAIN_ID,
        inter_order_delay: float = ExecutionSubmitter.DEFAULT_INTER_ORDER_DELAY,
        market_condition: MarketCondition = MarketCondition.NEUTRAL,
        preferred_token: Optional[str] = None,
    ):
        self.wallet_address = wallet_address
        self.portfolio = portfolio
        self.generator = generator
        self.reviewer = reviewer
        self.exchange = exchange
        self.guard = guard or RiskGuard()
        self.submitter = ExecutionSubmitter(exchange, inter_order_delay=inter_order_delay)
        self.expected_chain_id = expected_chain_id
        self.market_condition = market_condition
        self.preferred_token = preferred_token

        # Owned state
        self.settings = settings or EngineSettings()
        self.stats = TradingStats()
        self.log = activity_log or ActivityLog()
        self.state = EngineStatus.IDLE
        self.state_history: Deque[Tuple[datetime, EngineStatus]] = deque(
            maxlen=self.STATE_HISTORY_SIZE
        )
        self.current_strategy: Optional[CurrentStrategy] = None
        self.last_snapshot: Optional[PortfolioSnapshot] = None
        self.last_execution: Optional[ExecutionReport] = None
        self.total_balance_usd = Decimal("0")
        self.circuit_breaker_tripped = False
        self.last_error: Optional[str] = None
        self.last_check_time: Optional[datetime] = None
        self.next_check_time: Optional[datetime] = None
        self.cycle_count = 0

        # Control
        self._in_progress = False
        self._timer_task: Optional[asyncio.Task] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self._daily_reset_task: Optional[asyncio.Task] = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_running(self) -> bool:
        """True while the timer is armed."""
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def cycle_in_progress(self) -> bool:
        return self._in_progress

    async def start(self):
        """Enable the engine."""
        logger.info("engine.starting", wallet=self.wallet_address)
        self.enable()

    async def stop(self):
        """Disable the engine, let an in-flight cycle finish, stop the daily reset."""
        logger.info("engine.stopping")
        self.disable()

        if self._cycle_task and not self._cycle_task.done():
            await self._cycle_task

        if self._daily_reset_task:
            self._daily_reset_task.cancel()
            try:
                await self._daily_reset_task
            except asyncio.CancelledError:
                pass
            self._daily_reset_task = None

        logger.info("engine.stopped")

    def enable(self):
        """Turn the loop on and arm the daily PnL reset.

        The first cycle is dispatched immediately.
        """
        self._ensure_daily_reset()
        if self.is_running:
            return
        self.settings.enabled = True
        self.circuit_breaker_tripped = False
        self.log.success(
            f"Autonomous engine enabled (checking every {self.settings.check_interval_minutes} min)"
        )
        self._start_timer()

    def disable(self, reason: Optional[str] = None):
        """Turn the loop off. Does not interrupt a cycle already running."""
        was_enabled = self.settings.enabled or self.is_running
        self.settings.enabled = False
        self._cancel_timer()
        if was_enabled and reason is None:
            self.log.info("Autonomous engine disabled")
        logger.info("engine.disabled", reason=reason, cycle_in_progress=self._in_progress)

    def _start_timer(self):
        self._cancel_timer()
        self._timer_task = asyncio.create_task(self._timer_loop())

    def _cancel_timer(self):
        if self._timer_task and not self._timer_task.done():
            self._timer_task.cancel()
        self._timer_task = None
        self.next_check_time = None

    async def _timer_loop(self):
        """Fire now, then every interval measured from each tick."""
        while True:
            interval = self.settings.check_interval_minutes * self.SECONDS_PER_MINUTE
            self.next_check_time = utc_now() + timedelta(seconds=interval)
            self._dispatch_cycle()
            await asyncio.sleep(interval)

    def _dispatch_cycle(self) -> bool:
        """Launch a cycle task unless one is still running."""
        if self._in_progress:
            logger.warning("engine.tick_skipped", reason="cycle_in_progress")
            self.log.warning("Previous cycle still running; skipping this check")
            return False
        self._in_progress = True
        self._cycle_task = asyncio.create_task(self._guarded_cycle(require_enabled=True))
        return True

    async def _guarded_cycle(self, require_enabled: bool):
        self.cycle_count += 1
        try:
            with structlog.contextvars.bound_contextvars(
                cycle=self.cycle_count, wallet=self.wallet_address
            ):
                await self._cycle(require_enabled=require_enabled)
        finally:
            self._in_progress = False

    async def run_cycle(self):
        """Run one cycle now and wait for it, whether or not the timer is armed.

        Raises:
            EngineBusyError: A cycle is already running.
        """
        if self._in_progress:
            raise EngineBusyError("A cycle is already in progress")
        self._in_progress = True
        await self._guarded_cycle(require_enabled=False)

    # =========================================================================
    # Cycle
    # =========================================================================

    def _set_state(self, state: EngineStatus):
        if state != self.state:
            logger.debug("engine.state_changed", previous=self.state.value, state=state.value)
        self.state = state
        self.state_history.append((utc_now(), state))

    async def _cycle(self, require_enabled: bool = True):
        if require_enabled and not self.settings.enabled:
            logger.info("engine.cycle_skipped", reason="disabled")
            return

        self.last_check_time = utc_now()
        self._set_state(EngineStatus.MONITORING)
        logger.info("engine.cycle_started", wallet=self.wallet_address)

        # No loss limit can be computed until a snapshot has been seen
        if self.total_balance_usd <= 0:
            logger.info(
                "engine.circuit_breaker_skipped",
                reason="balance_unknown",
                daily_pnl=str(self.stats.daily_pnl),
            )
        else:
            breaker = self.guard.check_circuit_breaker(
                self.stats.daily_pnl,
                self.total_balance_usd,
                self.settings.max_daily_loss_percent,
            )
            if not breaker.passed:
                self._trip_circuit_breaker(breaker)
                return

        phase = "Portfolio fetch"
        try:
            self._set_state(EngineStatus.ANALYZING)
            # The old pair goes away as a unit; a new one is set only once both halves exist
            self.current_strategy = None

            snapshot = await self.portfolio.fetch(self.wallet_address)
            self.last_snapshot = snapshot
            self.total_balance_usd = snapshot.total_balance_usd

            phase = "Strategy generation"
            draft = await self.generator.generate(
                snapshot, self.market_condition, self.preferred_token
            )

            phase = "Strategy review"
            review = await self.reviewer.review(
                draft, self.wallet_address, snapshot.total_balance_usd
            )
        except GridPilotError as e:
            self._enter_error(f"{phase} failed: {e}", e)
            return
        except Exception as e:
            logger.exception("engine.cycle_unexpected_error", phase=phase)
            self._enter_error(f"{phase} failed: {e}", e)
            return

        if not review.approved:
            logger.info(
                "engine.strategy_rejected",
                token=draft.recommended_token,
                confidence=review.confidence_score,
            )
            self.log.warning(
                f"Strategy rejected by review ({review.confidence_score:g}% confidence): "
                f"{review.approval_rationale}"
            )
            self._set_state(EngineStatus.IDLE)
            return

        strategy = CurrentStrategy(draft=draft, review=review, snapshot=snapshot)
        self.current_strategy = strategy

        gate = self.guard.check_confidence(review, ExecutionPath.AUTO)
        if self.settings.auto_execute and gate.passed:
            try:
                await self._execute(strategy)
            except GuardRejection as rejection:
                self._log_rejection(rejection.check)
            except Exception as e:
                self._execution_failed(e)
            return

        logger.info(
            "engine.awaiting_confirmation",
            token=draft.recommended_token,
            confidence=review.confidence_score,
            auto_execute=self.settings.auto_execute,
        )
        self.log.info(
            f"Strategy approved ({review.confidence_score:g}% confidence) for "
            f"{draft.recommended_token} - awaiting manual confirmation"
        )
        self._set_state(EngineStatus.IDLE)

    def _trip_circuit_breaker(self, check: RiskCheck):
        self.circuit_breaker_tripped = True
        self.log.error(f"CIRCUIT BREAKER TRIGGERED: {check.reason}")
        self.disable(reason="circuit_breaker")
        self._set_state(EngineStatus.IDLE)

    def _enter_error(self, message: str, error: Exception):
        self.last_error = message
        self._set_state(EngineStatus.ERROR)
        log_context: Dict[str, Any] = {"error": str(error), "error_type": type(error).__name__}
        if isinstance(error, ParseError):
            log_context["raw_response"] = error.raw_response
        logger.error("engine.cycle_failed", **log_context)
        self.log.error(message)
        self._set_state(EngineStatus.IDLE)

    def _log_rejection(self, check: RiskCheck):
        logger.warning("engine.execution_blocked", rule=check.rule_triggered, reason=check.reason)
        self.log.warning(f"Execution blocked by risk guard: {check.reason}")
        self._set_state(EngineStatus.IDLE)

    def _execution_failed(self, error: Exception):
        self.stats.record_execution_failure()
        self._enter_error(f"Execution failed: {error}", error)

    # =========================================================================
    # Execution
    # =========================================================================

    async def _verify_network(self):
        chain_id = await self.exchange.get_chain_id()
        if chain_id != self.expected_chain_id:
            raise NetworkMismatchError(self.expected_chain_id, chain_id)

    async def _execute(self, strategy: CurrentStrategy) -> ExecutionReport:
        """Allocation check, network check, submit, account.

        Raises:
            GuardRejection: Allocation cap or order values refused
            NetworkMismatchError: Signer on the wrong chain
            InvalidOrderError: Translation refused the grid
        """
        check = self.guard.check_pre_execution(
            strategy.draft, strategy.snapshot.total_balance_usd, self.settings
        )
        if not check.passed:
            raise GuardRejection(check)

        self._set_state(EngineStatus.EXECUTING)
        await self._verify_network()

        report = await self.submitter.submit(
            strategy.draft, allocation_percent=check.metadata.get("allocation_percent", Decimal("0"))
        )
        self.stats.record_execution(report)
        self.last_execution = report
        if self.current_strategy is strategy:
            self.current_strategy = strategy.model_copy(update={"executed": True})

        token = strategy.draft.recommended_token
        total = len(report.outcomes)
        if report.failed_count == 0:
            self.log.success(f"Executed {total} grid orders for {token}")
        elif report.successful_count == 0:
            self.log.error(f"All {total} grid orders for {token} failed")
        else:
            self.log.warning(
                f"Partially executed {token} grid: {report.successful_count} placed, "
                f"{report.failed_count} failed"
            )

        self._set_state(EngineStatus.IDLE)
        return report

    async def execute_current_strategy(self) -> ExecutionReport:
        """Manually execute the strategy held for confirmation.

        Re-runs the allocation check; the confidence requirement is the
        manual one.

        Raises:
            EngineBusyError: A cycle is in progress
            NoStrategyError: Nothing to execute, or it was already executed
            GuardRejection: The guard refused
        """
        if self._in_progress:
            raise EngineBusyError("Cannot execute while a cycle is in progress")

        strategy = self.current_strategy
        if strategy is None:
            raise NoStrategyError("No strategy awaiting execution")
        if strategy.executed:
            raise NoStrategyError("Current strategy has already been executed")

        gate = self.guard.check_confidence(strategy.review, ExecutionPath.MANUAL)
        if not gate.passed:
            self._log_rejection(gate)
            raise GuardRejection(gate)

        self._in_progress = True
        try:
            return await self._execute(strategy)
        except GuardRejection as rejection:
            self._log_rejection(rejection.check)
            raise
        except Exception as e:
            self._execution_failed(e)
            raise
        finally:
            self._in_progress = False

    def prepare_execution_plan(self) -> ExecutionPlan:
        """Operator plan for the current strategy.

        Raises:
            NoStrategyError: Nothing is on offer
            GuardRejection: Review below the plan threshold
        """
        if self.current_strategy is None:
            raise NoStrategyError("No strategy to plan")
        strategy = self.current_strategy
        return build_execution_plan(
            strategy.draft, strategy.review, self.wallet_address, guard=self.guard
        )

    # =========================================================================
    # Stats & settings
    # =========================================================================

    def record_pnl(self, amount: Decimal):
        """Record realised PnL reported by the host."""
        self.stats.record_pnl(Decimal(str(amount)))
        logger.info(
            "engine.pnl_recorded",
            amount=str(amount),
            daily_pnl=str(self.stats.daily_pnl),
            total_pnl=str(self.stats.total_pnl),
        )

    def reset_daily_pnl(self):
        """Zero daily PnL. Cumulative counters and the breaker latch are untouched."""
        self.stats.reset_daily_pnl()
        self.log.info("Daily PnL reset")

    def _ensure_daily_reset(self):
        if self._daily_reset_task is None or self._daily_reset_task.done():
            self._daily_reset_task = asyncio.create_task(self._daily_reset_loop())

    @staticmethod
    def seconds_until_midnight(now: Optional[datetime] = None) -> float:
        """Seconds until the next local midnight."""
        now = now or datetime.now()
        midnight = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
        return (midnight - now).total_seconds()

    async def _daily_reset_loop(self):
        await asyncio.sleep(self.seconds_until_midnight())
        while True:
            self.reset_daily_pnl()
            await asyncio.sleep(self.SECONDS_PER_DAY)

    def update_settings(self, **changes) -> EngineSettings:
        """Validate and apply setting changes.

        Raises:
            ValueError: Unknown setting name
            pydantic.ValidationError: Out-of-range value; nothing is applied
        """
        unknown = set(changes) - set(EngineSettings.model_fields)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")

        validated = EngineSettings(**{**self.settings.model_dump(), **changes})
        interval_changed = (
            validated.check_interval_minutes != self.settings.check_interval_minutes
        )

        for name in ("risk_tolerance", "max_allocation_percent", "max_daily_loss_percent",
                     "check_interval_minutes", "auto_execute"):
            setattr(self.settings, name, getattr(validated, name))

        logger.info("engine.settings_updated", changes={k: str(v) for k, v in changes.items()})

        if "enabled" in changes and validated.enabled != self.settings.enabled:
            if validated.enabled:
                self.enable()
            else:
                self.disable()
        elif interval_changed and self.is_running:
            self.log.info(
                f"Check interval changed to {self.settings.check_interval_minutes} min"
            )
            self._start_timer()

        return self.settings

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of engine state for display."""
        strategy = None
        if self.current_strategy is not None:
            draft = self.current_strategy.draft
            review = self.current_strategy.review
            strategy = {
                'strategy_type': draft.strategy_type,
                'token': draft.recommended_token,
                'orders': len(draft.grid_orders),
                'total_allocation_usd': str(draft.total_allocation_usd),
                'approved': review.approved,
                'confidence_score': review.confidence_score,
                'executed': self.current_strategy.executed,
            }

        return {
            'state': self.state.value,
            'enabled': self.settings.enabled,
            'running': self.is_running,
            'cycle_in_progress': self._in_progress,
            'cycle_count': self.cycle_count,
            'circuit_breaker_tripped': self.circuit_breaker_tripped,
            'settings': self.settings.model_dump(mode="json"),
            'stats': {
                'total_trades': self.stats.total_trades,
                'successful_trades': self.stats.successful_trades,
                'failed_trades': self.stats.failed_trades,
                'success_rate': str(self.stats.success_rate.quantize(Decimal("0.1"))),
                'total_pnl': str(self.stats.total_pnl),
                'daily_pnl': str(self.stats.daily_pnl),
                'last_trade_time': (
                    self.stats.last_trade_time.isoformat() if self.stats.last_trade_time else None
                ),
            },
            'total_balance_usd': str(self.total_balance_usd),
            'last_check_time': self.last_check_time.isoformat() if self.last_check_time else None,
            'next_check_time': self.next_check_time.isoformat() if self.next_check_time else None,
            'last_error': self.last_error,
            'current_strategy': strategy,
            'recent_activity': [
                {'time': e.time.isoformat(), 'severity': e.severity.value, 'message': e.message}
                for e in self.log.entries(limit=10)
            ],
        }

    async def close(self):
        """Stop and release every client connection."""
        await self.stop()
        for client in (self.portfolio, self.generator, self.reviewer, self.exchange):
            close = getattr(client, "close", None)
            if close is not None:
                await close()


def create_autonomous_engine(
    config=None,
    wallet_address: Optional[str] = None,
    **overrides,
) -> AutonomousEngine:
    """Build a fully wired engine from configuration.

    Configuration problems are collected and raised together, once.

    Raises:
        ConfigurationError: Missing credentials or an invalid wallet
    """
    from gridpilot.advisory.generator import AdvisoryStrategyGenerator
    from gridpilot.advisory.reviewer import AdvisoryStrategyReviewer
    from gridpilot.core.config import engine_config
    from gridpilot.exchange.hyperliquid_client import HyperliquidClient
    from gridpilot.portfolio.client import PortfolioClient, is_valid_wallet_address

    config = config or engine_config
    validation = config.validate_configuration()
    issues: List[str] = list(validation["issues"])

    wallet = wallet_address or config.exchange.wallet_address
    if wallet and not is_valid_wallet_address(wallet):
        issues.append(f"Invalid wallet address format: {wallet}")

    if issues:
        logger.error("engine.configuration_invalid", issues=issues)
        raise ConfigurationError(issues)

    defaults = config.defaults
    settings = EngineSettings(
        enabled=False,
        risk_tolerance=defaults.risk_tolerance,
        max_allocation_percent=defaults.max_allocation_percent,
        max_daily_loss_percent=defaults.max_daily_loss_percent,
        check_interval_minutes=defaults.check_interval_minutes,
        auto_execute=defaults.auto_execute,
    )

    kwargs: Dict[str, Any] = dict(
        wallet_address=wallet,
        portfolio=PortfolioClient(config.portfolio),
        generator=AdvisoryStrategyGenerator(config.advisory),
        reviewer=AdvisoryStrategyReviewer(config.advisory),
        exchange=HyperliquidClient(config.exchange),
        guard=RiskGuard.from_config(config.guard),
        settings=settings,
        activity_log=ActivityLog(config.logging.activity_log_size),
        expected_chain_id=config.exchange.expected_chain_id,
        inter_order_delay=config.exchange.inter_order_delay_seconds,
        market_condition=MarketCondition(defaults.market_condition),
        preferred_token=defaults.preferred_token,
    )
    kwargs.update(overrides)

    logger.info("engine.created", wallet=wallet, testnet=config.exchange.testnet)
    return AutonomousEngine(**kwargs)
