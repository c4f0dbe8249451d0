"""Data models for the gridpilot autonomous grid engine.

This module defines the structures that flow through one engine cycle:
- PortfolioSnapshot: holdings fetched at the start of a cycle
- StrategyDraft / GridOrder: the generator's proposal
- ReviewResult: the reviewer's independent verdict
- OrderParams / ExecutionOutcome: exchange-level orders and their results
- TradingStats / LogEntry: process-wide accounting

All monetary values use Decimal for precision.
All timestamps are timezone-aware UTC datetime objects.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================

class OrderSide(str, Enum):
    """Grid order side - buy or sell."""
    BUY = "buy"
    SELL = "sell"


class RiskTolerance(str, Enum):
    """Operator risk appetite."""
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


class MarketCondition(str, Enum):
    """Market hint passed to the strategy generator."""
    BULL = "bull"
    BEAR = "bear"
    NEUTRAL = "neutral"


class RiskLevel(str, Enum):
    """Risk classification attached to a strategy draft."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EngineStatus(str, Enum):
    """Engine loop controller states."""
    IDLE = "idle"
    MONITORING = "monitoring"
    ANALYZING = "analyzing"
    EXECUTING = "executing"
    ERROR = "error"


class LogSeverity(str, Enum):
    """Activity log entry severity."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


# =============================================================================
# Engine Settings
# =============================================================================

class EngineSettings(BaseModel):
    """Operator-controlled engine settings.

    Owned by the engine controller. Assignments are validated so an
    out-of-range value never replaces a good one.
    """
    model_config = ConfigDict(validate_assignment=True)

    enabled: bool = Field(default=False, description="Engine running")
    risk_tolerance: RiskTolerance = Field(
        default=RiskTolerance.CONSERVATIVE, description="Risk appetite"
    )
    max_allocation_percent: float = Field(
        default=10.0, ge=1.0, le=50.0, description="Max % of portfolio per strategy"
    )
    max_daily_loss_percent: float = Field(
        default=5.0, ge=1.0, le=20.0, description="Circuit breaker threshold"
    )
    check_interval_minutes: int = Field(default=15, description="Cycle period")
    auto_execute: bool = Field(default=False, description="Execute without confirmation")

    @field_validator("check_interval_minutes")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        """Validate interval is one of the supported periods."""
        if v not in (5, 15, 30, 60, 240):
            raise ValueError("check_interval_minutes must be one of 5, 15, 30, 60, 240")
        return v


# =============================================================================
# Portfolio Models
# =============================================================================

class PortfolioToken(BaseModel):
    """A single token holding."""
    model_config = ConfigDict(frozen=True)

    token_symbol: str = Field(..., description="Ticker symbol")
    token_name: str = Field(default="", description="Display name")
    balance: str = Field(default="0", description="Token balance as reported")
    balance_usd: Decimal = Field(default=Decimal("0"), description="USD value")
    price_usd: Decimal = Field(default=Decimal("0"), description="USD price")
    chain: str = Field(default="", description="Chain the token lives on")

    @field_validator("balance", mode="before")
    @classmethod
    def balance_as_text(cls, v: Any) -> str:
        """Balances may arrive as numbers or strings."""
        return str(v) if v is not None else "0"


class PortfolioSnapshot(BaseModel):
    """Holdings for one wallet, fetched once per cycle.

    Attributes:
        wallet_address: Wallet identifier
        total_balance_usd: Total portfolio value in USD
        tokens: Held tokens in the order the service reported them
        chains: Chains the wallet is active on
        timestamp: Fetch time
    """
    model_config = ConfigDict(frozen=True)

    wallet_address: str = Field(..., description="Wallet identifier")
    total_balance_usd: Decimal = Field(default=Decimal("0"), ge=0, description="Total USD value")
    tokens: List[PortfolioToken] = Field(default_factory=list, description="Holdings")
    chains: List[str] = Field(default_factory=list, description="Active chains")
    timestamp: datetime = Field(default_factory=utc_now, description="Fetch time")


# =============================================================================
# Strategy Models
# =============================================================================

class GridOrder(BaseModel):
    """One level of a grid ladder.

    Prices are not range-checked here; the risk guard rejects non-positive
    levels before execution and the translator refuses them outright.
    """
    model_config = ConfigDict(frozen=True)

    type: OrderSide = Field(..., description="Buy or sell")
    price: Decimal = Field(..., description="Level price in USD")
    amount_usd: Decimal = Field(..., description="Order notional in USD")
    trigger_condition: str = Field(default="", description="Human-readable trigger")


class StrategyDraft(BaseModel):
    """A strategy proposed by the generation gateway.

    Attributes:
        strategy_type: e.g. "Grid Trading - Neutral"
        market_analysis: Short market commentary
        recommended_token: Asset the grid trades
        grid_orders: Ladder levels, at least one
        risk_level: low / medium / high
        expected_return: Free-text range such as "3-5%"
        rationale: Why the strategy should work
        warnings: Generator-declared risks
        generated_at: Creation time
        model: Advisory model that produced the draft
        wallet_address: Wallet the draft was generated for
    """
    model_config = ConfigDict(frozen=True)

    strategy_type: str = Field(..., description="Strategy type")
    market_analysis: str = Field(default="", description="Market analysis")
    recommended_token: str = Field(..., min_length=1, description="Asset symbol")
    grid_orders: List[GridOrder] = Field(..., min_length=1, description="Grid levels")
    risk_level: RiskLevel = Field(..., description="Risk classification")
    expected_return: str = Field(default="", description="Expected return range")
    rationale: str = Field(default="", description="Rationale")
    warnings: List[str] = Field(default_factory=list, description="Warnings")

    generated_at: datetime = Field(default_factory=utc_now, description="Creation time")
    model: Optional[str] = Field(default=None, description="Generator model")
    wallet_address: Optional[str] = Field(default=None, description="Target wallet")

    @field_validator("expected_return", mode="before")
    @classmethod
    def expected_return_as_text(cls, v: Any) -> str:
        """Models sometimes answer with a bare number."""
        return "" if v is None else str(v)

    @field_validator("risk_level", mode="before")
    @classmethod
    def normalize_risk_level(cls, v: Any) -> Any:
        """Accept 'Low', 'MEDIUM', etc."""
        return v.strip().lower() if isinstance(v, str) else v

    @property
    def total_allocation_usd(self) -> Decimal:
        """Sum of all order notionals."""
        return sum((o.amount_usd for o in self.grid_orders), Decimal("0"))


class ReviewResult(BaseModel):
    """The reviewer's verdict on exactly one StrategyDraft."""
    model_config = ConfigDict(frozen=True)

    approved: bool = Field(..., description="Approve or reject")
    confidence_score: float = Field(..., ge=0, le=100, description="Confidence 0-100")
    risk_assessment: str = Field(default="", description="Risk assessment")
    identified_risks: List[str] = Field(default_factory=list, description="Risks found")
    recommendations: List[str] = Field(default_factory=list, description="Recommendations")
    approval_rationale: str = Field(default="", description="Why approved/rejected")
    required_changes: Optional[List[str]] = Field(default=None, description="Changes if rejected")

    reviewed_at: datetime = Field(default_factory=utc_now, description="Review time")
    reviewer_model: Optional[str] = Field(default=None, description="Reviewer model")
    total_allocation_usd: Optional[Decimal] = Field(default=None, description="Reviewed allocation")
    allocation_percentage: Optional[Decimal] = Field(default=None, description="Allocation %")


class CurrentStrategy(BaseModel):
    """The draft/review pair currently on offer.

    Replaced as a unit; never updated one half at a time.
    """
    model_config = ConfigDict(frozen=True)

    draft: StrategyDraft
    review: ReviewResult
    snapshot: PortfolioSnapshot
    created_at: datetime = Field(default_factory=utc_now)
    executed: bool = False


# =============================================================================
# Execution Models
# =============================================================================

class OrderParams(BaseModel):
    """Exchange-native limit order derived from one GridOrder."""
    model_config = ConfigDict(frozen=True)

    asset: str = Field(..., description="Asset symbol, e.g. ETH")
    is_buy: bool = Field(..., description="True for buys")
    size: Decimal = Field(..., description="Size in tokens (6 dp)")
    limit_price: Decimal = Field(..., description="Limit price in USD (2 dp)")
    reduce_only: bool = Field(default=False, description="Never set by this engine")


class ExecutionOutcome(BaseModel):
    """Result of submitting a single order."""
    model_config = ConfigDict(frozen=True)

    success: bool
    order_id: Optional[str] = None
    error: Optional[str] = None
    order: Optional[OrderParams] = None


class ExecutionReport(BaseModel):
    """All outcomes of one execution run, in submission order."""

    outcomes: List[ExecutionOutcome] = Field(default_factory=list)
    allocation_percent: Decimal = Field(default=Decimal("0"))
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None

    @property
    def successful_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)


class PlannedOrder(BaseModel):
    """One order line in an execution plan."""
    model_config = ConfigDict(frozen=True)

    order_number: int
    type: OrderSide
    price: Decimal
    amount_usd: Decimal
    estimated_tokens: Decimal
    trigger_condition: str = ""


class ExecutionPlan(BaseModel):
    """Operator-facing plan for signing an approved strategy by hand."""
    model_config = ConfigDict(frozen=True)

    execution_id: str
    wallet_address: str
    token: str
    orders: List[PlannedOrder]
    total_usd_required: Decimal
    estimated_gas_cost: Decimal
    execution_instructions: List[str]
    warnings: List[str]
    ready_to_execute: bool = True
    created_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# Stats & Log Models
# =============================================================================

class TradingStats(BaseModel):
    """Process-wide trading counters.

    Cumulative counters only grow. daily_pnl is the only field the daily
    reset touches.
    """

    total_trades: int = Field(default=0, ge=0)
    successful_trades: int = Field(default=0, ge=0)
    failed_trades: int = Field(default=0, ge=0)
    total_pnl: Decimal = Field(default=Decimal("0"))
    daily_pnl: Decimal = Field(default=Decimal("0"))
    last_trade_time: Optional[datetime] = None

    @property
    def success_rate(self) -> Decimal:
        """Percentage of submitted orders that succeeded."""
        attempted = self.successful_trades + self.failed_trades
        if attempted == 0:
            return Decimal("0")
        return (Decimal(self.successful_trades) / Decimal(attempted)) * 100

    def record_execution(self, report: ExecutionReport) -> None:
        """Add one execution run's outcomes."""
        self.total_trades += report.successful_count
        self.successful_trades += report.successful_count
        self.failed_trades += report.failed_count
        self.last_trade_time = report.completed_at or utc_now()

    def record_execution_failure(self) -> None:
        """Count an execution that failed before any order went out."""
        self.failed_trades += 1

    def record_pnl(self, amount: Decimal) -> None:
        """Add realised PnL to both the cumulative and daily totals."""
        self.total_pnl += amount
        self.daily_pnl += amount

    def reset_daily_pnl(self) -> None:
        self.daily_pnl = Decimal("0")


class LogEntry(BaseModel):
    """One human-readable activity log line."""
    model_config = ConfigDict(frozen=True)

    time: datetime = Field(default_factory=utc_now)
    message: str
    severity: LogSeverity = LogSeverity.INFO
