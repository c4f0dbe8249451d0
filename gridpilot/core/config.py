"""Configuration management for the gridpilot autonomous grid engine."""

from typing import List, Literal, Optional

from pydantic import Field, computed_field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ARBITRUM_ONE_CHAIN_ID = 42161
ARBITRUM_SEPOLIA_CHAIN_ID = 421614

# =============================================================================
# System Configuration
# =============================================================================


class SystemConfig(BaseSettings):
    """System-level configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    environment: Literal["development", "staging", "production"] = Field(
        default="development", validation_alias="ENVIRONMENT"
    )
    app_name: str = Field(default="gridpilot", validation_alias="APP_NAME")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )


# =============================================================================
# Advisory (AI) Service Configuration
# =============================================================================


class AdvisoryConfig(BaseSettings):
    """Credentials and request parameters for the two advisory services.

    The generator and the reviewer share credentials but never share a
    client instance or conversation state.
    """

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    api_key: str = Field(default="", validation_alias="ANTHROPIC_API_KEY")
    base_url: str = Field(
        default="https://api.anthropic.com", validation_alias="ADVISORY_BASE_URL"
    )
    api_version: str = Field(default="2023-06-01", validation_alias="ADVISORY_API_VERSION")
    model: str = Field(default="claude-3-haiku-20240307", validation_alias="ADVISORY_MODEL")
    timeout_seconds: float = Field(default=60.0, validation_alias="ADVISORY_TIMEOUT")

    # Generation: more exploratory
    generation_max_tokens: int = Field(default=2048, validation_alias="GENERATION_MAX_TOKENS")
    generation_temperature: float = Field(
        default=0.7, ge=0.0, le=1.0, validation_alias="GENERATION_TEMPERATURE"
    )

    # Review: lower temperature for a more conservative second opinion
    review_max_tokens: int = Field(default=1500, validation_alias="REVIEW_MAX_TOKENS")
    review_temperature: float = Field(
        default=0.3, ge=0.0, le=1.0, validation_alias="REVIEW_TEMPERATURE"
    )

    @computed_field
    @property
    def is_configured(self) -> bool:
        """True if an API key is present."""
        return bool(self.api_key) and not self.api_key.startswith("your_")


# =============================================================================
# Portfolio Data Service Configuration
# =============================================================================


class PortfolioServiceConfig(BaseSettings):
    """Portfolio data service (Octav) configuration."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    api_key: str = Field(default="", validation_alias="OCTAV_API_KEY")
    base_url: str = Field(default="https://api.octav.fi", validation_alias="OCTAV_API_URL")
    timeout_seconds: float = Field(default=30.0, validation_alias="OCTAV_TIMEOUT")

    @field_validator("api_key")
    @classmethod
    def strip_key(cls, v: str) -> str:
        """Keys pasted into .env often carry trailing whitespace."""
        return v.strip()


# =============================================================================
# Exchange Configuration
# =============================================================================


class ExchangeConfig(BaseSettings):
    """Hyperliquid exchange configuration.

    The private key is signing material held by the host environment. It is
    handed to the exchange adapter only; the engine never reads it.
    """

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    wallet_address: str = Field(default="", validation_alias="HYPERLIQUID_WALLET_ADDRESS")
    private_key: str = Field(default="", validation_alias="HYPERLIQUID_PRIVATE_KEY")
    testnet: bool = Field(default=False, validation_alias="HYPERLIQUID_TESTNET")

    # Defaults to the chain the signer settles on
    expected_chain_id: Optional[int] = Field(default=None, validation_alias="EXPECTED_CHAIN_ID")

    # Grid orders are submitted one at a time with this pause in between
    inter_order_delay_seconds: float = Field(
        default=1.0, ge=0.0, validation_alias="INTER_ORDER_DELAY_SECONDS"
    )

    @property
    def signer_chain_id(self) -> int:
        """Arbitrum One on mainnet, Arbitrum Sepolia on testnet."""
        return ARBITRUM_SEPOLIA_CHAIN_ID if self.testnet else ARBITRUM_ONE_CHAIN_ID

    @model_validator(mode="after")
    def default_expected_chain(self) -> "ExchangeConfig":
        if self.expected_chain_id is None:
            self.expected_chain_id = self.signer_chain_id
        return self


# =============================================================================
# Engine Defaults
# =============================================================================


class EngineDefaults(BaseSettings):
    """Initial EngineSettings values applied at startup."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    risk_tolerance: Literal["conservative", "moderate", "aggressive"] = Field(
        default="conservative", validation_alias="RISK_TOLERANCE"
    )
    max_allocation_percent: float = Field(
        default=10.0, ge=1.0, le=50.0, validation_alias="MAX_ALLOCATION_PERCENT"
    )
    max_daily_loss_percent: float = Field(
        default=5.0, ge=1.0, le=20.0, validation_alias="MAX_DAILY_LOSS_PERCENT"
    )
    check_interval_minutes: int = Field(default=15, validation_alias="CHECK_INTERVAL_MINUTES")
    auto_execute: bool = Field(default=False, validation_alias="AUTO_EXECUTE")
    market_condition: Literal["bull", "bear", "neutral"] = Field(
        default="neutral", validation_alias="MARKET_CONDITION"
    )
    preferred_token: Optional[str] = Field(default=None, validation_alias="PREFERRED_TOKEN")

    @field_validator("check_interval_minutes")
    @classmethod
    def validate_interval(cls, v):
        """Only the intervals offered to operators are accepted."""
        if v not in (5, 15, 30, 60, 240):
            raise ValueError("Check interval must be one of 5, 15, 30, 60, 240 minutes")
        return v


# =============================================================================
# Guard Configuration
# =============================================================================


class GuardConfig(BaseSettings):
    """Confidence thresholds, one per execution path.

    Automatic execution, manual execution and execution-plan acceptance
    each have their own minimum review confidence.
    """

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    auto_execute_min_confidence: float = Field(
        default=70.0, ge=0.0, le=100.0, validation_alias="AUTO_EXECUTE_MIN_CONFIDENCE"
    )
    manual_execute_min_confidence: float = Field(
        default=0.0, ge=0.0, le=100.0, validation_alias="MANUAL_EXECUTE_MIN_CONFIDENCE"
    )
    execution_plan_min_confidence: float = Field(
        default=60.0, ge=0.0, le=100.0, validation_alias="EXECUTION_PLAN_MIN_CONFIDENCE"
    )


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_file: str = Field(default="logs/gridpilot.log", validation_alias="LOG_FILE")
    # json for log shipping, console for a terminal
    log_format: Literal["json", "console"] = Field(default="json", validation_alias="LOG_FORMAT")

    # In-memory activity log shown to operators
    activity_log_size: int = Field(default=50, ge=1, validation_alias="ACTIVITY_LOG_SIZE")


# =============================================================================
# Global Configuration Container
# =============================================================================


class GridPilotConfig:
    """
    Container for all gridpilot configurations.

    Usage:
        from gridpilot.core.config import engine_config

        if engine_config.advisory.is_configured:
            model = engine_config.advisory.model
    """

    def __init__(self):
        self.system = SystemConfig()
        self.advisory = AdvisoryConfig()
        self.portfolio = PortfolioServiceConfig()
        self.exchange = ExchangeConfig()
        self.defaults = EngineDefaults()
        self.guard = GuardConfig()
        self.logging = LoggingConfig()

    @property
    def is_testnet(self) -> bool:
        """Check if orders go to the Hyperliquid testnet."""
        return self.exchange.testnet

    def validate_configuration(self) -> dict:
        """
        Validate the complete configuration and return any issues.

        Returns:
            Dictionary with 'valid' boolean and 'issues' list
        """
        issues: List[str] = []

        if not self.advisory.is_configured:
            issues.append("Missing advisory API key (ANTHROPIC_API_KEY)")

        if not self.portfolio.api_key or self.portfolio.api_key.startswith("your_"):
            issues.append("Missing portfolio service API key (OCTAV_API_KEY)")

        if not self.exchange.wallet_address:
            issues.append("Missing exchange wallet address (HYPERLIQUID_WALLET_ADDRESS)")
        if not self.exchange.private_key or self.exchange.private_key.startswith("your_"):
            issues.append("Missing exchange signing key (HYPERLIQUID_PRIVATE_KEY)")

        network = "testnet" if self.exchange.testnet else "mainnet"
        if self.exchange.expected_chain_id != self.exchange.signer_chain_id:
            issues.append(
                f"EXPECTED_CHAIN_ID {self.exchange.expected_chain_id} does not match the "
                f"Hyperliquid {network} signer chain {self.exchange.signer_chain_id}"
            )

        if self.guard.auto_execute_min_confidence < self.guard.manual_execute_min_confidence:
            issues.append(
                "Auto-execute confidence threshold is below the manual threshold"
            )

        return {"valid": len(issues) == 0, "issues": issues}


# =============================================================================
# Global Configuration Instances
# =============================================================================

logging_config = LoggingConfig()
engine_config = GridPilotConfig()


__all__ = [
    "GridPilotConfig",
    "engine_config",
    "logging_config",
    "ARBITRUM_ONE_CHAIN_ID",
    "ARBITRUM_SEPOLIA_CHAIN_ID",
    "SystemConfig",
    "AdvisoryConfig",
    "PortfolioServiceConfig",
    "ExchangeConfig",
    "EngineDefaults",
    "GuardConfig",
    "LoggingConfig",
]
