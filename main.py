"""
gridpilot - Main Entry Point

Autonomous grid-trading strategy engine: generate -> review -> guard -> execute.

Usage:
    # Check configuration
    python main.py --check

    # Run one cycle and print the result
    python main.py --once --status

    # Run the loop with automatic execution every 30 minutes in a bear market
    python main.py --auto-execute --interval 30 --market bear

    # Force the strategy token
    python main.py --token ETH
"""

import argparse
import asyncio
import signal
from typing import Dict, Optional

import structlog

from gridpilot.core.config import engine_config
from gridpilot.core.engine import AutonomousEngine, create_autonomous_engine
from gridpilot.core.exceptions import ConfigurationError
from gridpilot.core.models import MarketCondition
from gridpilot.utils.logging_config import setup_logging

logger = structlog.get_logger(__name__)


class GridPilotBot:
    """
    Application wrapper around the autonomous engine.

    Builds the engine from configuration, applies command line overrides,
    and runs the loop until a shutdown signal arrives.
    """

    def __init__(
        self,
        wallet_address: Optional[str] = None,
        auto_execute: bool = False,
        interval: Optional[int] = None,
        market: Optional[str] = None,
        token: Optional[str] = None,
    ):
        self.wallet_address = wallet_address
        self.auto_execute = auto_execute
        self.interval = interval
        self.market = market
        self.token = token

        self.engine: Optional[AutonomousEngine] = None
        self._shutdown_event = asyncio.Event()

    def initialize(self):
        """Create the engine. Raises ConfigurationError once if anything is missing."""
        logger.info(
            "bot.initializing",
            environment=engine_config.system.environment,
            testnet=engine_config.is_testnet,
        )

        self.engine = create_autonomous_engine(engine_config, wallet_address=self.wallet_address)

        changes: Dict = {}
        if self.auto_execute:
            changes["auto_execute"] = True
        if self.interval is not None:
            changes["check_interval_minutes"] = self.interval
        if changes:
            self.engine.update_settings(**changes)

        if self.market:
            self.engine.market_condition = MarketCondition(self.market)
        if self.token:
            self.engine.preferred_token = self.token.upper()

        logger.info("bot.initialized", settings=self.engine.settings.model_dump(mode="json"))

    async def run(self):
        """Run the loop until SIGINT/SIGTERM."""
        if self.engine is None:
            raise RuntimeError("Bot not initialized. Call initialize() first.")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._signal_handler)

        try:
            await self.engine.start()
            await self._shutdown_event.wait()
        except Exception as e:
            logger.error("bot.error", error=str(e), exc_info=True)
            raise
        finally:
            await self.shutdown()

    async def run_once(self):
        """Run a single cycle and shut down."""
        if self.engine is None:
            raise RuntimeError("Bot not initialized. Call initialize() first.")
        try:
            await self.engine.run_cycle()
        finally:
            await self.shutdown()

    async def shutdown(self):
        """Perform graceful shutdown."""
        logger.info("bot.shutting_down")
        if self.engine:
            await self.engine.close()
        logger.info("bot.shutdown_complete")

    def _signal_handler(self):
        logger.info("bot.shutdown_signal_received")
        self._shutdown_event.set()


def check_configuration() -> Dict:
    """
    Check if configuration is valid.

    Returns:
        Dictionary with validation results
    """
    validation = engine_config.validate_configuration()
    warnings = []

    if not engine_config.is_testnet:
        warnings.append("⚠️  Orders go to Hyperliquid MAINNET")
    else:
        warnings.append("✓ Using Hyperliquid testnet")

    if engine_config.defaults.auto_execute:
        warnings.append("⚠️  Auto-execute is ON: approved strategies will be placed without confirmation")

    return {
        "valid": validation["valid"],
        "issues": validation["issues"],
        "warnings": warnings,
        "model": engine_config.advisory.model,
        "thresholds": {
            "auto": engine_config.guard.auto_execute_min_confidence,
            "manual": engine_config.guard.manual_execute_min_confidence,
            "plan": engine_config.guard.execution_plan_min_confidence,
        },
    }


def print_status(status: Dict):
    """Print engine status in a formatted way."""
    print("\n" + "=" * 60)
    print("           GRIDPILOT - ENGINE STATUS")
    print("=" * 60)

    print(f"\nState: {status['state'].upper()}  (enabled: {status['enabled']})")
    if status.get("circuit_breaker_tripped"):
        print("⛔ Circuit breaker tripped")
    print(f"Balance: ${status['total_balance_usd']}")
    print(f"Last check: {status.get('last_check_time') or 'never'}")
    if status.get("last_error"):
        print(f"Last error: {status['last_error']}")

    stats = status["stats"]
    print("\nStats:")
    print(f"   Trades: {stats['total_trades']}  "
          f"(ok {stats['successful_trades']} / failed {stats['failed_trades']}, "
          f"{stats['success_rate']}%)")
    print(f"   PnL: total {stats['total_pnl']}  daily {stats['daily_pnl']}")

    strategy = status.get("current_strategy")
    if strategy:
        verdict = "APPROVED" if strategy["approved"] else "REJECTED"
        print(f"\nCurrent strategy: {strategy['strategy_type']} on {strategy['token']}")
        print(f"   {strategy['orders']} orders, ${strategy['total_allocation_usd']}, "
              f"{verdict} at {strategy['confidence_score']}%"
              f"{' (executed)' if strategy['executed'] else ''}")

    if status.get("recent_activity"):
        print("\nRecent activity:")
        for entry in status["recent_activity"]:
            print(f"   [{entry['severity']}] {entry['message']}")

    print("\n" + "=" * 60)


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="gridpilot - autonomous AI grid-trading strategy engine"
    )
    parser.add_argument("--check", action="store_true", help="Check configuration and exit")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    parser.add_argument("--status", action="store_true", help="Print engine status and exit")
    parser.add_argument(
        "--auto-execute", action="store_true", help="Execute approved strategies automatically"
    )
    parser.add_argument(
        "--interval", type=int, choices=[5, 15, 30, 60, 240], help="Check interval in minutes"
    )
    parser.add_argument(
        "--market", choices=["bull", "bear", "neutral"], help="Market condition hint"
    )
    parser.add_argument("--token", help="Force the strategy token (e.g. ETH)")
    parser.add_argument("--wallet", help="Wallet address (overrides HYPERLIQUID_WALLET_ADDRESS)")

    args = parser.parse_args()

    setup_logging()

    if args.check:
        config_check = check_configuration()
        print("\n" + "=" * 60)
        print("           CONFIGURATION CHECK")
        print("=" * 60)
        if config_check["valid"]:
            print("\n✓ Configuration is valid")
        else:
            print("\n✗ Configuration errors:")
            for issue in config_check["issues"]:
                print(f"   - {issue}")
        for warning in config_check["warnings"]:
            print(warning)
        print(f"\nModel: {config_check['model']}")
        thresholds = config_check["thresholds"]
        print(f"Confidence thresholds: auto {thresholds['auto']:g}% / "
              f"manual {thresholds['manual']:g}% / plan {thresholds['plan']:g}%")
        print("\n" + "=" * 60)
        return

    bot = GridPilotBot(
        wallet_address=args.wallet,
        auto_execute=args.auto_execute,
        interval=args.interval,
        market=args.market,
        token=args.token,
    )

    try:
        bot.initialize()
    except ConfigurationError as e:
        print("\n✗ Configuration errors:")
        for issue in e.issues:
            print(f"   - {issue}")
        print("\nPlease check your .env file and try again.")
        return

    try:
        if args.once:
            await bot.run_once()
            if args.status:
                print_status(bot.engine.get_status())
            return

        if args.status:
            print_status(bot.engine.get_status())
            await bot.shutdown()
            return

        await bot.run()

    except KeyboardInterrupt:
        print("\n\nShutdown requested by user...")
    except Exception as e:
        logger.error("main.error", error=str(e), exc_info=True)
        print(f"\n✗ Fatal error: {e}")
        raise


if __name__ == "__main__":
    asyncio.run(main())
