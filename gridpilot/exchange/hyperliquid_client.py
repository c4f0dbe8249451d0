"""Hyperliquid exchange client for gridpilot.

Orders are placed as GTC limit orders on the USDC-margined perpetual for
the strategy's token (``ETH`` -> ``ETH/USDC:USDC``). Signing happens inside
ccxt with the wallet's private key; nothing else in the engine sees it.
"""
from typing import Any, Dict, Optional

import ccxt.async_support as ccxt
import structlog

from gridpilot.core.config import ExchangeConfig, engine_config
from gridpilot.core.exceptions import ConfigurationError
from gridpilot.core.models import ExecutionOutcome, OrderParams
from gridpilot.exchange.base import ExchangeGateway
from gridpilot.utils.retry import with_retry

logger = structlog.get_logger(__name__)

# Transient transport failures worth retrying on reads
RETRYABLE_ERRORS = (ccxt.NetworkError, ccxt.ExchangeNotAvailable, ccxt.RequestTimeout)


def market_symbol(asset: str) -> str:
    """ccxt symbol for an asset's USDC perpetual."""
    return f"{asset.upper()}/USDC:USDC"


class HyperliquidClient(ExchangeGateway):
    """ccxt-backed Hyperliquid gateway for one wallet.

    Attributes:
        exchange: The ccxt hyperliquid instance (created on initialize)
        testnet: Whether orders go to the Hyperliquid testnet
    """

    def __init__(self, config: Optional[ExchangeConfig] = None, exchange: Any = None):
        self.config = config or engine_config.exchange
        self.testnet = self.config.testnet
        self.exchange = exchange
        self._initialized = exchange is not None

    async def initialize(self) -> None:
        """Create the ccxt exchange and load markets."""
        if self._initialized:
            return

        if not self.config.wallet_address or not self.config.private_key:
            raise ConfigurationError("Hyperliquid wallet address and private key are required")

        exchange = ccxt.hyperliquid({
            "walletAddress": self.config.wallet_address,
            "privateKey": self.config.private_key,
            "enableRateLimit": True,
        })
        if self.testnet:
            exchange.set_sandbox_mode(True)

        try:
            await self._load_markets(exchange)
        except Exception as e:
            try:
                await exchange.close()
            except Exception as close_error:
                logger.debug("hyperliquid_client.close_failed", error=str(close_error))
            logger.error("hyperliquid_client.init_failed", error=str(e), testnet=self.testnet)
            raise

        self.exchange = exchange
        self._initialized = True
        logger.info(
            "hyperliquid_client.initialized",
            wallet=self.config.wallet_address,
            testnet=self.testnet,
        )

    @with_retry(RETRYABLE_ERRORS)
    async def _load_markets(self, exchange) -> Dict[str, Any]:
        return await exchange.load_markets()

    async def get_chain_id(self) -> int:
        """Chain the signer settles on.

        Hyperliquid signs over Arbitrum One on mainnet and Arbitrum Sepolia
        on testnet.
        """
        return self.config.signer_chain_id

    async def sign_and_submit(self, order: OrderParams) -> ExecutionOutcome:
        """Place one GTC limit order.

        Exchange rejections come back as an unsuccessful outcome; the order
        is not retried.
        """
        if not self._initialized:
            await self.initialize()

        if not order.asset or order.size <= 0 or order.limit_price <= 0:
            error = (
                f"Invalid order: asset={order.asset!r}, size={order.size}, "
                f"price={order.limit_price}"
            )
            logger.warning("hyperliquid_client.order_invalid", error=error)
            return ExecutionOutcome(success=False, error=error, order=order)

        symbol = market_symbol(order.asset)
        side = "buy" if order.is_buy else "sell"

        try:
            result = await self.exchange.create_order(
                symbol,
                "limit",
                side,
                float(order.size),
                float(order.limit_price),
                params={"reduceOnly": order.reduce_only, "timeInForce": "Gtc"},
            )
        except ccxt.BaseError as e:
            logger.error(
                "hyperliquid_client.order_rejected",
                symbol=symbol,
                side=side,
                size=str(order.size),
                price=str(order.limit_price),
                error=str(e),
            )
            return ExecutionOutcome(success=False, error=str(e), order=order)

        order_id = result.get("id") if isinstance(result, dict) else None
        logger.info(
            "hyperliquid_client.order_placed",
            symbol=symbol,
            side=side,
            size=str(order.size),
            price=str(order.limit_price),
            order_id=order_id,
        )
        return ExecutionOutcome(
            success=True,
            order_id=str(order_id) if order_id is not None else None,
            order=order,
        )

    async def close(self) -> None:
        """Close the exchange connection."""
        if self.exchange is not None:
            await self.exchange.close()
        self._initialized = False
        logger.info("hyperliquid_client.closed")


async def create_hyperliquid_client(config: Optional[ExchangeConfig] = None) -> HyperliquidClient:
    """Create and initialize a HyperliquidClient.

    Example:
        >>> client = await create_hyperliquid_client()
        >>> outcome = await client.sign_and_submit(params)
        >>> await client.close()
    """
    client = HyperliquidClient(config=config)
    await client.initialize()
    return client
