"""Portfolio data service (Octav) client.

Fetches one wallet's holdings per cycle. Every failure surfaces as a
TransportError subclass or ParseError; the caller aborts the cycle.
"""
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx
import structlog
from pydantic import ValidationError

from gridpilot.core.config import PortfolioServiceConfig, engine_config
from gridpilot.core.exceptions import (
    AuthenticationError,
    NotFoundError,
    ParseError,
    RateLimitError,
    TransportError,
)
from gridpilot.core.models import PortfolioSnapshot, PortfolioToken

logger = structlog.get_logger(__name__)

SERVICE_NAME = "portfolio"
WALLET_ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


def is_valid_wallet_address(address: str) -> bool:
    """EVM address: 0x followed by 40 hex characters."""
    return bool(address) and WALLET_ADDRESS_PATTERN.match(address) is not None


def _to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ParseError(f"Not a number: {value!r}", service=SERVICE_NAME, raw_response=str(value))


class PortfolioClient:
    """Async HTTP client for the portfolio data service.

    Args:
        config: Service credentials and endpoint (defaults to engine_config.portfolio)
        transport: Optional httpx transport, used by tests
    """

    def __init__(
        self,
        config: Optional[PortfolioServiceConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or engine_config.portfolio
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            transport=transport,
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "Content-Type": "application/json",
            },
        )

    async def fetch(self, wallet_address: str) -> PortfolioSnapshot:
        """Fetch a PortfolioSnapshot for ``wallet_address``.

        Raises:
            ValueError: If the wallet address is malformed
            AuthenticationError: 401/403
            NotFoundError: 404
            RateLimitError: 429
            TransportError: Any other failure to get a 2xx response
            ParseError: The body is not a portfolio document
        """
        if not is_valid_wallet_address(wallet_address):
            raise ValueError(f"Invalid wallet address format: {wallet_address!r}")

        logger.info("portfolio.fetch_started", wallet=wallet_address)

        try:
            response = await self._client.get(
                "/v1/portfolio", params={"addresses": wallet_address}
            )
        except httpx.HTTPError as e:
            logger.error("portfolio.request_failed", wallet=wallet_address, error=str(e))
            raise TransportError(
                f"Portfolio service unreachable: {e}", service=SERVICE_NAME
            ) from e

        self._raise_for_status(response)

        try:
            data = response.json()
        except ValueError as e:
            raise ParseError(
                "Portfolio response is not JSON", service=SERVICE_NAME, raw_response=response.text
            ) from e

        snapshot = self._parse_snapshot(wallet_address, data, response.text)
        logger.info(
            "portfolio.fetch_completed",
            wallet=wallet_address,
            total_balance_usd=str(snapshot.total_balance_usd),
            tokens=len(snapshot.tokens),
        )
        return snapshot

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return

        status = response.status_code
        logger.error("portfolio.bad_status", status_code=status, body=response.text[:500])

        if status in (401, 403):
            raise AuthenticationError(
                "Invalid portfolio service credentials", service=SERVICE_NAME, status_code=status
            )
        if status == 404:
            raise NotFoundError("Wallet not found", service=SERVICE_NAME, status_code=status)
        if status == 429:
            raise RateLimitError(
                "Portfolio service rate limit exceeded", service=SERVICE_NAME, status_code=status
            )
        raise TransportError(
            f"Portfolio service error: {status}", service=SERVICE_NAME, status_code=status
        )

    def _parse_snapshot(self, wallet_address: str, data: Any, raw: str) -> PortfolioSnapshot:
        if not isinstance(data, dict):
            raise ParseError("Portfolio response is not an object", service=SERVICE_NAME, raw_response=raw)

        raw_tokens = data.get("tokens") or []
        if not isinstance(raw_tokens, list):
            raise ParseError("Portfolio tokens is not a list", service=SERVICE_NAME, raw_response=raw)

        try:
            tokens: List[PortfolioToken] = [self._parse_token(t) for t in raw_tokens]
            return PortfolioSnapshot(
                wallet_address=wallet_address,
                total_balance_usd=_to_decimal(data.get("total_balance_usd")),
                tokens=tokens,
                chains=list(data.get("chains") or []),
            )
        except (ValidationError, TypeError, AttributeError) as e:
            raise ParseError(
                f"Malformed portfolio response: {e}", service=SERVICE_NAME, raw_response=raw
            ) from e

    def _parse_token(self, token: Dict[str, Any]) -> PortfolioToken:
        return PortfolioToken(
            token_symbol=token.get("token_symbol") or token.get("symbol") or "",
            token_name=token.get("token_name") or token.get("name") or "",
            balance=token.get("balance", "0"),
            balance_usd=_to_decimal(token.get("balance_usd")),
            price_usd=_to_decimal(token.get("price_usd")),
            chain=token.get("chain") or "",
        )

    async def close(self) -> None:
        await self._client.aclose()
