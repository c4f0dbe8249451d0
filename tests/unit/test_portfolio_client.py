"""Unit tests for the portfolio data service client."""
from decimal import Decimal

import httpx
import pytest

from gridpilot.core.config import PortfolioServiceConfig
from gridpilot.core.exceptions import (
    AuthenticationError,
    NotFoundError,
    ParseError,
    RateLimitError,
    TransportError,
)
from gridpilot.portfolio.client import PortfolioClient, is_valid_wallet_address

WALLET = "0x" + "c3" * 20

PORTFOLIO_JSON = {
    "total_balance_usd": 1234.56,
    "tokens": [
        {
            "token_symbol": "ETH",
            "token_name": "Ethereum",
            "balance": "0.5",
            "balance_usd": 1250.0,
            "price_usd": 2500.0,
            "chain": "arbitrum",
        },
        {
            "token_symbol": "USDC",
            "token_name": "USD Coin",
            "balance": 100,
            "balance_usd": 100,
            "price_usd": 1,
            "chain": "arbitrum",
        },
    ],
    "chains": ["arbitrum"],
}


@pytest.fixture
def service_config():
    return PortfolioServiceConfig(api_key="octav-key", base_url="https://portfolio.test", _env_file=None)


def client_for(config, handler) -> PortfolioClient:
    return PortfolioClient(config, transport=httpx.MockTransport(handler))


class TestWalletValidation:
    """EVM address validation."""

    @pytest.mark.parametrize("address", [WALLET, "0x" + "A" * 40, "0x" + "0123456789abcdef" * 2 + "01234567"])
    def test_valid(self, address):
        assert is_valid_wallet_address(address)

    @pytest.mark.parametrize("address", ["", "0x123", "c3" * 20, "0x" + "g" * 40, WALLET + "0"])
    def test_invalid(self, address):
        assert not is_valid_wallet_address(address)


class TestPortfolioClient:
    """Test PortfolioClient.fetch."""

    @pytest.mark.asyncio
    async def test_fetch_snapshot(self, service_config):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=PORTFOLIO_JSON)

        client = client_for(service_config, handler)
        snapshot = await client.fetch(WALLET)

        assert snapshot.wallet_address == WALLET
        assert snapshot.total_balance_usd == Decimal("1234.56")
        assert [t.token_symbol for t in snapshot.tokens] == ["ETH", "USDC"]
        assert snapshot.tokens[1].balance == "100"
        assert snapshot.chains == ["arbitrum"]

        request = requests[0]
        assert request.url.path == "/v1/portfolio"
        assert request.url.params["addresses"] == WALLET
        assert request.headers["authorization"] == "Bearer octav-key"
        await client.close()

    @pytest.mark.asyncio
    async def test_missing_fields_default(self, service_config):
        client = client_for(service_config, lambda request: httpx.Response(200, json={}))
        snapshot = await client.fetch(WALLET)

        assert snapshot.total_balance_usd == Decimal("0")
        assert snapshot.tokens == []
        await client.close()

    @pytest.mark.asyncio
    async def test_invalid_wallet_is_refused_before_request(self, service_config):
        def handler(request):
            raise AssertionError("no request expected")

        client = client_for(service_config, handler)
        with pytest.raises(ValueError):
            await client.fetch("0xnope")
        await client.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,error", [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (404, NotFoundError),
        (429, RateLimitError),
        (502, TransportError),
    ])
    async def test_status_mapping(self, service_config, status, error):
        client = client_for(service_config, lambda request: httpx.Response(status, text="err"))
        with pytest.raises(error):
            await client.fetch(WALLET)
        await client.close()

    @pytest.mark.asyncio
    async def test_network_failure(self, service_config):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = client_for(service_config, handler)
        with pytest.raises(TransportError):
            await client.fetch(WALLET)
        await client.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        httpx.Response(200, text="<html>oops</html>"),
        httpx.Response(200, json=[1, 2, 3]),
        httpx.Response(200, json={"tokens": "ETH"}),
        httpx.Response(200, json={"total_balance_usd": "lots"}),
        httpx.Response(200, json={"total_balance_usd": -5}),
    ])
    async def test_malformed_body_is_parse_error(self, service_config, body):
        client = client_for(service_config, lambda request: body)
        with pytest.raises(ParseError):
            await client.fetch(WALLET)
        await client.close()
