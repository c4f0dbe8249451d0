"""Unit tests for the advisory gateways (generation and review)."""
import json
from decimal import Decimal

import httpx
import pytest

from gridpilot.advisory.client import AdvisoryClient, extract_json
from gridpilot.advisory.generator import AdvisoryStrategyGenerator, build_generation_prompt
from gridpilot.advisory.reviewer import AdvisoryStrategyReviewer, build_review_prompt
from gridpilot.core.config import AdvisoryConfig
from gridpilot.core.exceptions import (
    AuthenticationError,
    ParseError,
    RateLimitError,
    TransportError,
)
from gridpilot.core.models import MarketCondition, OrderSide, RiskLevel

STRATEGY_JSON = {
    "strategy_type": "Grid Trading - Bear",
    "market_analysis": "Downtrend with support near 2300.",
    "recommended_token": "ETH",
    "grid_orders": [
        {"type": "buy", "price": 2450, "amount_usd": 20, "trigger_condition": "When price reaches 2450"},
        {"type": "buy", "price": 2400, "amount_usd": 20, "trigger_condition": "When price reaches 2400"},
        {"type": "buy", "price": 2350, "amount_usd": 20, "trigger_condition": "When price reaches 2350"},
    ],
    "risk_level": "Medium",
    "expected_return": "3-5%",
    "rationale": "Accumulate on dips.",
    "warnings": ["Further downside"],
}

REVIEW_JSON = {
    "approved": True,
    "confidence_score": 78,
    "risk_assessment": "Moderate.",
    "identified_risks": ["Trend continuation"],
    "recommendations": ["Tighten spacing"],
    "approval_rationale": "Allocation is small.",
}


@pytest.fixture
def advisory_config():
    return AdvisoryConfig(
        api_key="sk-test",
        base_url="https://advisory.test",
        model="test-model",
        _env_file=None,
    )


def messages_reply(text: str, status: int = 200) -> httpx.Response:
    return httpx.Response(status, json={"content": [{"type": "text", "text": text}]})


class Recorder:
    """MockTransport handler that records requests and returns canned responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


# =============================================================================
# JSON Extraction
# =============================================================================

class TestExtractJson:
    """Test extract_json."""

    def test_plain_object(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_object_wrapped_in_prose_and_fences(self):
        text = 'Here is the strategy:\n```json\n{"a": {"b": 2}}\n```\nGood luck.'
        assert extract_json(text) == {"a": {"b": 2}}

    def test_no_object(self):
        with pytest.raises(ParseError) as exc_info:
            extract_json("I cannot help with that.")
        assert exc_info.value.raw_response == "I cannot help with that."

    def test_invalid_json(self):
        with pytest.raises(ParseError):
            extract_json("{not: json}")


# =============================================================================
# Transport
# =============================================================================

class TestAdvisoryClient:
    """Test status mapping and request shape."""

    @pytest.mark.asyncio
    async def test_request_shape(self, advisory_config):
        handler = Recorder(messages_reply("hello"))
        client = AdvisoryClient("generator", advisory_config, transport=httpx.MockTransport(handler))

        text = await client.complete("prompt text", max_tokens=2048, temperature=0.7)

        assert text == "hello"
        request = handler.requests[0]
        assert request.url.path == "/v1/messages"
        assert request.headers["x-api-key"] == "sk-test"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = json.loads(request.content)
        assert body["model"] == "test-model"
        assert body["max_tokens"] == 2048
        assert body["temperature"] == 0.7
        assert body["messages"] == [{"role": "user", "content": "prompt text"}]
        await client.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,error", [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (429, RateLimitError),
        (500, TransportError),
    ])
    async def test_status_mapping(self, advisory_config, status, error):
        handler = Recorder(httpx.Response(status, text="nope"))
        client = AdvisoryClient("reviewer", advisory_config, transport=httpx.MockTransport(handler))

        with pytest.raises(error) as exc_info:
            await client.complete("p", max_tokens=10, temperature=0.3)

        assert exc_info.value.status_code == status
        assert exc_info.value.service == "reviewer"
        await client.close()

    @pytest.mark.asyncio
    async def test_network_failure_is_transport_error(self, advisory_config):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = AdvisoryClient("generator", advisory_config, transport=httpx.MockTransport(handler))
        with pytest.raises(TransportError):
            await client.complete("p", max_tokens=10, temperature=0.7)
        await client.close()

    @pytest.mark.asyncio
    async def test_missing_text_block(self, advisory_config):
        handler = Recorder(httpx.Response(200, json={"content": []}))
        client = AdvisoryClient("generator", advisory_config, transport=httpx.MockTransport(handler))
        with pytest.raises(ParseError):
            await client.complete("p", max_tokens=10, temperature=0.7)
        await client.close()


# =============================================================================
# Generation Gateway
# =============================================================================

class TestGenerator:
    """Test AdvisoryStrategyGenerator."""

    def test_prompt_contents(self, snapshot):
        prompt = build_generation_prompt(snapshot, MarketCondition.BEAR, "SOL")

        assert snapshot.wallet_address in prompt
        assert "Total Balance: $1000.00" in prompt
        assert "Market Condition: bear" in prompt
        assert "- ETH (Ethereum): 0.4 tokens @ $2500 = $1000.00" in prompt
        assert "You MUST use SOL" in prompt

    def test_prompt_without_preferred_token(self, snapshot):
        prompt = build_generation_prompt(snapshot, MarketCondition.NEUTRAL)
        assert "Choose ONE token" in prompt

    @pytest.mark.asyncio
    async def test_generate_parses_draft(self, advisory_config, snapshot):
        reply = "Sure!\n```json\n" + json.dumps(STRATEGY_JSON) + "\n```"
        handler = Recorder(messages_reply(reply))
        generator = AdvisoryStrategyGenerator(advisory_config, transport=httpx.MockTransport(handler))

        draft = await generator.generate(snapshot, MarketCondition.BEAR)

        assert draft.recommended_token == "ETH"
        assert len(draft.grid_orders) == 3
        assert draft.grid_orders[0].type == OrderSide.BUY
        assert draft.grid_orders[0].price == Decimal("2450")
        assert draft.risk_level == RiskLevel.MEDIUM
        assert draft.model == "test-model"
        assert draft.wallet_address == snapshot.wallet_address
        body = json.loads(handler.requests[0].content)
        assert body["temperature"] == advisory_config.generation_temperature
        assert body["max_tokens"] == advisory_config.generation_max_tokens
        await generator.close()

    @pytest.mark.asyncio
    async def test_shape_mismatch_is_parse_error(self, advisory_config, snapshot):
        """No partial draft is accepted."""
        broken = dict(STRATEGY_JSON, grid_orders=[{"type": "hold", "price": 1}])
        handler = Recorder(messages_reply(json.dumps(broken)))
        generator = AdvisoryStrategyGenerator(advisory_config, transport=httpx.MockTransport(handler))

        with pytest.raises(ParseError) as exc_info:
            await generator.generate(snapshot)

        assert "hold" in exc_info.value.raw_response
        await generator.close()

    @pytest.mark.asyncio
    async def test_no_retry_on_failure(self, advisory_config, snapshot):
        handler = Recorder(httpx.Response(429, text="slow down"), messages_reply(json.dumps(STRATEGY_JSON)))
        generator = AdvisoryStrategyGenerator(advisory_config, transport=httpx.MockTransport(handler))

        with pytest.raises(RateLimitError):
            await generator.generate(snapshot)

        assert len(handler.requests) == 1
        await generator.close()


# =============================================================================
# Review Gateway
# =============================================================================

class TestReviewer:
    """Test AdvisoryStrategyReviewer."""

    def test_prompt_contents(self, draft, wallet_address):
        prompt = build_review_prompt(draft, wallet_address, Decimal("1000"))

        assert "GRID ORDERS (Total: $100.00 / 10.0% of portfolio)" in prompt
        assert "1. BUY at $2500 for $20 - Level 1" in prompt
        assert "2. SELL at $2450 for $20 - Level 2" in prompt
        assert "Auto-reject if allocation > 30% of portfolio" in prompt
        assert wallet_address in prompt

    def test_prompt_with_empty_balance(self, draft, wallet_address):
        prompt = build_review_prompt(draft, wallet_address, Decimal("0"))
        assert "0.0% of portfolio" in prompt

    @pytest.mark.asyncio
    async def test_review_parses_result(self, advisory_config, draft, wallet_address):
        handler = Recorder(messages_reply(json.dumps(REVIEW_JSON)))
        reviewer = AdvisoryStrategyReviewer(advisory_config, transport=httpx.MockTransport(handler))

        review = await reviewer.review(draft, wallet_address, Decimal("1000"))

        assert review.approved is True
        assert review.confidence_score == 78
        assert review.reviewer_model == "test-model"
        assert review.total_allocation_usd == Decimal("100")
        assert review.allocation_percentage == Decimal("10")
        body = json.loads(handler.requests[0].content)
        assert body["temperature"] == advisory_config.review_temperature
        assert body["max_tokens"] == advisory_config.review_max_tokens
        await reviewer.close()

    @pytest.mark.asyncio
    async def test_review_missing_fields_is_parse_error(self, advisory_config, draft, wallet_address):
        handler = Recorder(messages_reply('{"approved": true}'))
        reviewer = AdvisoryStrategyReviewer(advisory_config, transport=httpx.MockTransport(handler))

        with pytest.raises(ParseError):
            await reviewer.review(draft, wallet_address, Decimal("1000"))
        await reviewer.close()

    def test_reviewer_has_its_own_client(self, advisory_config):
        """Generation and review never share a transport session."""
        generator = AdvisoryStrategyGenerator(advisory_config)
        reviewer = AdvisoryStrategyReviewer(advisory_config)
        assert generator.client is not reviewer.client
        assert generator.client._client is not reviewer.client._client
