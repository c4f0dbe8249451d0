"""HTTP transport for the advisory (LLM) services.

One AdvisoryClient per gateway. Calls are single-shot: no retries, no
conversation history.
"""
import json
import re
from typing import Any, Dict, Optional

import httpx
import structlog

from gridpilot.core.config import AdvisoryConfig, engine_config
from gridpilot.core.exceptions import (
    AuthenticationError,
    ParseError,
    RateLimitError,
    TransportError,
)

logger = structlog.get_logger(__name__)

# First "{" through last "}"; models often wrap JSON in prose or fences.
JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


def extract_json(text: str, service: str = "advisory") -> Dict[str, Any]:
    """Parse the JSON object embedded in a model reply.

    Raises:
        ParseError: No object found, or it is not valid JSON. The raw text is
            kept on the exception.
    """
    match = JSON_OBJECT_PATTERN.search(text or "")
    if not match:
        raise ParseError("No JSON found in response", service=service, raw_response=text)
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in response: {e}", service=service, raw_response=text) from e
    if not isinstance(data, dict):
        raise ParseError("Response JSON is not an object", service=service, raw_response=text)
    return data


class AdvisoryClient:
    """Posts a single user prompt to the messages endpoint and returns the text.

    Args:
        service: Name used in logs and errors ("generator" / "reviewer")
        config: Credentials and model (defaults to engine_config.advisory)
        transport: Optional httpx transport, used by tests
    """

    def __init__(
        self,
        service: str,
        config: Optional[AdvisoryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.service = service
        self.config = config or engine_config.advisory
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            transport=transport,
            headers={
                "x-api-key": self.config.api_key,
                "anthropic-version": self.config.api_version,
                "content-type": "application/json",
            },
        )

    @property
    def model(self) -> str:
        return self.config.model

    async def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        """Send ``prompt`` and return the first text block of the reply.

        Raises:
            AuthenticationError: 401/403
            RateLimitError: 429
            TransportError: Network failure or any other non-2xx status
            ParseError: The envelope carries no text block
        """
        payload = {
            "model": self.config.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }

        try:
            response = await self._client.post("/v1/messages", json=payload)
        except httpx.HTTPError as e:
            logger.error("advisory.request_failed", service=self.service, error=str(e))
            raise TransportError(f"{self.service} service unreachable: {e}", service=self.service) from e

        if not response.is_success:
            self._raise_for_status(response)

        try:
            body = response.json()
            blocks = body.get("content") or []
            text = next(b["text"] for b in blocks if b.get("type") == "text")
        except (ValueError, AttributeError, KeyError, TypeError, StopIteration) as e:
            raise ParseError(
                "Response has no text content", service=self.service, raw_response=response.text
            ) from e

        logger.debug("advisory.response_received", service=self.service, length=len(text))
        return text

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        logger.error(
            "advisory.bad_status",
            service=self.service,
            status_code=status,
            body=response.text[:500],
        )
        if status in (401, 403):
            raise AuthenticationError(
                f"Invalid {self.service} API credentials", service=self.service, status_code=status
            )
        if status == 429:
            raise RateLimitError(
                f"{self.service} rate limit exceeded", service=self.service, status_code=status
            )
        raise TransportError(
            f"{self.service} service error: {status}", service=self.service, status_code=status
        )

    async def close(self) -> None:
        await self._client.aclose()
