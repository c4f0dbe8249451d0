"""Unit tests for the retry decorator."""
import pytest

from gridpilot.utils.retry import with_retry


class Blip(Exception):
    pass


class TestWithRetry:
    """Backoff applies only to the listed errors."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        calls = []

        @with_retry((Blip,), attempts=3, base_delay=0)
        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise Blip()
            return "ok"

        assert await flaky() == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_raises_last_error_when_exhausted(self):
        calls = []

        @with_retry((Blip,), attempts=2, base_delay=0)
        async def down():
            calls.append(1)
            raise Blip(f"attempt {len(calls)}")

        with pytest.raises(Blip, match="attempt 2"):
            await down()
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_other_errors_pass_through(self):
        calls = []

        @with_retry((Blip,), attempts=4, base_delay=0)
        async def bad():
            calls.append(1)
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await bad()
        assert len(calls) == 1

    def test_keeps_function_name(self):
        @with_retry((Blip,))
        async def load_markets():
            return {}

        assert load_markets.__name__ == "load_markets"
