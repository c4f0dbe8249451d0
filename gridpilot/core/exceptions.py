"""Exception hierarchy for gridpilot.

Configuration errors are fatal at startup. Transport and parse errors abort
a single cycle. Guard rejections are policy outcomes, raised only where a
caller asked for an action the guard refused.
"""
from typing import Optional


class GridPilotError(Exception):
    """Base class for all gridpilot errors."""


class ConfigurationError(GridPilotError):
    """Raised when a credential or capability is missing at startup."""

    def __init__(self, issues):
        if isinstance(issues, str):
            issues = [issues]
        self.issues = list(issues)
        super().__init__("; ".join(self.issues))


class TransportError(GridPilotError):
    """Network, auth or rate-limit failure talking to an external service."""

    def __init__(self, message: str, service: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.service = service
        self.status_code = status_code


class AuthenticationError(TransportError):
    """Credentials were rejected (HTTP 401/403)."""


class RateLimitError(TransportError):
    """The service asked us to slow down (HTTP 429)."""


class NotFoundError(TransportError):
    """The requested resource does not exist (HTTP 404)."""


class ParseError(GridPilotError):
    """A response could not be read into the expected shape.

    The raw response is kept for diagnosis.
    """

    def __init__(self, message: str, service: str = "", raw_response: str = ""):
        super().__init__(message)
        self.service = service
        self.raw_response = raw_response


class GuardRejection(GridPilotError):
    """A risk guard check refused the requested action."""

    def __init__(self, check):
        super().__init__(check.reason)
        self.check = check


class InvalidOrderError(GridPilotError):
    """A grid order cannot be translated into exchange parameters."""


class NetworkMismatchError(GridPilotError):
    """The exchange capability signs for a different chain than expected."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Exchange requires chain {expected} but signer is on chain {actual}"
        )
        self.expected = expected
        self.actual = actual


class EngineBusyError(GridPilotError):
    """A cycle is already in progress."""


class NoStrategyError(GridPilotError):
    """There is no current strategy to act on."""
