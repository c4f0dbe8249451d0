"""Exchange capability consumed by the execution submitter."""
from abc import ABC, abstractmethod

from gridpilot.core.models import ExecutionOutcome, OrderParams


class ExchangeGateway(ABC):
    """Signs and submits limit orders on behalf of one wallet.

    Implementations hold the signing material; callers only ever see
    order parameters and outcomes.
    """

    @abstractmethod
    async def get_chain_id(self) -> int:
        """Chain the signer is currently configured for."""

    @abstractmethod
    async def sign_and_submit(self, order: OrderParams) -> ExecutionOutcome:
        """Submit one order.

        Rejections by the exchange are reported as an unsuccessful outcome.
        Implementations may raise for transport failures; the submitter
        records those as failed outcomes too.
        """

    async def close(self) -> None:
        """Release connections. Default is a no-op."""
