"""Advisory (LLM) gateways: strategy generation and independent review."""

from gridpilot.advisory.base import StrategyGenerationGateway, StrategyReviewGateway
from gridpilot.advisory.client import AdvisoryClient, extract_json
from gridpilot.advisory.generator import AdvisoryStrategyGenerator
from gridpilot.advisory.reviewer import AdvisoryStrategyReviewer

__all__ = [
    "AdvisoryClient",
    "AdvisoryStrategyGenerator",
    "AdvisoryStrategyReviewer",
    "StrategyGenerationGateway",
    "StrategyReviewGateway",
    "extract_json",
]
