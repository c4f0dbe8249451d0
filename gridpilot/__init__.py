"""gridpilot - autonomous AI grid-trading strategy engine."""

__version__ = "0.1.0"
