"""Risk guardrails for gridpilot.

- Daily-loss circuit breaker
- Per-path review confidence gates
- Allocation cap and order sanity checks
"""

from gridpilot.risk.guard import (
    ExecutionPath,
    RiskCheck,
    RiskGuard,
    RiskRule,
    calculate_allocation_percent,
)

__all__ = [
    'ExecutionPath',
    'RiskCheck',
    'RiskGuard',
    'RiskRule',
    'calculate_allocation_percent',
]
