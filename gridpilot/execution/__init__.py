from gridpilot.execution.plan import build_execution_plan
from gridpilot.execution.submitter import ExecutionSubmitter

__all__ = ["ExecutionSubmitter", "build_execution_plan"]
