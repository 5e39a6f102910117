from dojo.sandbox.classifier import classify
from dojo.sandbox.dispatcher import Dispatcher
from dojo.sandbox.limits import ExecutionLimits, PoolSettings
from dojo.sandbox.models import (
    CapturedOutput,
    ExecutionOutcome,
    ExecutionRequest,
    ExecutionStatus,
    SupervisorState,
    TerminationFacts,
)

__all__ = [
    "CapturedOutput",
    "Dispatcher",
    "ExecutionLimits",
    "ExecutionOutcome",
    "ExecutionRequest",
    "ExecutionStatus",
    "PoolSettings",
    "SupervisorState",
    "TerminationFacts",
    "classify",
]
