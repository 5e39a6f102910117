import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from dojo.sandbox.limits import ExecutionLimits


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    OUTPUT_LIMIT = "output_limit"
    SPAWN_ERROR = "spawn_error"
    REJECTED = "rejected"


class SupervisorState(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    OUTPUT_LIMITED = "output_limited"
    SPAWN_FAILED = "spawn_failed"

    @property
    def is_terminal(self) -> bool:
        return self not in (SupervisorState.STARTING, SupervisorState.RUNNING)


@dataclass(frozen=True)
class ExecutionRequest:
    code: str
    limits: ExecutionLimits
    submitted_at: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class CapturedOutput:
    """Bytes drained from the child's stdout and stderr, frozen at termination."""

    stdout: bytes = b""
    stderr: bytes = b""
    stdout_truncated: bool = False
    stderr_truncated: bool = False

    @property
    def truncated(self) -> bool:
        return self.stdout_truncated or self.stderr_truncated

    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class TerminationFacts:
    """Everything the supervisor observed about how a child ended."""

    state: SupervisorState
    elapsed_ms: int
    output: CapturedOutput = field(default_factory=CapturedOutput)
    exit_code: int | None = None
    signal: int | None = None
    spawn_error: str | None = None


@dataclass(frozen=True)
class ExecutionOutcome:
    status: ExecutionStatus
    elapsed_ms: int
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    signal: int | None = None
    truncated: bool = False
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status is ExecutionStatus.SUCCESS

    def to_response(self) -> dict[str, Any]:
        """Render the record returned to API callers."""
        return {
            "stdout": self.stdout,
            "stderr": self.stderr,
            "success": self.success,
            "execution_time_ms": self.elapsed_ms,
            "error": self.error,
            "truncated": self.truncated,
        }
