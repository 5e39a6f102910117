from dojo.sandbox.limits import ExecutionLimits
from dojo.sandbox.models import (
    ExecutionOutcome,
    ExecutionStatus,
    SupervisorState,
    TerminationFacts,
)


def classify(facts: TerminationFacts, limits: ExecutionLimits) -> ExecutionOutcome:
    """Map termination facts to the single outcome reported to the caller.

    Rules are checked in order; a supervisor timeout outranks any exit code
    the child reported while being killed.
    """
    if facts.state is SupervisorState.TIMED_OUT:
        return _outcome(
            ExecutionStatus.TIMEOUT,
            facts,
            error=f"Execution timed out ({limits.timeout_ms}ms limit)",
        )

    if facts.state is SupervisorState.SPAWN_FAILED:
        return ExecutionOutcome(
            status=ExecutionStatus.SPAWN_ERROR,
            elapsed_ms=facts.elapsed_ms,
            error=f"Process error: {facts.spawn_error or 'unknown spawn failure'}",
        )

    if facts.state is SupervisorState.OUTPUT_LIMITED:
        return _outcome(
            ExecutionStatus.OUTPUT_LIMIT,
            facts,
            error=f"Output exceeded limit ({limits.max_output_bytes} bytes)",
        )

    if facts.state is not SupervisorState.COMPLETED:
        raise ValueError(f"Cannot classify non-terminal state {facts.state.value!r}")

    if facts.exit_code == 0:
        return _outcome(ExecutionStatus.SUCCESS, facts)
    return _outcome(ExecutionStatus.FAILURE, facts)


def rejected(reason: str = "Execution capacity exhausted") -> ExecutionOutcome:
    return ExecutionOutcome(status=ExecutionStatus.REJECTED, elapsed_ms=0, error=reason)


def internal_failure(elapsed_ms: int) -> ExecutionOutcome:
    return ExecutionOutcome(
        status=ExecutionStatus.FAILURE,
        elapsed_ms=elapsed_ms,
        error="Internal sandbox error",
    )


def _outcome(
    status: ExecutionStatus,
    facts: TerminationFacts,
    error: str | None = None,
) -> ExecutionOutcome:
    return ExecutionOutcome(
        status=status,
        elapsed_ms=facts.elapsed_ms,
        stdout=facts.output.stdout_text(),
        stderr=facts.output.stderr_text(),
        exit_code=facts.exit_code,
        signal=facts.signal,
        truncated=facts.output.truncated,
        error=error,
    )
