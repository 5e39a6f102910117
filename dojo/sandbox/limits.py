"""Resource ceilings applied to one sandboxed execution."""

import sys
from dataclasses import dataclass, replace
from typing import Literal

Backpressure = Literal["wait", "reject"]


@dataclass(frozen=True)
class ExecutionLimits:
    """Fixed ceilings for a single child process.

    A dispatcher holds a default instance; callers may pass their own to
    ``Dispatcher.run`` to override it for one execution.
    """

    timeout_ms: int = 10_000
    memory_mb: int = 64
    max_output_bytes: int = 1024 * 1024
    max_file_bytes: int = 1024 * 1024
    kill_on_output_limit: bool = True
    interpreter: str = sys.executable

    def __post_init__(self) -> None:
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        if self.memory_mb <= 0:
            raise ValueError("memory_mb must be positive")
        if self.max_output_bytes <= 0:
            raise ValueError("max_output_bytes must be positive")

    @property
    def timeout_sec(self) -> float:
        return self.timeout_ms / 1000

    @property
    def memory_bytes(self) -> int:
        return self.memory_mb * 1024 * 1024

    def with_overrides(
        self,
        timeout_ms: int | None = None,
        memory_mb: int | None = None,
    ) -> "ExecutionLimits":
        """Return a copy with the given per-call ceilings applied."""
        changes: dict[str, int] = {}
        if timeout_ms is not None:
            changes["timeout_ms"] = timeout_ms
        if memory_mb is not None:
            changes["memory_mb"] = memory_mb
        return replace(self, **changes) if changes else self


@dataclass(frozen=True)
class PoolSettings:
    """Ceiling on concurrently running children and the admission policy."""

    max_concurrent: int = 4
    max_queued: int = 32
    backpressure: Backpressure = "wait"

    def __post_init__(self) -> None:
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if self.max_queued < 0:
            raise ValueError("max_queued must not be negative")
        if self.backpressure not in ("wait", "reject"):
            raise ValueError(f"Unknown backpressure policy: {self.backpressure!r}")
