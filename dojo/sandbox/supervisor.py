"""Lifecycle supervision for one sandboxed child.

State machine::

    STARTING -> RUNNING -> COMPLETED | TIMED_OUT | OUTPUT_LIMITED
    STARTING -> SPAWN_FAILED

Every terminal move goes through ``_transition``, which succeeds at most
once. The timeout timer, the output-overflow callback and the exit path all
race for it; whichever gets there first decides the classification and the
others become no-ops. A TIMED_OUT child is still reaped normally, but its
exit status can no longer change the state.

Exit is observed through ``Process.wait()``, which does not depend on the
output pipes closing. A descendant that left the session and still holds
them open gets ``DRAIN_GRACE_SEC`` more before our read ends are closed.
"""

import asyncio
import logging
import time

from dojo.sandbox.collector import OutputCollector
from dojo.sandbox.launcher import ExecutionProcess, SpawnFailedError, feed_stdin, launch
from dojo.sandbox.models import (
    CapturedOutput,
    ExecutionRequest,
    SupervisorState,
    TerminationFacts,
)

_logger = logging.getLogger("dojo.sandbox.supervisor")

# How long to keep draining pipes after the child exits before giving up on them.
DRAIN_GRACE_SEC = 0.1


class Supervisor:
    def __init__(self, request: ExecutionRequest) -> None:
        self.request = request
        self.limits = request.limits
        self.state = SupervisorState.STARTING
        self._handle: ExecutionProcess | None = None

    def _transition(self, target: SupervisorState) -> bool:
        """Move to ``target`` unless a terminal state was already reached.

        No await happens between the check and the assignment, so on the
        event loop this is a single atomic step.
        """
        if self.state.is_terminal:
            return False
        if target is SupervisorState.RUNNING and self.state is not SupervisorState.STARTING:
            return False
        self.state = target
        return True

    def _on_timeout(self) -> None:
        if self._transition(SupervisorState.TIMED_OUT):
            _logger.info("Sandbox timeout after %dms pid=%s", self.limits.timeout_ms, self._pid())
            self._kill()

    def _on_output_limit(self) -> None:
        if self._transition(SupervisorState.OUTPUT_LIMITED):
            _logger.info(
                "Sandbox output limit %d bytes exceeded pid=%s",
                self.limits.max_output_bytes,
                self._pid(),
            )
            self._kill()

    def _pid(self) -> int | None:
        return self._handle.pid if self._handle else None

    def _kill(self) -> None:
        if self._handle is not None:
            self._handle.kill()

    async def run(self) -> TerminationFacts:
        started = time.monotonic()
        try:
            self._handle = await launch(self.limits)
        except SpawnFailedError as e:
            self._transition(SupervisorState.SPAWN_FAILED)
            return TerminationFacts(
                state=self.state,
                elapsed_ms=_elapsed_ms(started),
                spawn_error=str(e),
            )

        handle = self._handle
        self._transition(SupervisorState.RUNNING)
        loop = asyncio.get_running_loop()
        collector = OutputCollector(
            handle.stdout,
            handle.stderr,
            self.limits.max_output_bytes,
            on_overflow=self._on_output_limit if self.limits.kill_on_output_limit else None,
        )
        collector.start()
        timer = loop.call_later(self.limits.timeout_sec, self._on_timeout)
        feeder = asyncio.create_task(feed_stdin(handle, self.request.code))

        output: CapturedOutput | None = None
        try:
            returncode = await handle.process.wait()
            timer.cancel()
            elapsed_ms = _elapsed_ms(started)
            self._transition(SupervisorState.COMPLETED)

            # Anything left in the child's process group goes down with it.
            handle.kill()
            try:
                await asyncio.wait_for(collector.wait_closed(), DRAIN_GRACE_SEC)
            except asyncio.TimeoutError:
                _logger.debug("Sandbox pipes still open after exit pid=%s", handle.pid)
            await collector.cancel()
            output = collector.freeze()
        finally:
            timer.cancel()
            if output is None:
                # Cancelled mid-flight: make sure the child does not outlive us.
                handle.kill()
                await collector.cancel()
                collector.freeze()
            if not feeder.done():
                feeder.cancel()
            (feed_error,) = await asyncio.gather(feeder, return_exceptions=True)
            handle.cleanup()

        if isinstance(feed_error, Exception):
            # The child never saw the submitted source, so its exit status means nothing.
            raise feed_error

        return TerminationFacts(
            state=self.state,
            elapsed_ms=elapsed_ms,
            output=output,
            exit_code=returncode if returncode >= 0 else None,
            signal=-returncode if returncode < 0 else None,
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
