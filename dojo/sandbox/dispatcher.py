import asyncio
import hashlib
import logging
import time
from typing import Any

from dojo.sandbox.classifier import classify, internal_failure, rejected
from dojo.sandbox.launcher import encode_source
from dojo.sandbox.limits import ExecutionLimits, PoolSettings
from dojo.sandbox.models import ExecutionOutcome, ExecutionRequest
from dojo.sandbox.supervisor import Supervisor

_logger = logging.getLogger("dojo.sandbox")


class Dispatcher:
    """Entry point for running submitted code.

    Each ``run`` owns one launch/supervise/collect/classify cycle and always
    resolves to an ``ExecutionOutcome``. At most ``pool.max_concurrent``
    children run at once; further requests wait in line or are rejected
    according to ``pool.backpressure``.
    """

    def __init__(
        self,
        limits: ExecutionLimits | None = None,
        pool: PoolSettings | None = None,
    ) -> None:
        self.limits = limits or ExecutionLimits()
        self.pool = pool or PoolSettings()
        self._slots = asyncio.Semaphore(self.pool.max_concurrent)
        self._active = 0
        self._queued = 0

    def stats(self) -> dict[str, Any]:
        return {
            "active": self._active,
            "queued": self._queued,
            "max_concurrent": self.pool.max_concurrent,
            "max_queued": self.pool.max_queued,
            "backpressure": self.pool.backpressure,
        }

    def _should_reject(self) -> bool:
        if not self._slots.locked():
            return False
        if self.pool.backpressure == "reject":
            return True
        return self._queued >= self.pool.max_queued

    async def run(self, code: str, limits: ExecutionLimits | None = None) -> ExecutionOutcome:
        request = ExecutionRequest(code=code, limits=limits or self.limits)

        if self._should_reject():
            _logger.warning(
                "Sandbox rejected request: active=%d queued=%d policy=%s",
                self._active, self._queued, self.pool.backpressure,
            )
            outcome = rejected()
            _log_execution(request, outcome)
            return outcome

        self._queued += 1
        try:
            await self._slots.acquire()
        finally:
            self._queued -= 1

        self._active += 1
        try:
            outcome = await self._execute(request)
        finally:
            self._active -= 1
            self._slots.release()

        _log_execution(request, outcome)
        return outcome

    async def _execute(self, request: ExecutionRequest) -> ExecutionOutcome:
        started = time.monotonic()
        try:
            facts = await Supervisor(request).run()
            return classify(facts, request.limits)
        except Exception:
            _logger.exception("Sandbox execution failed")
            return internal_failure(int((time.monotonic() - started) * 1000))


def _log_execution(request: ExecutionRequest, outcome: ExecutionOutcome) -> None:
    code_hash = hashlib.sha256(encode_source(request.code)).hexdigest()[:16]
    _logger.info(
        "Sandbox execution: status=%s success=%s duration=%dms truncated=%s code_hash=%s",
        outcome.status.value, outcome.success, outcome.elapsed_ms, outcome.truncated, code_hash,
    )
