from fastapi import APIRouter

from dojo.config import get_settings
from dojo.dependencies import Sandbox
from dojo.errors import TooManyRequestsError
from dojo.models.playground import RunRequest, RunResponse
from dojo.sandbox import ExecutionStatus

router = APIRouter(prefix="/api/playground", tags=["playground"])


@router.post("/run", response_model=RunResponse)
async def run_code(body: RunRequest, dispatcher: Sandbox) -> RunResponse:
    sandbox_settings = get_settings().sandbox
    limits = dispatcher.limits.with_overrides(
        timeout_ms=sandbox_settings.clamp_timeout(body.timeout_ms),
        memory_mb=sandbox_settings.clamp_memory(body.memory_mb),
    )

    outcome = await dispatcher.run(body.code, limits=limits)
    if outcome.status is ExecutionStatus.REJECTED:
        raise TooManyRequestsError(detail=outcome.error)

    return RunResponse(**outcome.to_response())
