from typing import Any

from fastapi import APIRouter

from dojo.dependencies import Katas, OptionalSandbox

router = APIRouter(prefix="/api")


@router.get("/health")
async def health(katas: Katas, dispatcher: OptionalSandbox) -> dict[str, Any]:
    return {
        "status": "ok",
        "katas": len(katas),
        "sandbox": dispatcher.stats() if dispatcher else None,
    }
