"""Dependency injection for FastAPI endpoints.

This module provides FastAPI dependencies for accessing shared resources
like the loaded kata catalog and the sandbox dispatcher.

Usage in controllers:
    from dojo.dependencies import Sandbox

    @router.post("/run")
    async def run(dispatcher: Sandbox):
        outcome = await dispatcher.run("print(1)")
"""

from typing import Annotated

from fastapi import Depends

from dojo import state
from dojo.errors import ServiceUnavailableError
from dojo.models.katas import Kata
from dojo.sandbox import Dispatcher


def get_dispatcher() -> Dispatcher:
    """Get the sandbox dispatcher.

    Raises:
        ServiceUnavailableError: If the sandbox is disabled or not started.
    """
    if state.dispatcher is None:
        raise ServiceUnavailableError(detail="Sandbox not available")
    return state.dispatcher


def get_optional_dispatcher() -> Dispatcher | None:
    return state.dispatcher


def get_katas() -> list[Kata]:
    return state.katas


def get_katas_by_id() -> dict[str, Kata]:
    return state.katas_by_id


Sandbox = Annotated[Dispatcher, Depends(get_dispatcher)]
OptionalSandbox = Annotated[Dispatcher | None, Depends(get_optional_dispatcher)]
Katas = Annotated[list[Kata], Depends(get_katas)]
KatasById = Annotated[dict[str, Kata], Depends(get_katas_by_id)]
