"""Lifespan management for the FastAPI application.

Loads the kata catalog and starts the sandbox dispatcher on startup, and
clears shared state on shutdown.
"""

import logging
from dataclasses import dataclass, field

from dojo import state
from dojo.config import get_settings
from dojo.katas import load_all_katas
from dojo.models.katas import Kata
from dojo.sandbox import Dispatcher

logger = logging.getLogger(__name__)


@dataclass
class LifespanResources:
    """Container for resources initialized during lifespan."""

    katas: list[Kata] = field(default_factory=list)
    dispatcher: Dispatcher | None = None


def init_katas() -> list[Kata]:
    """Load the kata catalog from the configured directory."""
    settings = get_settings()
    logger.info("Loading katas from: %s", settings.katas.dir)
    return load_all_katas(settings.katas.dir)


def init_dispatcher() -> Dispatcher | None:
    """Build the sandbox dispatcher, or None when the sandbox is disabled."""
    settings = get_settings()
    if not settings.sandbox.enabled:
        logger.info("Sandbox disabled")
        return None

    if settings.debug.sandbox:
        logging.getLogger("dojo.sandbox").setLevel(logging.DEBUG)

    limits = settings.sandbox.to_limits()
    pool = settings.sandbox.to_pool()
    logger.info(
        "Sandbox ready: interpreter=%s timeout=%dms memory=%dMB max_concurrent=%d backpressure=%s",
        limits.interpreter, limits.timeout_ms, limits.memory_mb,
        pool.max_concurrent, pool.backpressure,
    )
    return Dispatcher(limits=limits, pool=pool)


async def setup_resources() -> LifespanResources:
    """Set up all shared resources."""
    resources = LifespanResources()
    resources.katas = init_katas()
    resources.dispatcher = init_dispatcher()

    state.katas = resources.katas
    state.katas_by_id = {k.id: k for k in resources.katas}
    state.dispatcher = resources.dispatcher

    return resources


async def cleanup_resources(resources: LifespanResources) -> None:
    """Clean up all resources on shutdown."""
    if resources.dispatcher is not None:
        stats = resources.dispatcher.stats()
        if stats["active"] or stats["queued"]:
            logger.warning(
                "Shutting down with %d active and %d queued executions",
                stats["active"], stats["queued"],
            )

    state.katas = []
    state.katas_by_id = {}
    state.dispatcher = None
