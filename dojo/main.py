import logging

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dojo.config import get_settings
from dojo.controllers.health import router as health_router
from dojo.controllers.katas import router as katas_router
from dojo.controllers.playground import router as playground_router
from dojo.errors import register_exception_handlers
from dojo.lifespan import cleanup_resources, setup_resources
from dojo.middleware import HTTPLogMiddleware


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    resources = await setup_resources()
    try:
        yield
    finally:
        await cleanup_resources(resources)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Kata Dojo API", version="1.0.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    if settings.debug.request:
        logging.getLogger("dojo.http").setLevel(logging.DEBUG)
        app.add_middleware(HTTPLogMiddleware)

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(katas_router)
    app.include_router(playground_router)
    return app


app = create_app()
