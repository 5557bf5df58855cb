import logging

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from judge.config import get_settings
from judge.controllers.execution import router as execution_router
from judge.controllers.health import router as health_router
from judge.controllers.languages import router as languages_router
from judge.controllers.ws_sessions import router as ws_sessions_router
from judge.errors import register_exception_handlers
from judge.lifespan import cleanup_resources, setup_resources
from judge.middleware import HTTPLogMiddleware

settings = get_settings()

app = FastAPI(title="Judge Execution Engine", version="1.0.0")
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.debug.request:
    logging.getLogger("judge.http").setLevel(logging.DEBUG)
    app.add_middleware(HTTPLogMiddleware)

if settings.debug.sandbox:
    logging.getLogger("judge.sandbox").setLevel(logging.DEBUG)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    resources = await setup_resources()
    try:
        yield
    finally:
        await cleanup_resources(resources)


app.router.lifespan_context = lifespan

app.include_router(health_router)
app.include_router(languages_router)
app.include_router(execution_router)
app.include_router(ws_sessions_router)

Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
