from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from formation.api.certificates import router as certificates_router
from formation.api.health import router as health_router
from formation.api.metrics_endpoint import router as metrics_router
from formation.api.modules import router as modules_router
from formation.api.progress import router as progress_router
from formation.api.quiz import router as quiz_router
from formation.core.config import SETTINGS
from formation.core.logging import setup_logging
from formation.db.engine import lifespan_db
from formation.db.redis import lifespan_redis
from formation.middleware.metrics import MetricsMiddleware
from formation.middleware.request_context import RequestContextMiddleware
from formation.repos.unit_of_work import InMemoryStore, store
from formation.seed import seed_demo_catalog

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # nested so teardown runs in reverse order
    async with lifespan_db():
        async with lifespan_redis():
            if SETTINGS.is_dev and isinstance(store, InMemoryStore):
                seed_demo_catalog(store.hierarchy)
            yield


app = FastAPI(
    title="formation-progress",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed bodies and path ids are client errors: 400, not 422."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last-added runs first: RequestContext → Metrics → CORS → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(progress_router)
app.include_router(quiz_router)
app.include_router(modules_router)
app.include_router(certificates_router)

logger.info(
    "formation-progress started  env=%s log_level=%s port=%d store=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    type(store).__name__,
)
