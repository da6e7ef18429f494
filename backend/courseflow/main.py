"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from courseflow.config import settings
from courseflow.core.errors import EngineError
from courseflow.schemas.common import ErrorResponse
from courseflow.api import (
    health_router,
    users_router,
    quizzes_router,
    progress_router,
)

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s  %(name)-25s  %(levelname)-8s  %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("courseflow backend starting (env=%s)", settings.ENV)
    yield
    logger.info("courseflow backend shut down")


app = FastAPI(
    title="Courseflow API",
    description="Course progress tracking and quiz evaluation",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Middleware ─────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

# ── Errors ────────────────────────────────────────────────────────────────────


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    logger.info("%s %s → %s: %s", request.method, request.url.path, exc.error_code, exc.message)
    body = ErrorResponse(error_code=exc.error_code, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


# ── Routers ───────────────────────────────────────────────────────────────────

app.include_router(health_router, tags=["Health"])
app.include_router(users_router, prefix="/api/users", tags=["Users"])
app.include_router(quizzes_router, prefix="/api/quizzes", tags=["Quizzes"])
app.include_router(progress_router, prefix="/api/progress", tags=["Progress"])


@app.get("/")
async def root():
    return {
        "name": "Courseflow API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
