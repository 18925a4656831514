from contextlib import asynccontextmanager
import uuid

from alembic import command
from alembic.config import Config
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from reaction_engine.config import settings
from reaction_engine.errors import (
    InvalidKindError,
    InvalidTargetError,
    StoreUnavailableError,
    UnauthenticatedError,
)
from reaction_engine.logging_config import configure_logging
from reaction_engine.routers import reactions

configure_logging()
logger = structlog.get_logger(__name__)


def run_migrations():
    alembic_cfg = Config("alembic.ini")
    command.upgrade(alembic_cfg, "head")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.RUN_MIGRATIONS:
        run_migrations()
    logger.info("app_startup")
    yield
    logger.info("app_shutdown")


app = FastAPI(lifespan=lifespan)
app.include_router(reactions.router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def bind_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(UnauthenticatedError)
async def unauthenticated_handler(request: Request, exc: UnauthenticatedError):
    return JSONResponse(status_code=401, content={"detail": exc.detail})


@app.exception_handler(InvalidKindError)
async def invalid_kind_handler(request: Request, exc: InvalidKindError):
    return JSONResponse(status_code=400, content={"detail": exc.detail})


@app.exception_handler(InvalidTargetError)
async def invalid_target_handler(request: Request, exc: InvalidTargetError):
    return JSONResponse(status_code=400, content={"detail": exc.detail})


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    logger.warning("store_unavailable_response", path=request.url.path)
    return JSONResponse(
        status_code=503,
        content={"detail": exc.detail},
        headers={"Retry-After": "1"},
    )


@app.get("/healthz")
def healthz():
    return {"status": "ok"}
