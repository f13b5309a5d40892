import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from jfcase.config import settings
from jfcase.database import init_db
from jfcase.errors import AppError, ErrorCode, ErrorTable, build_error_table, is_client_error
from jfcase.routers import (
    activities,
    assessment_teams,
    dismissals,
    employees,
    maintenance,
    objects,
    promotion_cpns,
    promotions,
    requirements,
    templates,
)
from jfcase.utils.deadline import Deadline
from jfcase.utils.filesystem import ensure_data_dirs

VERSION = "0.1.0"

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("jfcase")


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_data_dirs(settings.data_path)
    init_db(settings.db_path)
    app.state.error_table = build_error_table()
    logger.info("Data directory %s ready, renderer backend %s", settings.data_path, settings.renderer_backend)
    yield


app = FastAPI(
    title="Functional Position Case Service",
    description="Case workflows and generated documents for functional-position civil servants",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5173",
        "http://localhost:5173",
    ],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_table(request: Request) -> ErrorTable:
    table = getattr(request.app.state, "error_table", None)
    if table is None:
        table = request.app.state.error_table = build_error_table()
    return table


def _error_response(table: ErrorTable, code: int, detail: str | None = None, data: dict | None = None) -> JSONResponse:
    kind = table.lookup(code)
    body = {"code": kind.code, "message": kind.message}
    if kind.is_client_error and detail:
        body["message"] = f"{kind.message}: {detail}"
    if data:
        body["data"] = jsonable_encoder(data)
    return JSONResponse(status_code=kind.http_status, content=body)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if not is_client_error(exc.code):
        logger.error("%s %s failed with %d: %s", request.method, request.url.path, int(exc.code), exc.detail)
    return _error_response(_error_table(request), int(exc.code), exc.detail, exc.data)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [{"loc": e.get("loc"), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]
    return _error_response(_error_table(request), ErrorCode.REQUEST_JSON_DECODE, data={"errors": errors})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(_error_table(request), ErrorCode.INTERNAL)


@app.middleware("http")
async def request_deadline(request: Request, call_next):
    # Endpoints read this same deadline through get_deadline, so work still
    # running in a worker thread after the 504 fails its commit.
    deadline = Deadline(settings.request_timeout_seconds)
    request.state.deadline = deadline
    try:
        return await asyncio.wait_for(call_next(request), timeout=deadline.remaining())
    except asyncio.TimeoutError:
        logger.error("%s %s exceeded %ss", request.method, request.url.path, settings.request_timeout_seconds)
        return _error_response(_error_table(request), ErrorCode.REQUEST_TIMEOUT)


app.include_router(employees.router, prefix=settings.api_prefix)
app.include_router(templates.router, prefix=settings.api_prefix)
app.include_router(objects.router, prefix=settings.api_prefix)
app.include_router(activities.router, prefix=settings.api_prefix)
app.include_router(requirements.router, prefix=settings.api_prefix)
app.include_router(dismissals.router, prefix=settings.api_prefix)
app.include_router(promotions.router, prefix=settings.api_prefix)
app.include_router(promotion_cpns.router, prefix=settings.api_prefix)
app.include_router(assessment_teams.router, prefix=settings.api_prefix)
app.include_router(maintenance.router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "version": VERSION}
