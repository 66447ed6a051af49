import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from integration_service.core import (
    AdapterError,
    NotFoundError,
    PipelineError,
    SignatureError,
    ValidationError,
    configure_logging,
    get_settings,
    limiter,
    log_context,
    safe_error,
)
from integration_service.dependencies import get_pipeline, get_request_id, new_request_id
from integration_service.routers import ROUTERS
from integration_service.serializers import error_body

settings = get_settings()
configure_logging(settings.log_level, settings.log_json, settings.service_name)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if settings.bootstrap_on_startup:
        pipeline = get_pipeline()
        await pipeline.index.bootstrap()
        await pipeline.gitea.ensure_repository()
        logger.info("Index bootstrapped and repository ensured")
    yield


app = FastAPI(
    title="CDM Integration Service",
    description="Form submissions → version-controlled CDM records → search index → party system.",
    version="1.0.0",
    lifespan=lifespan,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or new_request_id()
    request.state.request_id = request_id
    with log_context({"request_id": request_id}):
        response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# -----------------------------------------------------------------------------
# Error mapping: every error body carries the request id; remote bodies stay in logs
# -----------------------------------------------------------------------------


async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=400,
        content=error_body("Validation failed", exc.message, get_request_id(request), details=exc.details),
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")} for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_body("Validation failed", "Request validation failed", get_request_id(request), details=details),
    )


async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content=error_body("Not found", str(exc), get_request_id(request)))


async def signature_error_handler(request: Request, exc: SignatureError):
    logger.warning("Webhook rejected: %s", exc)
    return JSONResponse(status_code=401, content=error_body("Unauthorized", str(exc), get_request_id(request)))


async def pipeline_error_handler(request: Request, exc: PipelineError):
    cause = safe_error(exc.cause) if exc.cause else None
    logger.error("Pipeline failed at %s: %s (cause: %s)", exc.stage.value, exc.message, cause)
    return JSONResponse(
        status_code=500,
        content=error_body("Internal server error", exc.message, get_request_id(request)),
    )


async def adapter_error_handler(request: Request, exc: AdapterError):
    logger.error("%s call failed: %s", exc.service, safe_error(exc))
    return JSONResponse(
        status_code=500,
        content=error_body("Internal server error", f"{exc.service} request failed", get_request_id(request)),
    )


app.add_exception_handler(ValidationError, validation_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)
app.add_exception_handler(NotFoundError, not_found_handler)
app.add_exception_handler(SignatureError, signature_error_handler)
app.add_exception_handler(PipelineError, pipeline_error_handler)
app.add_exception_handler(AdapterError, adapter_error_handler)

for router in ROUTERS:
    app.include_router(router)
