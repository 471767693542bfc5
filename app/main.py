"""
Main FastAPI application for the asset paywall API.
Serves the payment protocol, gated assets, user/provider summaries, health and metrics.
"""
import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import InfrastructureError, PaywallError
from app.core.logging import configure_logging
from app.api.routes import asset, health, payment, provider, user
from app.utils.metrics import router as metrics_router


configure_logging()
logger = logging.getLogger("app.main")

app = FastAPI(
    title="Asset Paywall API",
    description="Pay-per-resource access to digital assets, settled with on-chain token transfers",
    version="1.0.0",
)

# CORS
origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if not origins:
    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[settings.request_id_header],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get(settings.request_id_header) or uuid4().hex
    request.state.request_id = request_id
    start = time.time()
    response = await call_next(request)
    response.headers[settings.request_id_header] = request_id
    logger.info(
        "request_completed",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "status_code": response.status_code,
            "latency_ms": int((time.time() - start) * 1000),
        },
    )
    return response


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


# Error handlers: every error body is {error, message, ...}


@app.exception_handler(PaywallError)
async def paywall_error_handler(request: Request, exc: PaywallError) -> JSONResponse:
    body = exc.to_body()
    if isinstance(exc, InfrastructureError):
        logger.error(
            "infrastructure_error",
            extra={"request_id": _request_id(request), "path": request.url.path, "error": exc.message},
        )
        if settings.is_production:
            body["message"] = "Internal server error"
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(p) for p in err.get("loc", ()) if p != "body") for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"error": "bad_request", "message": "Invalid request", "fields": fields},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_error",
        extra={"request_id": _request_id(request), "path": request.url.path, "error": type(exc).__name__},
    )
    message = "Internal server error" if settings.is_production else f"{type(exc).__name__}: {exc}"
    return JSONResponse(status_code=500, content={"error": "server_error", "message": message})


# Routers
app.include_router(health.router, tags=["health"])
app.include_router(payment.router)
app.include_router(asset.router)
app.include_router(user.router)
app.include_router(provider.router)
app.include_router(metrics_router)
