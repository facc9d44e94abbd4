import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import metrics
from .auth_middleware import WorkerAuthMiddleware
from .config import Settings
from .errors import AuthError, ProviderError
from .pipeline import JobPoller, VideoGenerationService, pipeline_router
from .providers import ProviderRegistry

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _error_response(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "details": details})


async def handle_provider_error(request: Request, exc: ProviderError):
    metrics.inc_counter(f"errors.{exc.kind}")
    metrics.record_event(exc.kind, str(exc), provider=exc.provider or "")
    if isinstance(exc, AuthError):
        logger.error(f"{request.method} {request.url.path} failed on provider configuration: {exc}")
    elif exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc} body={exc.body!r}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return _error_response(exc.http_status, exc.public_message, exc.details)


async def handle_request_validation(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    details = f"{field}: {first.get('msg')}" if field else first.get("msg")
    return _error_response(400, "Invalid request", details)


async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    return _error_response(exc.status_code, str(exc.detail))


def create_app(settings: Optional[Settings] = None, registry: Optional[ProviderRegistry] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    registry = registry or ProviderRegistry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        providers = registry.describe()
        logger.info(f"Worker starting up. Video chain: {providers['chain'] or 'EMPTY'}")
        if not providers["chain"]:
            logger.error("No video provider has credentials; every /generate call will fail")
        if not registry.compose_adapter.configured:
            logger.warning("Compose provider has no credentials; two-photo jobs will degrade or fail")
        yield
        logger.info("Worker shutting down...")

    app = FastAPI(title="Rewrite Moment generation worker", lifespan=lifespan)
    app.state.settings = settings
    app.state.registry = registry
    app.state.service = VideoGenerationService(settings, registry)
    app.state.poller = JobPoller(registry)

    app.add_middleware(
        WorkerAuthMiddleware,
        secret=settings.worker_shared_secret,
        environment=settings.environment,
    )
    app.add_exception_handler(ProviderError, handle_provider_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.include_router(pipeline_router)

    @app.get("/health")
    def health_check():
        """Report which providers are configured and the active fallback chain."""
        return {"status": "ok", "providers": registry.describe()}

    @app.get("/metrics")
    def metrics_endpoint():
        return metrics.get_snapshot()

    return app


if __name__ == "__main__":
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
