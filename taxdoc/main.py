"""
Tax Notice Ingest — HTTP entry point

Receives storage event notifications and hands each new object to the
Celery worker. No document is processed inside a request.

Routes:
  POST /api/v1/events/blob-created   queue new objects (202)
  GET  /health                       liveness + pipeline configuration summary

Every response carries X-Request-ID; errors use ErrorResponse.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from taxdoc.api.v1.events import router as events_router
from taxdoc.core.config import settings
from taxdoc.schemas.documents import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

REQUEST_ID_HEADER = "X-Request-ID"


def _request_id(request: Request) -> str:
    return request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Tax notice ingest up | env=%s source=%s destination=%s",
        settings.app_env, settings.source_container, settings.destination_container,
    )
    if not settings.content_understanding_endpoint:
        logger.warning("CONTENT_UNDERSTANDING_ENDPOINT is not set; worker submissions will fail")
    if settings.source_container == settings.destination_container:
        logger.warning("Source and destination containers are the same | container=%s", settings.source_container)

    yield

    logger.info("Tax notice ingest down")


# ---------------------------------------------------------------------------
# Middleware and error handlers
# ---------------------------------------------------------------------------

def _register_middleware(app: FastAPI) -> None:

    @app.middleware("http")
    async def tag_and_time(request: Request, call_next):
        request_id = _request_id(request)
        started = time.perf_counter()

        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "HTTP | method=%s path=%s status=%d ms=%.1f request_id=%s",
            request.method, request.url.path, response.status_code,
            (time.perf_counter() - started) * 1000, request_id,
        )
        return response


def _register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(RequestValidationError)
    async def on_validation_error(request: Request, exc: RequestValidationError):
        # loc arrives as ("body", "Records", 0, "s3", ...); drop the "body" prefix
        details = [
            ErrorDetail(
                field=".".join(str(part) for part in err["loc"][1:]) or None,
                message=err["msg"],
                code="VALIDATION_ERROR",
            )
            for err in exc.errors()
        ]
        logger.info("Rejected event payload | errors=%d path=%s", len(details), request.url.path)
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=ErrorResponse(
                error_code="VALIDATION_ERROR",
                message="Payload is not a storage event notification.",
                details=details,
                request_id=request.headers.get(REQUEST_ID_HEADER),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def on_unhandled_error(request: Request, exc: Exception):
        """Stack traces go to the log only."""
        request_id = _request_id(request)
        logger.exception("Unhandled error | path=%s request_id=%s", request.url.path, request_id)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(
                error_code="INTERNAL_ERROR",
                message="An unexpected error occurred.",
                request_id=request_id,
            ).model_dump(mode="json"),
            headers={REQUEST_ID_HEADER: request_id},
        )


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app() -> FastAPI:
    expose_docs = not settings.is_production
    app = FastAPI(
        title="Tax Notice Ingest",
        description="Queues newly stored tax notices for Content Understanding analysis.",
        version="1.0.0",
        docs_url="/api/docs" if expose_docs else None,
        redoc_url=None,
        openapi_url="/api/openapi.json" if expose_docs else None,
        lifespan=lifespan,
    )

    _register_middleware(app)
    _register_error_handlers(app)
    app.include_router(events_router, prefix="/api/v1")

    @app.get("/health", tags=["Operations"], summary="Liveness probe")
    async def health() -> dict:
        return {
            "status":      "ok",
            "service":     "taxdoc-api",
            "source":      settings.source_container,
            "destination": settings.destination_container,
            "analyzer_configured": bool(settings.content_understanding_endpoint),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "taxdoc.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development",
        log_level="debug" if settings.debug else "info",
    )
