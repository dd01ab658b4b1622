# reportd/app/main.py
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Dict, Optional, Type

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api import router as api_router
from .config import settings
from .errors import (
    InvalidServiceTag,
    MalformedContentType,
    MalformedJSON,
    MissingRequiredField,
    ParseError,
    SinkError,
    UnsupportedContentType,
)
from common.audit_client import AuditClient


# --- базовый логгер (stdout контейнера) ---

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("reportd")

# --- общий audit-клиент для этого сервиса ---

audit = AuditClient(
    service_name=settings.PROJECT_NAME,
    base_url=settings.AUDIT_URL,
    enabled=settings.AUDIT_ENABLED,
)

# ошибка разбора -> HTTP статус
STATUS_BY_ERROR: Dict[Type[Exception], int] = {
    UnsupportedContentType: 415,
    MalformedContentType: 400,
    MalformedJSON: 400,
    InvalidServiceTag: 400,
    MissingRequiredField: 422,
}


def status_for(exc: ParseError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 400


def create_app(audit_client: Optional[AuditClient] = None) -> FastAPI:
    auditor = audit_client or audit

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # httpx.AsyncClient внутри audit-клиента живёт до остановки приложения
        await auditor.aclose()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Приём CSP / Expect-CT / Reporting API отчётов и web vitals",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    # --- middleware: trace_id + audit http-запросов ---
    @app.middleware("http")
    async def trace_and_audit_middleware(request: Request, call_next):
        incoming_trace_id = request.headers.get("X-Trace-Id")
        trace_id = incoming_trace_id or str(uuid.uuid4())
        request.state.trace_id = trace_id

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = (time.monotonic() - start) * 1000.0

        response.headers["X-Trace-Id"] = trace_id

        await auditor.log(
            level="INFO" if response.status_code < 400 else "WARNING",
            message="HTTP request handled by reportd",
            trace_id=trace_id,
            service_tag=request.path_params.get("service"),
            context={
                "method": request.method,
                "path": request.url.path,
                "content_type": request.headers.get("content-type"),
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response

    @app.exception_handler(ParseError)
    async def parse_error_handler(request: Request, exc: ParseError):
        logger.error(
            "error seen during report parse content_type=%s path=%s user_agent=%s: %s",
            request.headers.get("content-type"),
            request.url.path,
            request.headers.get("user-agent"),
            exc,
        )
        return JSONResponse(
            status_code=status_for(exc),
            content={"detail": exc.message, "error": type(exc).__name__},
        )

    @app.exception_handler(SinkError)
    async def sink_error_handler(request: Request, exc: SinkError):
        logger.error("error during storage call path=%s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "error": type(exc).__name__},
        )

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": settings.PROJECT_NAME}

    app.include_router(api_router)
    return app


app = create_app()
