# reportd/app/api.py
import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from .annotate import annotate
from .config import settings
from .dispatch import REPORTS_JSON, is_security_report_batch, parse_media_type
from .errors import ParseError
from .fields import WarningCollector, log_warning
from .parsers import load_json
from .pipeline import parse, parse_analytics, parse_security_reports
from .schemas import IngestResponse, Rejection, SummaryResponse
from .storage import ReportSink, TimeWindow, sink
from .validation import validate_service_tag

logger = logging.getLogger("reportd.api")

router = APIRouter(tags=["reportd"])


def get_sink() -> ReportSink:
    # подменяется в тестах через app.dependency_overrides
    return sink


def _wants_security_channel(content_type: str, body: bytes) -> bool:
    if not settings.SECURITY_REPORTS:
        return False
    try:
        media, _ = parse_media_type(content_type)
        return media == REPORTS_JSON and is_security_report_batch(load_json(body))
    except ParseError:
        # пусть обычный путь вернёт нормальную ошибку
        return False


async def _ingest_security_reports(
    service: str,
    body: bytes,
    store: ReportSink,
    warnings: WarningCollector,
) -> IngestResponse:
    validate_service_tag(service)
    batch = parse_security_reports(body, warn=warnings)
    store.insert(annotate(report, service) for report in batch.accepted)
    return IngestResponse(
        accepted=len(batch.accepted),
        rejected=[
            Rejection(index=r.index, error=r.reason, detail=str(r.error))
            for r in batch.rejected
        ],
        warnings=warnings.messages(),
    )


@router.post("/report/{service}", response_model=IngestResponse)
async def report_endpoint(
    service: str,
    request: Request,
    store: ReportSink = Depends(get_sink),
) -> IngestResponse:
    """
    Принимает отчёт браузера как есть: тело + Content-Type.
    Ошибки разбора превращаются в HTTP-ответы в main.py.
    """
    body = await request.body()
    content_type = request.headers.get("content-type", "")
    warnings = WarningCollector(forward=log_warning)

    if _wants_security_channel(content_type, body):
        return await _ingest_security_reports(service, body, store, warnings)

    parsed = parse(content_type, body, service, warn=warnings)
    records = parsed if isinstance(parsed, list) else [parsed]
    store.insert(records)

    logger.info(
        "report received content_type=%s service=%s records=%d user_agent=%s",
        content_type,
        service,
        len(records),
        request.headers.get("user-agent"),
    )
    return IngestResponse(accepted=len(records), warnings=warnings.messages())


@router.post("/security-report/{service}", response_model=IngestResponse)
async def security_report_endpoint(
    service: str,
    request: Request,
    store: ReportSink = Depends(get_sink),
) -> IngestResponse:
    body = await request.body()
    warnings = WarningCollector(forward=log_warning)
    return await _ingest_security_reports(service, body, store, warnings)


@router.post("/analytics/{service}", response_model=IngestResponse)
async def analytics_endpoint(
    service: str,
    request: Request,
    store: ReportSink = Depends(get_sink),
) -> IngestResponse:
    body = await request.body()
    warnings = WarningCollector(forward=log_warning)
    record = parse_analytics(body, service, warn=warnings)
    store.insert([record])

    logger.info("analytics received service=%s metric=%s", service, record.report.name)
    return IngestResponse(accepted=1, warnings=warnings.messages())


@router.get("/services", response_model=List[str])
async def services_endpoint(store: ReportSink = Depends(get_sink)) -> List[str]:
    return store.services()


@router.get("/summary/{service}", response_model=SummaryResponse)
async def summary_endpoint(
    service: str,
    days: Optional[int] = Query(None, ge=1, le=365),
    store: ReportSink = Depends(get_sink),
) -> SummaryResponse:
    validate_service_tag(service)
    window = TimeWindow.last_days(days or settings.SUMMARY_DAYS, now=datetime.now(timezone.utc))
    rows = store.query(service, window)
    return SummaryResponse(service=service, start=window.start, end=window.end, rows=rows)
