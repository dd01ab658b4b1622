# reportd/app/annotate.py
from datetime import datetime, timezone
from typing import Callable

from .schemas import AnyReport, NormalizedRecord

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def annotate(report: AnyReport, service_tag: str, clock: Clock = utc_now) -> NormalizedRecord:
    """Время приёма берём со своих часов, не из отчёта."""
    return NormalizedRecord(ingested_at=clock(), service_tag=service_tag, report=report)
