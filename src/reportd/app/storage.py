# reportd/app/storage.py
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from threading import RLock
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import SinkError
from .schemas import (
    AnyReport,
    CSPViolation,
    DeprecationNotice,
    ExpectCTFailure,
    NormalizedRecord,
    ReportingEnvelope,
    SecurityReport,
    SummaryRow,
    WebVital,
)

logger = logging.getLogger("reportd.storage")


@dataclass(frozen=True)
class TimeWindow:
    start: datetime
    end: datetime

    @classmethod
    def last_days(cls, days: int, now: Optional[datetime] = None) -> "TimeWindow":
        end = now or datetime.now(timezone.utc)
        return cls(start=end - timedelta(days=days), end=end)

    def __contains__(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


class ReportSink(ABC):
    """Куда складываем нормализованные записи. Реальный warehouse живёт снаружи."""

    @abstractmethod
    def insert(self, records: Iterable[NormalizedRecord]) -> None:
        ...

    @abstractmethod
    def query(self, service_tag: str, window: TimeWindow) -> List[SummaryRow]:
        ...

    @abstractmethod
    def services(self) -> List[str]:
        ...


def summary_name(report: AnyReport) -> str:
    """По какому полю группируем в сводке."""
    if isinstance(report, WebVital):
        return report.name
    if isinstance(report, CSPViolation):
        return report.effective_directive or report.violated_directive
    if isinstance(report, DeprecationNotice):
        return report.id
    if isinstance(report, ExpectCTFailure):
        return report.hostname
    if isinstance(report, ReportingEnvelope):
        return report.type
    if isinstance(report, SecurityReport):
        return summary_name(report.extension)
    return ""


class InMemoryReportSink(ReportSink):
    def __init__(self) -> None:
        self._records: List[NormalizedRecord] = []
        self._lock = RLock()

    def insert(self, records: Iterable[NormalizedRecord]) -> None:
        batch = list(records)
        if not batch:
            return
        with self._lock:
            self._records.extend(batch)
        logger.info("Stored %d records", len(batch))

    def query(self, service_tag: str, window: TimeWindow) -> List[SummaryRow]:
        if window.start > window.end:
            raise SinkError(f"window start {window.start} is after end {window.end}")

        with self._lock:
            matched = [
                r for r in self._records
                if r.service_tag == service_tag and r.ingested_at in window
            ]

        groups: Dict[Tuple[date, str, str], List[NormalizedRecord]] = {}
        for r in matched:
            key = (r.ingested_at.date(), r.kind, summary_name(r.report))
            groups.setdefault(key, []).append(r)

        rows: List[SummaryRow] = []
        for (day, kind, name), items in sorted(groups.items()):
            mean_value = None
            if kind == "web-vital":
                mean_value = sum(i.report.value for i in items) / len(items)
            rows.append(
                SummaryRow(
                    service_tag=service_tag,
                    kind=kind,
                    name=name,
                    day=day,
                    count=len(items),
                    mean_value=mean_value,
                )
            )
        return rows

    def services(self) -> List[str]:
        with self._lock:
            return sorted({r.service_tag for r in self._records})

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


sink = InMemoryReportSink()
