# reportd/app/pipeline.py

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Union

from .annotate import Clock, annotate, utc_now
from .dispatch import REPORTS_JSON, select_decoder
from .errors import MalformedJSON, ParseError
from .fields import WarningSink, json_type_name, log_warning
from .parsers import (
    current_millis,
    decode_security_report,
    decode_web_vital,
    load_json,
)
from .schemas import NormalizedRecord, SecurityReport
from .useragent import BrowserResolver, resolve_browser
from .validation import validate_security_report, validate_service_tag

logger = logging.getLogger("reportd.pipeline")


def parse(
    content_type: str,
    body: bytes,
    service_tag: str,
    *,
    warn: WarningSink = log_warning,
    clock: Clock = utc_now,
) -> Union[NormalizedRecord, List[NormalizedRecord]]:
    """
    Главная точка входа для POST /report.

    Received -> Dispatched -> Decoded -> Validated -> Annotated.
    Для application/reports+json возвращается список (по записи на конверт),
    для остальных типов одна запись.
    """
    # тег проверяем до любой работы с телом
    validate_service_tag(service_tag)

    media, decoder = select_decoder(content_type)
    payload = load_json(body)
    decoded = decoder(payload, warn)

    # у csp/expect-ct/reports+json обязательных полей сверх структуры нет
    if media == REPORTS_JSON:
        records = [annotate(env, service_tag, clock) for env in decoded]
        logger.info("Parsed %d reporting-api envelopes for service=%s", len(records), service_tag)
        return records

    logger.info("Parsed %s report for service=%s", decoded.kind, service_tag)
    return annotate(decoded, service_tag, clock)


def parse_analytics(
    body: bytes,
    service_tag: str,
    *,
    warn: WarningSink = log_warning,
    clock: Clock = utc_now,
) -> NormalizedRecord:
    """POST /analytics: одна web-vitals метрика."""
    validate_service_tag(service_tag)
    vital = decode_web_vital(load_json(body), warn)
    return annotate(vital, service_tag, clock)


@dataclass
class ItemRejection:
    index: int
    error: ParseError

    @property
    def reason(self) -> str:
        return type(self.error).__name__


@dataclass
class SecurityReportBatch:
    accepted: List[SecurityReport] = field(default_factory=list)
    rejected: List[ItemRejection] = field(default_factory=list)


def parse_security_reports(
    body: Union[bytes, List[Any]],
    *,
    warn: WarningSink = log_warning,
    now: Callable[[], int] = current_millis,
    browser: BrowserResolver = resolve_browser,
) -> SecurityReportBatch:
    """
    Канал security-report: массив объектов с `type` внутри.

    Не массив или элемент не объект -> MalformedJSON на весь запрос.
    Всё остальное (нет type/body, незнакомый type, обязательные поля) отклоняет
    только сам элемент, соседи проходят дальше.
    """
    payload = body if isinstance(body, list) else load_json(body)
    if not isinstance(payload, list):
        raise MalformedJSON(f"expected array at top level, got {json_type_name(payload)}")
    for idx, item in enumerate(payload):
        if not isinstance(item, dict):
            raise MalformedJSON(f"expected object at [{idx}], got {json_type_name(item)}")

    batch = SecurityReportBatch()
    for idx, item in enumerate(payload):
        try:
            report = decode_security_report(item, warn, now=now, path=f"[{idx}]")
            # имя браузера и версию даёт внешний парсер UA
            ua = browser(report.user_agent)
            report.browser_name = ua.name
            report.browser_major_version = ua.major_version
            batch.accepted.append(validate_security_report(report))
        except ParseError as exc:
            logger.warning("Rejected security report [%d]: %s", idx, exc)
            batch.rejected.append(ItemRejection(index=idx, error=exc))

    return batch
