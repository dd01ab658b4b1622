# reportd/app/validation.py
import re

from .errors import InvalidServiceTag, MissingRequiredField
from .schemas import Disposition, SecurityReport

MAX_SERVICE_TAG_LEN = 32

# fullmatch, а не match: с "$" строка "reportd\n" прошла бы
SERVICE_TAG_RE = re.compile(r"[A-Za-z0-9_-]+")


def validate_service_tag(tag: str) -> str:
    if not tag:
        raise InvalidServiceTag(tag or "", "service must not be empty")
    if len(tag) > MAX_SERVICE_TAG_LEN:
        raise InvalidServiceTag(tag, f"service must be at most {MAX_SERVICE_TAG_LEN} characters")
    if not SERVICE_TAG_RE.fullmatch(tag):
        raise InvalidServiceTag(tag, "service must match ^[A-Za-z0-9_-]+$")
    return tag


def validate_security_report(report: SecurityReport) -> SecurityReport:
    """
    Обязательные поля security report. Первое же нарушение -> MissingRequiredField.
    Порядок проверок фиксированный, от него зависит, какое поле попадёт в ошибку.
    """
    if not report.report_checksum:
        raise MissingRequiredField("report_checksum")
    if report.report_time <= 0:
        raise MissingRequiredField("report_time")
    if report.report_count < 1:
        raise MissingRequiredField("report_count")
    if not report.user_agent:
        raise MissingRequiredField("user_agent")
    if not report.browser_name:
        raise MissingRequiredField("browser_name")
    if report.browser_major_version == 0:
        raise MissingRequiredField("browser_major_version")
    if report.disposition == Disposition.UNKNOWN:
        raise MissingRequiredField("disposition")
    return report

