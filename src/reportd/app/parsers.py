# reportd/app/parsers.py
import json
import time
from typing import Any, Callable, Dict, List

from .checksum import report_checksum
from .errors import (
    MalformedJSON,
    MissingRequiredField,
    UnsupportedReportType,
)
from .fields import FieldExtractor, WarningSink, json_type_name
from .schemas import (
    CSPViolation,
    DeprecationNotice,
    Disposition,
    ExpectCTFailure,
    GenericReportBody,
    ReportingEnvelope,
    SecurityReport,
    WebVital,
)


def current_millis() -> int:
    return time.time_ns() // 1_000_000


def _reject_constant(name: str) -> Any:
    # NaN / Infinity не JSON, и канонический вид для checksum из них не собрать
    raise ValueError(f"{name} is not valid JSON")


def load_json(body: bytes) -> Any:
    """bytes -> JSON. Любая проблема на этом уровне валит весь запрос."""
    if isinstance(body, (bytes, bytearray)):
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedJSON(f"body is not utf-8: {exc}") from exc
    else:
        text = body

    if not text.strip():
        raise MalformedJSON("empty body")

    try:
        return json.loads(text, parse_constant=_reject_constant)
    except ValueError as exc:
        raise MalformedJSON(str(exc)) from exc


def _expect_object(payload: Any, where: str = "top level") -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise MalformedJSON(f"expected object at {where}, got {json_type_name(payload)}")
    return payload


def _expect_array(payload: Any, where: str = "top level") -> List[Any]:
    if not isinstance(payload, list):
        raise MalformedJSON(f"expected array at {where}, got {json_type_name(payload)}")
    return payload


def _envelope(payload: Any, key: str, warn: WarningSink) -> FieldExtractor:
    """Обёртка вида {"csp-report": {...}} обязана быть объектом, а вот листья внутри нет."""
    root = _expect_object(payload)
    if key not in root:
        raise MissingRequiredField(key)
    return FieldExtractor(_expect_object(root[key], key), warn, path=key)


# ---------- legacy форматы ----------

def decode_csp_report(payload: Any, warn: WarningSink) -> CSPViolation:
    """
    Legacy `report-uri` формат, Content-Type: application/csp-report.

    {
      "csp-report": {
        "document-uri": "...",
        "blocked-uri": "...",
        "effective-directive": "style-src",
        ...
      }
    }
    """
    f = _envelope(payload, "csp-report", warn)
    return CSPViolation(
        document_uri=f.string("document-uri"),
        referrer=f.string("referrer"),
        blocked_uri=f.string("blocked-uri"),
        violated_directive=f.string("violated-directive"),
        effective_directive=f.string("effective-directive"),
        original_policy=f.string("original-policy"),
        source_file=f.string("source-file"),
        line_number=f.integer("line-number"),
        column_number=f.integer("column-number"),
        script_sample=f.string("script-sample"),
        status_code=f.integer("status-code"),
        disposition=f.string("disposition"),
    )


def decode_expect_ct_report(payload: Any, warn: WarningSink) -> ExpectCTFailure:
    """Content-Type: application/expect-ct-report+json."""
    f = _envelope(payload, "expect-ct-report", warn)
    return ExpectCTFailure(
        date_time=f.timestamp("date-time"),
        effective_expiration_date=f.timestamp("effective-expiration-date"),
        hostname=f.string("hostname"),
        port=f.integer("port"),
        scts=f.strings("scts"),
        served_certificate_chain=f.strings("served-certificate-chain"),
        validated_certificate_chain=f.strings("validated-certificate-chain"),
    )


# ---------- тела Reporting API ----------

def decode_csp_body(f: FieldExtractor) -> CSPViolation:
    """CSPViolationReportBody: camelCase, часть полей разные браузеры называют по-разному."""
    return CSPViolation(
        document_uri=f.string("documentURL"),
        referrer=f.string("referrer"),
        blocked_uri=f.string("blockedURL"),
        violated_directive=f.string("violatedDirective"),
        effective_directive=f.string("effectiveDirective"),
        original_policy=f.string("originalPolicy"),
        source_file=f.string("sourceFile"),
        line_number=f.integer("lineNumber"),
        column_number=f.integer("columnNumber"),
        script_sample=f.string("sample", "scriptSample"),
        status_code=f.integer("statusCode", "status_code"),
        disposition=f.string("disposition"),
    )


def decode_deprecation_body(f: FieldExtractor) -> DeprecationNotice:
    return DeprecationNotice(
        id=f.string("id"),
        anticipated_removal=f.string("anticipatedRemoval"),
        message=f.string("message"),
        source_file=f.string("sourceFile"),
        line_number=f.integer("lineNumber"),
        column_number=f.integer("columnNumber"),
    )


# поле generic-тела -> метод FieldExtractor
GENERIC_BODY_FIELDS: Dict[str, str] = {
    "blocked": "string",
    "directive": "string",
    "policy": "string",
    "status": "integer",
    "referrer": "string",
    "message": "string",
    "id": "string",
    "reason": "string",
    "phase": "string",
    "protocol": "string",
    "method": "string",
    "server_ip": "string",
    "status_code": "integer",
    "elapsed_time": "integer",
    "sampling_fraction": "number",
    "type": "string",
}


def decode_generic_body(f: FieldExtractor) -> GenericReportBody:
    # у остальных типов набор полей непредсказуем, поэтому warning только на не тот тип
    values: Dict[str, Any] = {}
    for name, reader in GENERIC_BODY_FIELDS.items():
        if f.has(name):
            values[name] = getattr(f, reader)(name)
    return GenericReportBody(**values)


ENVELOPE_BODY_DECODERS: Dict[str, Callable[[FieldExtractor], Any]] = {
    "csp-violation": decode_csp_body,
    "deprecation": decode_deprecation_body,
}


def decode_reporting_envelope(
    obj: Dict[str, Any],
    warn: WarningSink,
    path: str = "",
) -> ReportingEnvelope:
    f = FieldExtractor(obj, warn, path=path)
    report_type = f.string("type")
    body = f.object("body")
    body_decoder = ENVELOPE_BODY_DECODERS.get(report_type, decode_generic_body)
    return ReportingEnvelope(
        type=report_type,
        age=f.integer("age"),
        url=f.string("url"),
        user_agent=f.string("user_agent"),
        body=body_decoder(body),
    )


def decode_reporting_batch(payload: Any, warn: WarningSink) -> List[ReportingEnvelope]:
    """
    Content-Type: application/reports+json, массив конвертов.
    Весь запрос падает, только если это не массив или элемент не объект.
    Кривое поле внутри одного элемента на соседей не влияет.
    """
    items = _expect_array(payload)
    for idx, item in enumerate(items):
        _expect_object(item, f"[{idx}]")

    return [
        decode_reporting_envelope(item, warn, path=f"[{idx}]")
        for idx, item in enumerate(items)
    ]


# ---------- analytics ----------

def decode_web_vital(payload: Any, warn: WarningSink) -> WebVital:
    """Тело POST /analytics: один объект web-vitals."""
    f = FieldExtractor(_expect_object(payload), warn)
    return WebVital(
        name=f.string("name"),
        value=f.number("value"),
        delta=f.number("delta"),
        id=f.string("id"),
        label=f.optional_string("label"),
        entries=f.array("entries") if f.has("entries") else [],
    )


# ---------- security report (oneof + checksum) ----------

DISPOSITIONS: Dict[str, Disposition] = {
    "enforce": Disposition.ENFORCED,
    "report": Disposition.REPORTING,
}


def decode_security_report(
    obj: Dict[str, Any],
    warn: WarningSink,
    now: Callable[[], int] = current_millis,
    path: str = "",
) -> SecurityReport:
    """
    Один элемент канала security-report.

    checksum считается от всего элемента целиком (в каноническом виде),
    report_count всегда 1: агрегация не наша забота.
    """
    checksum = report_checksum(obj)
    f = FieldExtractor(obj, warn, path=path)

    report_type = obj.get("type")
    if not isinstance(report_type, str):
        raise MissingRequiredField("type")
    body = obj.get("body")
    if not isinstance(body, dict):
        raise MissingRequiredField("body")

    body_fields = f.object("body")
    disposition = Disposition.UNKNOWN
    if report_type == "csp-violation":
        extension: Any = decode_csp_body(body_fields)
        disposition = DISPOSITIONS.get(extension.disposition, Disposition.UNKNOWN)
    elif report_type == "deprecation":
        extension = decode_deprecation_body(body_fields)
    else:
        raise UnsupportedReportType(report_type)

    # "age" это смещение от момента генерации отчёта; timestamp браузер не шлёт,
    # поэтому берём серверное время
    # https://w3c.github.io/reporting/#serialize-reports
    report_time = 0
    age = f.optional_integer("age")
    if age is not None:
        report_time = now() - age

    return SecurityReport(
        report_checksum=checksum,
        report_time=report_time,
        report_count=1,
        user_agent=f.string("user_agent"),
        disposition=disposition,
        extension=extension,
    )
