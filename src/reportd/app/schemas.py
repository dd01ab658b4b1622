# reportd/app/schemas.py
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class CSPViolation(BaseModel):
    """
    Нарушение Content-Security-Policy.
    Один и тот же тип и для legacy `application/csp-report`, и для тела Reporting API.
    https://www.w3.org/TR/CSP3/#violation
    """
    kind: Literal["csp-violation"] = "csp-violation"

    document_uri: str = Field("", description="Документ, на котором произошло нарушение")
    referrer: str = Field("", description="Referrer документа")
    blocked_uri: str = Field("", description="Ресурс, который заблокировала политика")
    violated_directive: str = Field("", description="Историческое имя effective_directive")
    effective_directive: str = Field("", description="Директива, из-за которой сработала политика")
    original_policy: str = Field("", description="Политика целиком, как в заголовке")
    source_file: str = Field("", description="URL ресурса, где произошло нарушение")
    line_number: int = Field(0, description="Номер строки в source_file, с 1")
    column_number: int = Field(0, description="Номер колонки в source_file, с 1")
    script_sample: str = Field("", description="Первые 40 символов заблокированного скрипта")
    status_code: int = Field(0, description="HTTP статус документа")
    disposition: str = Field("", description="'enforce' или 'report'")


class ExpectCTFailure(BaseModel):
    kind: Literal["expect-ct"] = "expect-ct"

    date_time: Optional[datetime] = None
    effective_expiration_date: Optional[datetime] = None
    hostname: str = ""
    port: int = 0
    scts: List[str] = Field(default_factory=list)
    served_certificate_chain: List[str] = Field(default_factory=list)
    validated_certificate_chain: List[str] = Field(default_factory=list)


class DeprecationNotice(BaseModel):
    kind: Literal["deprecation"] = "deprecation"

    id: str = Field("", description="Имя API, например websql")
    anticipated_removal: str = Field("", description="Дата удаления, YYYY-MM-DD")
    message: str = Field("", description="Свободный текст от браузера")
    source_file: str = Field("", description="Где был вызов устаревшего API")
    line_number: int = 0
    column_number: int = 0


class GenericReportBody(BaseModel):
    """
    Тело Reporting API для всех остальных типов (network-error, intervention, crash ...).
    Браузеры присылают кто что хочет, поэтому всё опционально.
    """
    kind: Literal["generic"] = "generic"

    blocked: str = ""
    directive: str = ""
    policy: str = ""
    status: int = 0
    referrer: str = ""
    message: str = ""
    id: str = ""
    reason: str = ""
    phase: str = ""
    protocol: str = ""
    method: str = ""
    server_ip: str = ""
    status_code: int = 0
    elapsed_time: int = 0
    sampling_fraction: float = 0.0
    type: str = ""


EnvelopeBody = Annotated[
    Union[CSPViolation, DeprecationNotice, GenericReportBody],
    Field(discriminator="kind"),
]


class ReportingEnvelope(BaseModel):
    """Один элемент массива `application/reports+json`."""
    kind: Literal["reporting-api"] = "reporting-api"

    type: str = ""
    age: int = Field(0, description="Сколько мс прошло с момента генерации отчёта")
    url: str = ""
    user_agent: str = ""
    body: EnvelopeBody = Field(default_factory=GenericReportBody)


class WebVital(BaseModel):
    """
    Метрика https://web.dev/vitals/.
    """
    kind: Literal["web-vital"] = "web-vital"

    name: str = Field("", description="Имя метрики (аббревиатура: LCP, CLS ...)")
    value: float = Field(0.0, description="Текущее значение метрики")
    delta: float = Field(0.0, description="Разница с прошлым отправленным значением")
    id: str = Field("", description="Уникальный id метрики в рамках страницы")
    label: str = ""
    # entries не разбираем, кладём как пришло
    entries: List[Any] = Field(default_factory=list)


class Disposition(str, Enum):
    UNKNOWN = "DISPOSITION_UNKNOWN"
    REPORTING = "REPORTING"
    ENFORCED = "ENFORCED"


ReportExtension = Annotated[
    Union[CSPViolation, DeprecationNotice],
    Field(discriminator="kind"),
]


class SecurityReport(BaseModel):
    """
    Отчёт для дедупликации: базовые поля + ровно одно расширение (CSP или deprecation).
    extension без дефолта, без него объект просто не соберётся.
    """
    kind: Literal["security-report"] = "security-report"

    report_checksum: str = Field(..., description="SHA-256 от канонического JSON элемента")
    report_time: int = Field(0, description="Когда отчёт был сгенерирован (мс)")
    report_count: int = Field(1, description="Сколько раз видели (до агрегации всегда 1)")
    user_agent: str = ""
    browser_name: str = ""
    browser_major_version: int = 0
    disposition: Disposition = Disposition.UNKNOWN
    extension: ReportExtension


AnyReport = Annotated[
    Union[
        CSPViolation,
        ExpectCTFailure,
        DeprecationNotice,
        ReportingEnvelope,
        WebVital,
        SecurityReport,
    ],
    Field(discriminator="kind"),
]


class NormalizedRecord(BaseModel):
    """То, что уходит в хранилище."""
    ingested_at: datetime
    service_tag: str
    report: AnyReport

    @property
    def kind(self) -> str:
        return self.report.kind


class SummaryRow(BaseModel):
    service_tag: str
    kind: str
    name: str = Field("", description="Имя метрики или директива/тип отчёта")
    day: date
    count: int = 0
    mean_value: Optional[float] = Field(None, description="Среднее значение, только для web vitals")


# ---- HTTP ----

class Rejection(BaseModel):
    index: int
    error: str
    detail: str


class IngestResponse(BaseModel):
    accepted: int
    rejected: List[Rejection] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class SummaryResponse(BaseModel):
    service: str
    start: datetime
    end: datetime
    rows: List[SummaryRow]
