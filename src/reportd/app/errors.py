# reportd/app/errors.py


class ParseError(Exception):
    """
    Базовая ошибка разбора отчёта.
    Всё, что наследуется отсюда, отдаётся вызывающему как есть, без ретраев.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnsupportedContentType(ParseError):
    def __init__(self, content_type: str) -> None:
        super().__init__(f"{content_type!r} is not a valid content-type")
        self.content_type = content_type


class MalformedContentType(ParseError):
    def __init__(self, content_type: str, reason: str = "") -> None:
        detail = f"cannot parse content-type {content_type!r}"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(detail)
        self.content_type = content_type
        self.reason = reason


class MalformedJSON(ParseError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"malformed json: {detail}")
        self.detail = detail


class MissingRequiredField(ParseError):
    def __init__(self, field: str) -> None:
        super().__init__(f"{field} is required")
        self.field = field


class InvalidServiceTag(ParseError):
    def __init__(self, tag: str, reason: str) -> None:
        super().__init__(f"invalid service {tag!r}: {reason}")
        self.tag = tag
        self.reason = reason


class UnsupportedReportType(ParseError):
    def __init__(self, report_type: str) -> None:
        super().__init__(f"unexpected report type: {report_type!r}")
        self.report_type = report_type


class SinkError(Exception):
    """Ошибка хранилища (запись или чтение)."""
