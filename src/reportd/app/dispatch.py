# reportd/app/dispatch.py
import re
from typing import Any, Callable, Dict, List, Tuple

from .errors import MalformedContentType, UnsupportedContentType
from .parsers import (
    decode_csp_report,
    decode_expect_ct_report,
    decode_reporting_batch,
)

CSP_REPORT = "application/csp-report"
EXPECT_CT_REPORT = "application/expect-ct-report+json"
REPORTS_JSON = "application/reports+json"

# тип -> декодер. Набор закрыт: всё остальное UnsupportedContentType
DECODERS: Dict[str, Callable[..., Any]] = {
    CSP_REPORT: decode_csp_report,
    EXPECT_CT_REPORT: decode_expect_ct_report,
    REPORTS_JSON: decode_reporting_batch,
}

# типы, которые умеет канал security-report (дедупликация по checksum)
SECURITY_REPORT_TYPES = frozenset({"csp-violation", "deprecation"})

_TOKEN = r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+"
_MEDIA_RE = re.compile(rf"^({_TOKEN})/({_TOKEN})$")
_PARAM_RE = re.compile(rf'^({_TOKEN})=({_TOKEN}|"(?:[^"\\]|\\.)*")$')
_QUOTED_PAIR_RE = re.compile(r"\\(.)")


def _split_params(rest: str) -> List[str]:
    """Режем по ";" вне кавычек: в x="a;b" точка с запятой часть значения."""
    chunks: List[str] = []
    current: List[str] = []
    quoted = escaped = False
    for ch in rest:
        if escaped:
            escaped = False
        elif quoted and ch == "\\":
            escaped = True
        elif ch == '"':
            quoted = not quoted
        elif ch == ";" and not quoted:
            chunks.append("".join(current))
            current = []
            continue
        current.append(ch)
    chunks.append("".join(current))
    return chunks


def parse_media_type(content_type: str) -> Tuple[str, Dict[str, str]]:
    """
    `text/html; charset=utf-8` -> ("text/html", {"charset": "utf-8"}).
    Тип приводится к нижнему регистру, параметры валидируются, но дальше не используются.
    """
    if content_type is None:
        raise MalformedContentType("", "no media type")

    media, _, rest = content_type.partition(";")
    media = media.strip().lower()
    if not media:
        raise MalformedContentType(content_type, "no media type")
    if not _MEDIA_RE.match(media):
        raise MalformedContentType(content_type, "expected token after slash")

    params: Dict[str, str] = {}
    for chunk in _split_params(rest) if rest else []:
        chunk = chunk.strip()
        if not chunk:
            continue
        m = _PARAM_RE.match(chunk)
        if not m:
            raise MalformedContentType(content_type, f"invalid media parameter {chunk!r}")
        key = m.group(1).lower()
        if key in params:
            raise MalformedContentType(content_type, f"duplicate parameter name {key!r}")
        value = m.group(2)
        if value.startswith('"'):
            value = _QUOTED_PAIR_RE.sub(r"\1", value[1:-1])
        params[key] = value

    return media, params


def select_decoder(content_type: str) -> Tuple[str, Callable[..., Any]]:
    """Выбираем декодер по Content-Type. Никакого декодера "по умолчанию" нет."""
    media, _ = parse_media_type(content_type)
    decoder = DECODERS.get(media)
    if decoder is None:
        raise UnsupportedContentType(media)
    return media, decoder


def is_security_report_batch(payload: Any) -> bool:
    """
    Канал security-report выбирается по форме данных, а не по Content-Type:
    непустой массив объектов, у каждого `type` из SECURITY_REPORT_TYPES.
    """
    if not isinstance(payload, list) or not payload:
        return False
    return all(
        isinstance(item, dict)
        and isinstance(item.get("type"), str)
        and item["type"] in SECURITY_REPORT_TYPES
        for item in payload
    )
