# reportd/app/useragent.py
import re
from typing import Callable, List, NamedTuple, Pattern, Tuple


class Browser(NamedTuple):
    name: str
    major_version: int


UNKNOWN_BROWSER = Browser(name="", major_version=0)

# мажорная версия не длиннее 6 цифр, иначе это не браузер
_VERSION = r"(\d{1,6})(?!\d)"

# порядок важен: Edge и Opera тоже пишут "Chrome/..." в UA, Chrome пишет "Safari/..."
_BROWSER_PATTERNS: List[Tuple[str, Pattern[str]]] = [
    ("Edge", re.compile(rf"\bEdg(?:e|A|iOS)?/{_VERSION}")),
    ("Opera", re.compile(rf"\b(?:OPR|Opera)/{_VERSION}")),
    ("Samsung Internet", re.compile(rf"\bSamsungBrowser/{_VERSION}")),
    ("Firefox", re.compile(rf"\b(?:Firefox|FxiOS)/{_VERSION}")),
    ("Chrome", re.compile(rf"\b(?:Chrome|CriOS)/{_VERSION}")),
    ("Safari", re.compile(rf"\bVersion/{_VERSION}[\d.]*(?: Mobile/\S+)? Safari/")),
]

BrowserResolver = Callable[[str], Browser]


def resolve_browser(user_agent: str) -> Browser:
    """
    Имя браузера + мажорная версия из User-Agent.
    Не распознали -> UNKNOWN_BROWSER, валидация такой отчёт потом отклонит.
    """
    if not user_agent:
        return UNKNOWN_BROWSER
    for name, pattern in _BROWSER_PATTERNS:
        m = pattern.search(user_agent)
        if m:
            return Browser(name=name, major_version=int(m.group(1)))
    return UNKNOWN_BROWSER
