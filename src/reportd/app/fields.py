# reportd/app/fields.py
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

logger = logging.getLogger("reportd.fields")


@dataclass(frozen=True)
class FieldWarning:
    """Поле отсутствует или пришло не того типа. Не ошибка: подставили нулевое значение."""
    path: str
    expected: str
    observed: str

    def __str__(self) -> str:
        return f"unexpected {self.path}: expected {self.expected}, got {self.observed}"


WarningSink = Callable[[FieldWarning], None]


def log_warning(warning: FieldWarning) -> None:
    """Sink по умолчанию: просто пишем в лог."""
    logger.warning("%s", warning)


class WarningCollector:
    """Собирает предупреждения в список (для тестов и для ответа API)."""

    def __init__(self, forward: Optional[WarningSink] = None) -> None:
        self.warnings: List[FieldWarning] = []
        self._forward = forward

    def __call__(self, warning: FieldWarning) -> None:
        self.warnings.append(warning)
        if self._forward is not None:
            self._forward(warning)

    def messages(self) -> List[str]:
        return [str(w) for w in self.warnings]


def json_type_name(value: Any) -> str:
    """Имя JSON-типа значения, как его видел бы браузер."""
    if value is None:
        return "null"
    # bool это подкласс int, проверяем раньше
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


_MISSING = object()


_INT64_LIMIT = 2 ** 63


def _as_float(value: Any) -> Optional[float]:
    """Конечное число -> float, всё остальное -> None.

    json.loads превращает 1e400 в inf, а 1 с четырьмястами нулями в int,
    который во float не влезает.
    """
    # bool это подкласс int
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _is_number(value: Any) -> bool:
    return _as_float(value) is not None


def _is_int64(value: Any) -> bool:
    number = _as_float(value)
    return number is not None and -_INT64_LIMIT <= number < _INT64_LIMIT


def _is_text(value: Any) -> bool:
    # "\ud800" json пропускает, но в UTF-8 одиночный суррогат не кодируется
    if not isinstance(value, str):
        return False
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def _observed(value: Any) -> str:
    if value is _MISSING:
        return "missing"
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return "number" if _is_number(value) else "out-of-range number"
    if isinstance(value, str) and not _is_text(value):
        return "invalid unicode string"
    return json_type_name(value)


class FieldExtractor:
    """
    Безопасное чтение полей из JSON-объекта без схемы.

    Любое поле, которое отсутствует или пришло не того типа, превращается в нулевое
    значение своего типа + FieldWarning в переданный sink. Исключений не бросаем:
    браузеры не обязаны присылать полные отчёты.
    """

    def __init__(
        self,
        source: Mapping[str, Any],
        warn: WarningSink,
        path: str = "",
    ) -> None:
        self.source = source
        self.warn = warn
        self.path = path

    def _path(self, name: str) -> str:
        return f"{self.path}.{name}" if self.path else name

    def _lookup(self, names: tuple) -> tuple:
        # первое присутствующее имя из списка алиасов
        for name in names:
            if name in self.source:
                return name, self.source[name]
        return names[0], _MISSING

    def _degrade(self, name: str, expected: str, value: Any, observed: Optional[str] = None) -> None:
        if observed is None:
            observed = _observed(value)
        self.warn(FieldWarning(path=self._path(name), expected=expected, observed=observed))

    def has(self, name: str) -> bool:
        return name in self.source

    def string(self, *names: str) -> str:
        name, value = self._lookup(names)
        if _is_text(value):
            return value
        self._degrade(name, "string", value)
        return ""

    def number(self, *names: str) -> float:
        name, value = self._lookup(names)
        number = _as_float(value)
        if number is not None:
            return number
        self._degrade(name, "number", value)
        return 0.0

    def integer(self, *names: str) -> int:
        # JSON не различает int и float, дробную часть отбрасываем
        name, value = self._lookup(names)
        if _is_int64(value):
            return int(value)
        self._degrade_integer(name, value)
        return 0

    def optional_integer(self, *names: str) -> Optional[int]:
        """Отсутствие поля тут нормально и без warning. Не тот тип -> warning + None."""
        name, value = self._lookup(names)
        if value is _MISSING:
            return None
        if _is_int64(value):
            return int(value)
        self._degrade_integer(name, value)
        return None

    def _degrade_integer(self, name: str, value: Any) -> None:
        # конечное, но за пределами int64
        observed = "out-of-range number" if _is_number(value) else None
        self._degrade(name, "number", value, observed)

    def optional_string(self, *names: str) -> str:
        name, value = self._lookup(names)
        if value is _MISSING:
            return ""
        return self.string(name)

    def strings(self, *names: str) -> List[str]:
        name, value = self._lookup(names)
        if isinstance(value, list) and all(_is_text(v) for v in value):
            return list(value)
        self._degrade(name, "array of strings", value)
        return []

    def array(self, *names: str) -> List[Any]:
        name, value = self._lookup(names)
        if isinstance(value, list):
            return list(value)
        self._degrade(name, "array", value)
        return []

    def timestamp(self, *names: str) -> Optional[datetime]:
        """RFC 3339 строка -> datetime. Всё остальное -> None."""
        name, value = self._lookup(names)
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                pass
        self._degrade(name, "timestamp", value)
        return None

    def object(self, *names: str) -> "FieldExtractor":
        name, value = self._lookup(names)
        if isinstance(value, dict):
            return FieldExtractor(value, self.warn, path=self._path(name))
        self._degrade(name, "object", value)
        empty: Dict[str, Any] = {}
        return FieldExtractor(empty, self.warn, path=self._path(name))
