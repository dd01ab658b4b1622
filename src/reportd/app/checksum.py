# reportd/app/checksum.py
import hashlib
import json
from typing import Any


def canonical_json_bytes(payload: Any) -> bytes:
    """
    Канонический вид JSON: ключи отсортированы, без пробелов, UTF-8.
    Порядок ключей в присланном отчёте на результат не влияет.
    Одиночные суррогаты ("\\ud800" в JSON) кодируются как есть, через surrogatepass.
    """
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8", "surrogatepass")


def digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def report_checksum(payload: Any) -> str:
    """Ключ дедупликации. Не для проверки целостности."""
    return digest(canonical_json_bytes(payload))
