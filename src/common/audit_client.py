# common/audit_client.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger("common.audit")


class AuditClient:
    """
    Лёгкий клиент для отправки событий в audit-сервис.
    Ошибки отправки не пробрасываем: аудит не должен ронять приём отчётов.
    """

    def __init__(
        self,
        service_name: str,
        base_url: str = "http://localhost:8003",
        timeout: float = 1.0,
        enabled: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.service_name = service_name
        self.base_url = base_url
        self.timeout = timeout
        self.enabled = enabled
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def build_event(
        self,
        level: str,
        message: str,
        *,
        trace_id: Optional[str] = None,
        service_tag: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": self.service_name,
            "level": level.upper(),
            "message": message,
            "trace_id": trace_id,
            "service_tag": service_tag,
            "context": context or {},
        }

    async def log(
        self,
        level: str,
        message: str,
        *,
        trace_id: Optional[str] = None,
        service_tag: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """True, если audit-сервис принял событие."""
        if not self.enabled:
            return False

        payload = self.build_event(
            level, message, trace_id=trace_id, service_tag=service_tag, context=context
        )
        try:
            client = await self._get_client()
            resp = await client.post("/audit/log", json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.debug("Audit event dropped: %r", exc)
            return False
        return True

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
