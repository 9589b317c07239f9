import asyncio
import logging
import resource
import sys
import time

import httpx

from launchpad.config import Settings
from launchpad.db.connection import ping
from launchpad.errors import utc_timestamp

logger = logging.getLogger(__name__)


class HealthService:
    def __init__(
        self,
        config: Settings,
        started_at: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._started_at = started_at if started_at is not None else time.monotonic()
        self._transport = transport

    def uptime(self) -> float:
        return round(time.monotonic() - self._started_at, 3)

    def basic(self) -> dict:
        return {
            "status": "healthy",
            "timestamp": utc_timestamp(),
            "uptime": self.uptime(),
            "version": self._config.VERSION,
        }

    async def detailed(self) -> tuple[dict, int]:
        """Run every check. Returns the report and the HTTP status to send with it."""
        checks = {
            "database": await self._check_database(),
            "external_api": await self._check_external_api(),
            "memory": self._check_memory(),
            "uptime": {"status": "ok", "seconds": self.uptime()},
        }

        if checks["database"]["status"] != "ok":
            status = "unhealthy"
        elif any(check["status"] == "error" for check in checks.values()):
            status = "degraded"
        else:
            status = "healthy"

        report = {**self.basic(), "status": status, "checks": checks}
        return report, 503 if status == "unhealthy" else 200

    async def _check_database(self) -> dict:
        started = time.monotonic()
        try:
            ok = await asyncio.to_thread(ping, self._config.DB_PATH)
        except Exception as exc:
            logger.error("[health] database check failed | error=%s", exc)
            return {"status": "error", "error": str(exc)}
        elapsed = round((time.monotonic() - started) * 1000, 1)
        return {"status": "ok" if ok else "error", "response_time_ms": elapsed}

    async def _check_external_api(self) -> dict:
        if not self._config.ai_enabled:
            return {"status": "skipped", "reason": "AI rewriting disabled"}
        started = time.monotonic()
        try:
            async with httpx.AsyncClient(
                timeout=self._config.HEALTH_CHECK_TIMEOUT, transport=self._transport
            ) as client:
                response = await client.get(self._config.OPENAI_BASE_URL)
        except httpx.HTTPError as exc:
            logger.warning("[health] external api unreachable | error=%s", exc)
            return {"status": "error", "error": str(exc) or exc.__class__.__name__}
        elapsed = round((time.monotonic() - started) * 1000, 1)
        status = "ok" if response.status_code < 500 else "error"
        return {"status": status, "http_status": response.status_code, "response_time_ms": elapsed}

    @staticmethod
    def _check_memory() -> dict:
        usage = resource.getrusage(resource.RUSAGE_SELF)
        # ru_maxrss is kilobytes on Linux and bytes on macOS
        divisor = 1024 * 1024 if sys.platform == "darwin" else 1024
        return {"status": "ok", "max_rss_mb": round(usage.ru_maxrss / divisor, 1)}
