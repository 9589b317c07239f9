import asyncio
import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from urllib.parse import urlparse

import httpx

from launchpad.config import Settings
from launchpad.errors import ErrorKind, ServiceError, utc_timestamp
from launchpad.models.federation import FederationInstance
from launchpad.repositories.base import AbstractFederationRepository
from launchpad.services.rate_limiter import TIER_LIMITS

logger = logging.getLogger(__name__)

SUPPORTED_FEATURES = [
    "submissions",
    "directories",
    "metadata_extraction",
    "ai_enhancement",
    "crypto_payments",
    "moderation",
]
API_ENDPOINTS = [
    "/api/federation/health",
    "/api/federation/info",
    "/api/federation/directories",
    "/api/federation/instances",
    "/api/federation/submit",
]
SUBMISSION_FORMATS = ["url", "metadata", "enhanced_metadata"]
PAYMENT_METHODS = ["stripe", "crypto"]

HEALTH_PATH = "/api/federation/health"
INFO_PATH = "/api/federation/info"
DIRECTORIES_PATH = "/api/federation/directories"
FEDERATION_HEADERS = {"Accept": "application/json", "User-Agent": "LaunchPadder-Federation/1.0"}

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# (id, name, description, category, submission_count, days since update, fee, min description, moderated, tags)
_CATALOG = [
    ("main", "Main Directory", "Primary product and service directory", "products",
     1250, 0, 5.00, 50, True, ["products", "services", "startups"]),
    ("startups", "Startup Showcase", "Directory for early-stage startups and new ventures", "startups",
     890, 1, 10.00, 100, True, ["startups", "ventures", "funding"]),
    ("tools", "Developer Tools", "Directory for developer tools and productivity software", "tools",
     567, 2, 3.00, 30, False, ["tools", "development", "productivity"]),
    ("ai", "AI & Machine Learning", "Directory for AI tools, models, and ML platforms", "ai",
     423, 3, 7.50, 75, True, ["ai", "machine-learning", "automation"]),
    ("design", "Design Resources", "Directory for design tools, assets, and creative resources", "design",
     334, 4, 4.00, 40, False, ["design", "creative", "assets"]),
]


def _directory(entry: tuple) -> dict:
    dir_id, name, description, category, count, age_days, fee, min_length, moderated, tags = entry
    return {
        "id": dir_id,
        "name": name,
        "description": description,
        "category": category,
        "submission_count": count,
        "last_updated": (datetime.now(timezone.utc) - timedelta(days=age_days)).isoformat(),
        "submission_fee": {"usd": fee, "crypto_supported": True},
        "requirements": {
            "url_required": True,
            "description_min_length": min_length,
            "moderation_required": moderated,
        },
        "tags": tags,
        "status": "active",
        "instance_url": None,
    }


def local_directories() -> dict[str, dict]:
    return {entry[0]: _directory(entry) for entry in _CATALOG}


class FederationDiscoveryService:
    def __init__(
        self,
        repository: AbstractFederationRepository,
        config: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._repository = repository
        self._config = config
        self._transport = transport

    def health(self, uptime: float) -> dict:
        """Liveness document other instances read when verifying this one."""
        return {
            "status": "healthy",
            "version": self._config.VERSION,
            "api_version": "1.0",
            "instance_name": self._config.INSTANCE_NAME,
            "timestamp": utc_timestamp(),
            "uptime": uptime,
            "federation_enabled": True,
        }

    def federation_info(self) -> dict:
        return {
            "federation_enabled": True,
            "instance_name": self._config.INSTANCE_NAME,
            "instance_description": "API-driven launch platform for federated directory submissions",
            "version": self._config.VERSION,
            "api_version": "1.0",
            "supported_features": SUPPORTED_FEATURES,
            "api_endpoints": API_ENDPOINTS,
            "submission_formats": SUBMISSION_FORMATS,
            "payment_methods": PAYMENT_METHODS,
            "rate_limits": {
                tier: {"requests": limit.requests, "window_seconds": limit.window}
                for tier, limit in TIER_LIMITS.items()
            },
            "contact": {
                "admin_email": self._config.ADMIN_EMAIL,
                "support_url": self._config.SUPPORT_URL,
                "api_docs": self._config.API_DOCS_URL,
            },
            "federation": {
                "accepts_submissions": True,
                "shares_directories": True,
                "requires_authentication": False,
                "supports_webhooks": False,
            },
            "timestamp": utc_timestamp(),
        }

    def list_directories(self, category: str | None = None, limit: int = 50, offset: int = 0) -> dict:
        directories = list(local_directories().values())
        if category:
            directories = [d for d in directories if d["category"] == category]
        directories.sort(key=lambda d: d["submission_count"], reverse=True)

        limit = min(max(1, limit), 100)
        offset = max(0, offset)
        total = len(directories)
        return {
            "directories": directories[offset: offset + limit],
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "has_more": offset + limit < total,
            },
            "federation_info": {
                "instance_name": self._config.INSTANCE_NAME,
                "accepts_submissions": True,
                "submission_endpoint": "/api/federation/submit",
                "supported_formats": SUBMISSION_FORMATS,
                "payment_methods": PAYMENT_METHODS,
            },
            "timestamp": utc_timestamp(),
        }

    def get_known_instances(self, status: str | None = "active", limit: int | None = 50) -> list[dict]:
        return [instance.public_info() for instance in self._repository.list_instances(status, limit)]

    async def register_instance(
        self,
        name: str | None,
        base_url: str | None,
        admin_email: str | None,
        description: str | None = None,
    ) -> dict:
        if not name or not name.strip():
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "Instance name is required")
        if not base_url or not base_url.strip():
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "Instance base_url is required")
        if not admin_email or not admin_email.strip():
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "Admin email is required")

        parsed = urlparse(base_url.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "Invalid URL format for base_url")
        if not _EMAIL_PATTERN.match(admin_email.strip()):
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "Invalid email format for admin_email")

        instance = self._repository.create_instance(
            FederationInstance(
                id=str(uuid.uuid4()),
                name=name.strip(),
                base_url=base_url.strip().rstrip("/"),
                admin_email=admin_email.strip(),
                description=(description or "").strip(),
                status="pending",
            )
        )
        logger.info("[federation] instance registered | id=%s | base_url=%s", instance.id, instance.base_url)

        verification = await self.verify_instance(instance.base_url)
        if verification["healthy"] and verification["compatible"]:
            instance = self._repository.update_instance_status(instance.id, "active") or instance
            logger.info("[federation] instance verified | id=%s", instance.id)
        else:
            logger.info(
                "[federation] instance left pending | id=%s | error=%s", instance.id, verification["error"]
            )

        return {"instance": instance.public_info(), "verification": verification}

    async def verify_instance(self, base_url: str) -> dict:
        """Probe a remote instance's health and federation info endpoints."""
        result = {
            "healthy": False,
            "compatible": False,
            "federation_enabled": False,
            "version": None,
            "api_version": None,
            "error": None,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._config.FEDERATION_TIMEOUT, transport=self._transport
            ) as client:
                health = await client.get(f"{base_url}{HEALTH_PATH}")
                if health.status_code >= 400:
                    raise ValueError(f"Health check failed: {health.status_code}")
                health_data = health.json()
                result["healthy"] = health_data.get("status") == "healthy"
                result["version"] = health_data.get("version")
                result["api_version"] = health_data.get("api_version")

                info = await client.get(f"{base_url}{INFO_PATH}")
                if info.status_code < 400:
                    info_data = info.json()
                    result["federation_enabled"] = info_data.get("federation_enabled") is True
                    result["compatible"] = result["federation_enabled"] and "submissions" in (
                        info_data.get("supported_features") or []
                    )
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            result["error"] = str(exc) or exc.__class__.__name__
            logger.warning("[federation] verification failed | base_url=%s | error=%s", base_url, result["error"])
        return result

    async def discover_directories(
        self, category: str | None = None, limit: int | None = None, active_only: bool = True
    ) -> list[dict]:
        """
        Collect the directories every known instance shares.

        Each directory is tagged with the instance it came from. An instance
        that is down or answers with garbage is skipped.
        """
        instances = self._repository.list_instances("active" if active_only else None, None)
        semaphore = asyncio.Semaphore(max(1, self._config.FEDERATION_CONCURRENCY))

        async with httpx.AsyncClient(
            timeout=self._config.FEDERATION_TIMEOUT, headers=FEDERATION_HEADERS, transport=self._transport
        ) as client:

            async def collect(instance: FederationInstance) -> list[dict]:
                async with semaphore:
                    return await self._fetch_instance_directories(client, instance)

            batches = await asyncio.gather(*(collect(instance) for instance in instances))

        directories = [directory for batch in batches for directory in batch]
        if category:
            directories = [d for d in directories if d.get("category") == category]
        directories.sort(key=lambda d: d.get("submission_count") or 0, reverse=True)
        if limit and limit > 0:
            directories = directories[:limit]
        logger.info(
            "[federation] directories discovered | instances=%d | directories=%d",
            len(instances), len(directories),
        )
        return directories

    async def _fetch_instance_directories(self, client: httpx.AsyncClient, instance: FederationInstance) -> list[dict]:
        try:
            response = await client.get(f"{instance.base_url}{DIRECTORIES_PATH}")
            if response.status_code >= 400:
                raise ValueError(f"HTTP {response.status_code}: {response.reason_phrase}")
            data = response.json()
            if not isinstance(data, dict):
                raise ValueError("Unexpected directories payload")
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "[federation] directory fetch failed | instance=%s | error=%s",
                instance.name, str(exc) or exc.__class__.__name__,
            )
            return []

        return [
            {
                **directory,
                "instance_id": instance.id,
                "instance_name": instance.name,
                "instance_url": instance.base_url,
                "federation_source": True,
            }
            for directory in data.get("directories") or []
            if isinstance(directory, dict)
        ]

    async def ping_instances(self) -> list[dict]:
        """Re-verify every known instance and mark it active or inactive."""
        instances = self._repository.list_instances(None, None)
        semaphore = asyncio.Semaphore(max(1, self._config.FEDERATION_CONCURRENCY))

        async def ping(instance: FederationInstance) -> dict:
            async with semaphore:
                verification = await self.verify_instance(instance.base_url)
            status = "active" if verification["healthy"] and verification["compatible"] else "inactive"
            self._repository.update_instance_status(instance.id, status)
            return {
                "instance_id": instance.id,
                "instance_name": instance.name,
                "instance_url": instance.base_url,
                "status": status,
                "healthy": verification["healthy"],
                "compatible": verification["compatible"],
                "federation_enabled": verification["federation_enabled"],
                "error": verification["error"],
            }

        results = await asyncio.gather(*(ping(instance) for instance in instances))
        logger.info(
            "[federation] instances pinged | total=%d | active=%d",
            len(results), sum(1 for r in results if r["status"] == "active"),
        )
        return results
