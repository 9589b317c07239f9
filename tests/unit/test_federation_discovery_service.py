"""Unit tests for instance verification, cross-instance discovery and pinging."""
import httpx
import pytest

from launchpad.repositories.federation_repository import FederationRepository
from launchpad.services.federation_discovery_service import FederationDiscoveryService

REMOTE_DIRECTORIES = {
    "alpha.example.org": [
        {"id": "alpha-main", "name": "Alpha Main", "category": "products", "submission_count": 40},
        {"id": "alpha-ai", "name": "Alpha AI", "category": "ai", "submission_count": 900},
    ],
    "beta.example.org": [
        {"id": "beta-tools", "name": "Beta Tools", "category": "tools", "submission_count": 120},
    ],
}


def _remote(request: httpx.Request) -> httpx.Response:
    host = request.url.host
    if host == "down.example.org":
        raise httpx.ConnectError("connection refused", request=request)
    if host == "broken.example.org":
        return httpx.Response(500)
    if request.url.path == "/api/federation/directories":
        return httpx.Response(200, json={"directories": REMOTE_DIRECTORIES.get(host, [])})
    if request.url.path == "/api/federation/health":
        return httpx.Response(200, json={"status": "healthy", "version": "1.0.0", "api_version": "1.0"})
    if request.url.path == "/api/federation/info":
        features = [] if host == "legacy.example.org" else ["submissions", "directories"]
        return httpx.Response(200, json={"federation_enabled": True, "supported_features": features})
    return httpx.Response(404)


def _service(db_path, config, handler=_remote) -> FederationDiscoveryService:
    return FederationDiscoveryService(FederationRepository(db_path), config, transport=httpx.MockTransport(handler))


# verification

@pytest.mark.asyncio
async def test_verify_instance_reads_health_and_info(db_path, config):
    result = await _service(db_path, config).verify_instance("https://alpha.example.org")
    assert result == {
        "healthy": True,
        "compatible": True,
        "federation_enabled": True,
        "version": "1.0.0",
        "api_version": "1.0",
        "error": None,
    }


@pytest.mark.asyncio
async def test_verify_instance_reports_failed_health(db_path, config):
    result = await _service(db_path, config).verify_instance("https://broken.example.org")
    assert result["healthy"] is False
    assert result["error"] == "Health check failed: 500"


# discovery

@pytest.mark.asyncio
async def test_discover_tags_directories_with_their_instance(db_path, config, make_instance):
    make_instance("alpha", "https://alpha.example.org")
    make_instance("beta", "https://beta.example.org")

    directories = await _service(db_path, config).discover_directories()

    assert [d["id"] for d in directories] == ["alpha-ai", "beta-tools", "alpha-main"]
    beta = directories[1]
    assert beta["instance_id"] == "beta"
    assert beta["instance_name"] == "Instance beta"
    assert beta["instance_url"] == "https://beta.example.org"
    assert beta["federation_source"] is True


@pytest.mark.asyncio
async def test_discover_skips_unreachable_and_inactive_instances(db_path, config, make_instance):
    make_instance("alpha", "https://alpha.example.org")
    make_instance("down", "https://down.example.org")
    make_instance("broken", "https://broken.example.org")
    make_instance("beta", "https://beta.example.org", status="pending")
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.host)
        return _remote(request)

    directories = await _service(db_path, config, handler).discover_directories()

    assert {d["instance_id"] for d in directories} == {"alpha"}
    assert "beta.example.org" not in requested


@pytest.mark.asyncio
async def test_discover_filters_by_category_and_limits(db_path, config, make_instance):
    make_instance("alpha", "https://alpha.example.org")
    make_instance("beta", "https://beta.example.org")
    service = _service(db_path, config)

    assert [d["id"] for d in await service.discover_directories(category="tools")] == ["beta-tools"]
    assert [d["id"] for d in await service.discover_directories(limit=1)] == ["alpha-ai"]


@pytest.mark.asyncio
async def test_discover_with_no_instances_is_empty(db_path, config):
    assert await _service(db_path, config).discover_directories() == []


# pinging

@pytest.mark.asyncio
async def test_ping_marks_instances_active_or_inactive(db_path, config, make_instance):
    make_instance("alpha", "https://alpha.example.org", status="pending")
    make_instance("down", "https://down.example.org")
    make_instance("legacy", "https://legacy.example.org")

    results = await _service(db_path, config).ping_instances()

    by_id = {r["instance_id"]: r for r in results}
    assert by_id["alpha"]["status"] == "active"
    assert by_id["down"]["status"] == "inactive"
    assert by_id["down"]["error"]
    assert by_id["legacy"]["status"] == "inactive"
    assert by_id["legacy"]["compatible"] is False

    stored = {i.id: i for i in FederationRepository(db_path).list_instances()}
    assert stored["alpha"].status == "active"
    assert stored["alpha"].last_seen is not None
    assert stored["down"].status == "inactive"


def test_health_document(db_path, config):
    body = _service(db_path, config).health(uptime=12.5)
    assert body["status"] == "healthy"
    assert body["federation_enabled"] is True
    assert body["api_version"] == "1.0"
    assert body["uptime"] == 12.5
