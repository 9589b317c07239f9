"""Unit tests for federated fan-out, retries, status and cost calculation."""
import json

import httpx
import pytest

from launchpad.errors import ErrorKind, ServiceError, utc_timestamp
from launchpad.models.submission import Submission
from launchpad.repositories.federation_repository import FederationRepository
from launchpad.repositories.submission_repository import SubmissionRepository
from launchpad.schemas.federation import DirectoryTarget
from launchpad.services.federated_submission_service import FederatedSubmissionService
from tests.helpers import sample_metadata

GOOD = "https://good.example.org"
BAD = "https://bad.example.org"


def _remote(request: httpx.Request) -> httpx.Response:
    if request.url.host == "good.example.org":
        body = json.loads(request.content)
        assert request.url.path == "/api/federation/submit"
        assert body["source_instance"] == "launchpadder"
        return httpx.Response(200, json={"success": True, "submission_id": f"remote-{body['directory_id']}"})
    return httpx.Response(500, json={"success": False})


@pytest.fixture
def submission(db_path, make_profile):
    make_profile("maker")
    make_profile("other")
    now = utc_timestamp()
    return SubmissionRepository(db_path).insert(
        Submission(
            id="sub-1",
            url="https://example.com/product",
            submitted_by="maker",
            original_meta=sample_metadata(),
            rewritten_meta={"title": "Sharper", "description": "Better", "tags": []},
            tags=["saas"],
            created_at=now,
            updated_at=now,
        )
    )


def _service(db_path, handler=_remote) -> FederatedSubmissionService:
    return FederatedSubmissionService(
        FederationRepository(db_path),
        SubmissionRepository(db_path),
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_partial_failure_records_each_target(db_path, submission):
    service = _service(db_path)

    result = await service.create_federated_submission(
        "sub-1",
        [DirectoryTarget(id="alpha", instance_url=GOOD), DirectoryTarget(id="beta", instance_url=BAD)],
        "stripe",
        "maker",
    )

    assert result.synced == 1
    assert result.failed == 1
    by_dir = {r.directory_id: r for r in result.results}
    assert by_dir["alpha"].remote_submission_id == "remote-alpha"
    assert by_dir["beta"].error == "HTTP 500: Internal Server Error"

    status = service.get_status("sub-1", "maker")
    assert status["summary"] == {"total": 2, "pending": 0, "synced": 1, "failed": 1}


@pytest.mark.asyncio
async def test_local_directories_sync_without_network(db_path, submission):
    def handler(request):
        raise AssertionError("no remote call expected")

    result = await _service(db_path, handler).create_federated_submission(
        "sub-1", [DirectoryTarget(id="main"), DirectoryTarget(id="nowhere")], "crypto", "maker"
    )

    by_dir = {r.directory_id: r for r in result.results}
    assert by_dir["main"].status == "synced"
    assert by_dir["main"].remote_submission_id == "sub-1"
    assert by_dir["nowhere"].status == "failed"
    assert by_dir["nowhere"].error == "Unknown directory: nowhere"


@pytest.mark.asyncio
async def test_remote_rejection_uses_remote_error(db_path, submission):
    def handler(request):
        return httpx.Response(200, json={"success": False, "error": "Directory closed"})

    result = await _service(db_path, handler).create_federated_submission(
        "sub-1", [DirectoryTarget(id="x", instance_url=GOOD)], "stripe", "maker"
    )
    assert result.results[0].error == "Directory closed"


@pytest.mark.asyncio
async def test_connection_error_marks_target_failed(db_path, submission):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    result = await _service(db_path, handler).create_federated_submission(
        "sub-1", [DirectoryTarget(id="x", instance_url=GOOD)], "stripe", "maker"
    )
    assert result.failed == 1
    assert result.results[0].error == "connection refused"


@pytest.mark.asyncio
async def test_retry_only_resends_failed_targets(db_path, submission):
    calls = []
    healthy = {"value": False}

    def handler(request):
        calls.append(request.url.host)
        if request.url.host == "bad.example.org" and not healthy["value"]:
            return httpx.Response(503)
        return httpx.Response(200, json={"success": True, "submission_id": "r1"})

    service = _service(db_path, handler)
    await service.create_federated_submission(
        "sub-1",
        [DirectoryTarget(id="alpha", instance_url=GOOD), DirectoryTarget(id="beta", instance_url=BAD)],
        "stripe",
        "maker",
    )
    calls.clear()
    healthy["value"] = True

    retried = await service.retry_failed("sub-1", "maker")

    assert calls == ["bad.example.org"]
    assert [r.directory_id for r in retried.results] == ["beta"]
    assert retried.synced == 1
    assert service.get_status("sub-1", "maker")["summary"]["synced"] == 2

    with pytest.raises(ServiceError) as exc_info:
        await service.retry_failed("sub-1", "maker")
    assert exc_info.value.message == "No failed submissions to retry"


@pytest.mark.asyncio
async def test_resending_to_same_directory_conflicts(db_path, submission):
    service = _service(db_path)
    await service.create_federated_submission("sub-1", [DirectoryTarget(id="main")], "stripe", "maker")

    with pytest.raises(ServiceError) as exc_info:
        await service.create_federated_submission("sub-1", [DirectoryTarget(id="main")], "stripe", "maker")
    assert exc_info.value.kind == ErrorKind.CONFLICT
    assert exc_info.value.message == "Submission already sent to: main"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "directories,payment,user,kind,message",
    [
        ([], "stripe", "maker", ErrorKind.VALIDATION_ERROR, "At least one directory must be selected"),
        ([DirectoryTarget(id="main")], "paypal", "maker", ErrorKind.VALIDATION_ERROR,
         "Invalid payment method. Must be stripe or crypto"),
        ([DirectoryTarget(id="main")], "stripe", "other", ErrorKind.NOT_FOUND,
         "Submission not found or access denied"),
        ([DirectoryTarget(id="main")], "stripe", None, ErrorKind.UNAUTHORIZED, "Authentication required"),
    ],
)
async def test_create_validation(db_path, submission, directories, payment, user, kind, message):
    with pytest.raises(ServiceError) as exc_info:
        await _service(db_path).create_federated_submission("sub-1", directories, payment, user)
    assert exc_info.value.kind == kind
    assert exc_info.value.message == message


@pytest.mark.asyncio
async def test_listing_paginates_user_rows(db_path, submission):
    service = _service(db_path)
    await service.create_federated_submission(
        "sub-1", [DirectoryTarget(id="main"), DirectoryTarget(id="tools"), DirectoryTarget(id="ai")], "stripe", "maker"
    )

    page = service.list_federated_submissions("maker", limit=2)
    assert len(page["data"]) == 2
    assert page["pagination"] == {"total": 3, "limit": 2, "offset": 0, "has_more": True}
    assert service.list_federated_submissions("other")["pagination"]["total"] == 0
    assert service.list_federated_submissions("maker", status="failed")["data"] == []


def test_status_requires_ownership(db_path, submission):
    with pytest.raises(ServiceError) as exc_info:
        _service(db_path).get_status("sub-1", "other")
    assert exc_info.value.kind == ErrorKind.NOT_FOUND


def test_calculate_cost():
    cost = FederatedSubmissionService.calculate_cost(["main", "tools"])
    assert cost["total_usd"] == 8.0
    assert cost["currency"] == "USD"
    assert cost["breakdown"] == [
        {"directory_id": "main", "cost_usd": 5.0},
        {"directory_id": "tools", "cost_usd": 3.0},
    ]

    with pytest.raises(ServiceError) as exc_info:
        FederatedSubmissionService.calculate_cost(["main", "unknown"])
    assert exc_info.value.kind == ErrorKind.VALIDATION_ERROR
