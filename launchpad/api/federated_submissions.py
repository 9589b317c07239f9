from fastapi import APIRouter, Depends, Request

from launchpad.api.deps import require_user_id
from launchpad.schemas.federation import CostRequest, DiscoverRequest, FederatedSubmissionCreate

router = APIRouter(prefix="/api/federated-submissions", tags=["federation"])


@router.get("")
def list_federated_submissions(
    request: Request,
    status: str | None = None,
    limit: int = 20,
    offset: int = 0,
    user_id: str = Depends(require_user_id),
) -> dict:
    service = request.app.state.federated_submission_service
    return {"success": True, **service.list_federated_submissions(user_id, status, limit, offset)}


@router.post("", status_code=201)
async def create_federated_submission(
    payload: FederatedSubmissionCreate,
    request: Request,
    user_id: str = Depends(require_user_id),
) -> dict:
    service = request.app.state.federated_submission_service
    result = await service.create_federated_submission(
        payload.submission_id, payload.targets(), payload.payment_method, user_id
    )
    return {"success": True, **result.to_dict()}


@router.post("/discover")
async def discover_directories(
    request: Request,
    payload: DiscoverRequest | None = None,
    user_id: str = Depends(require_user_id),
) -> dict:
    payload = payload or DiscoverRequest()
    directories = await request.app.state.federation_discovery_service.discover_directories(
        payload.category, payload.limit
    )
    return {"success": True, "directories": directories, "total_count": len(directories)}


@router.post("/calculate-cost")
def calculate_cost(payload: CostRequest, request: Request) -> dict:
    service = request.app.state.federated_submission_service
    return {"success": True, **service.calculate_cost(payload.directory_ids())}


@router.get("/{submission_id}/status")
def federated_status(submission_id: str, request: Request, user_id: str = Depends(require_user_id)) -> dict:
    return {"success": True, **request.app.state.federated_submission_service.get_status(submission_id, user_id)}


@router.post("/{submission_id}/retry")
async def retry_federated(submission_id: str, request: Request, user_id: str = Depends(require_user_id)) -> dict:
    result = await request.app.state.federated_submission_service.retry_failed(submission_id, user_id)
    return {"success": True, **result.to_dict()}
