from fastapi import APIRouter, Depends, Request

from launchpad.api.deps import current_user_id, require_user_id
from launchpad.errors import ErrorKind, ServiceError
from launchpad.schemas.submission import (
    DailyStatus,
    ModerationRequest,
    SubmissionCreate,
    SubmissionListParams,
    SubmissionOut,
    SubmissionPage,
    SubmissionUpdate,
)

router = APIRouter(prefix="/api/submissions", tags=["submissions"])


def _split_tags(tags: str | None) -> list[str]:
    if not tags:
        return []
    return [tag.strip() for tag in tags.split(",") if tag.strip()]


@router.get("", response_model=SubmissionPage)
def list_submissions(
    request: Request,
    page: int = 1,
    limit: int = 10,
    status: str = "approved",
    tags: str | None = None,
    search: str = "",
    sort_by: str = "created_at",
    sort_order: str = "desc",
    my: bool = False,
    user_id: str | None = Depends(current_user_id),
) -> dict:
    if my and not user_id:
        raise ServiceError(ErrorKind.UNAUTHORIZED, "Authentication required")
    params = SubmissionListParams(
        page=page,
        limit=limit,
        status=status,
        tags=_split_tags(tags),
        search=search,
        sort_by=sort_by,
        sort_order="asc" if sort_order.lower() == "asc" else "desc",
        submitted_by=user_id if my else None,
    )
    return request.app.state.submission_service.get_submissions(params)


@router.post("", status_code=201, response_model=SubmissionOut)
async def create_submission(
    payload: SubmissionCreate,
    request: Request,
    user_id: str = Depends(require_user_id),
) -> dict:
    submission = await request.app.state.submission_service.create_submission(payload, user_id)
    return submission.to_dict()


@router.get("/daily-status", response_model=DailyStatus)
def daily_status(request: Request, user_id: str = Depends(require_user_id)) -> dict:
    return request.app.state.submission_service.daily_status(user_id)


@router.get("/{submission_id}", response_model=SubmissionOut)
def get_submission(submission_id: str, request: Request) -> dict:
    return request.app.state.submission_service.get_submission_by_id(submission_id).to_dict()


@router.put("/{submission_id}", response_model=SubmissionOut)
def update_submission(
    submission_id: str,
    payload: SubmissionUpdate,
    request: Request,
    user_id: str = Depends(require_user_id),
) -> dict:
    service = request.app.state.submission_service
    return service.update_submission(submission_id, payload.fields(), user_id).to_dict()


@router.delete("/{submission_id}")
def delete_submission(
    submission_id: str,
    request: Request,
    user_id: str = Depends(require_user_id),
) -> dict:
    request.app.state.submission_service.delete_submission(submission_id, user_id)
    return {"success": True, "message": "Submission deleted successfully"}


@router.post("/{submission_id}/moderate", response_model=SubmissionOut)
def moderate_submission(
    submission_id: str,
    payload: ModerationRequest,
    request: Request,
    user_id: str = Depends(require_user_id),
) -> dict:
    service = request.app.state.submission_service
    return service.moderate_submission(submission_id, payload.status, user_id).to_dict()
