from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from launchpad.errors import utc_timestamp
from launchpad.schemas.federation import TokenRequest
from launchpad.schemas.submission import SubmissionListParams
from launchpad.services.auth_service import USER_TOKEN

router = APIRouter(prefix="/api/v1", tags=["v1"])


@router.post("/auth/token")
def exchange_token(request: Request, payload: TokenRequest | None = None) -> JSONResponse:
    exchange = request.app.state.auth_service.exchange_api_key(payload.api_key if payload else None)
    return JSONResponse(
        content={
            "success": True,
            "token": exchange.token,
            "token_type": "Bearer",
            "expires_in": exchange.expires_in,
            "partner_info": exchange.partner_info,
            "timestamp": utc_timestamp(),
        },
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )


@router.get("/submissions")
def list_submissions(
    request: Request,
    page: int = 1,
    limit: int = 10,
    tags: str | None = None,
    search: str = "",
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    params = SubmissionListParams(
        page=page,
        limit=limit,
        status="approved",
        tags=[tag.strip() for tag in (tags or "").split(",") if tag.strip()],
        search=search,
        sort_by=sort_by,
        sort_order="asc" if sort_order.lower() == "asc" else "desc",
    )
    page_data = request.app.state.submission_service.get_submissions(params)
    return {"success": True, **page_data, "timestamp": utc_timestamp()}


@router.get("/submissions/{submission_id}")
def get_submission(submission_id: str, request: Request) -> dict:
    submission = request.app.state.submission_service.get_submission_by_id(submission_id, statuses=("approved",))
    return {"success": True, "data": submission.to_dict(), "timestamp": utc_timestamp()}


@router.get("/me")
def whoami(request: Request) -> dict:
    auth = request.state.auth
    quota = request.state.rate_limit
    data = {
        "type": auth.type,
        "identity": auth.identity,
        "tier": auth.tier,
        "rate_limit": {"limit": quota.limit, "remaining": quota.remaining, "reset": quota.reset},
    }
    if auth.type == USER_TOKEN:
        data["free_submissions"] = request.app.state.submission_service.daily_status(auth.subject_id)
    return {"success": True, "data": data, "timestamp": utc_timestamp()}
