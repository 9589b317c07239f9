from fastapi import APIRouter, Depends, Request

from launchpad.api.deps import require_user_id
from launchpad.schemas.badge import AwardRequest, RevokeRequest, VerifyRequest

router = APIRouter(prefix="/api", tags=["badges"])


@router.get("/badges")
def list_badges(request: Request, category: str | None = None) -> dict:
    badges = request.app.state.badge_service.list_badges(category)
    return {"success": True, "data": [badge.to_dict() for badge in badges]}


@router.post("/badges/verify")
def verify_badge(payload: VerifyRequest, request: Request) -> dict:
    verification = request.app.state.badge_service.verify_badge(
        payload.user_badge_id, payload.signature_hash, payload.public_key, payload.payload
    )
    return {"success": True, "valid": verification.is_valid, "data": verification.to_dict()}


@router.get("/badges/{slug}")
def get_badge(slug: str, request: Request) -> dict:
    return {"success": True, "data": request.app.state.badge_service.get_badge(slug)}


@router.get("/users/{user_id}/badges")
def list_user_badges(user_id: str, request: Request) -> dict:
    badges = request.app.state.badge_service.list_user_badges(user_id)
    return {"success": True, "data": [badge.to_dict() for badge in badges]}


@router.post("/users/{user_id}/badges", status_code=201)
def award_badge(
    user_id: str,
    payload: AwardRequest,
    request: Request,
    actor_id: str = Depends(require_user_id),
) -> dict:
    badge = request.app.state.badge_service.award_badge(
        user_id, payload.slug, actor_id, payload.reason, payload.assignment_type
    )
    return {"success": True, "data": badge.to_dict()}


@router.post("/users/{user_id}/badges/{slug}/revoke")
def revoke_badge(
    user_id: str,
    slug: str,
    payload: RevokeRequest,
    request: Request,
    actor_id: str = Depends(require_user_id),
) -> dict:
    badge = request.app.state.badge_service.revoke_badge(user_id, slug, actor_id, payload.reason)
    return {"success": True, "data": badge.to_dict()}
