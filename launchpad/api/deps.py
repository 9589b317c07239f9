from fastapi import Depends, Request

from launchpad.errors import ErrorKind, ServiceError
from launchpad.services.auth_service import USER_TOKEN


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def current_user_id(request: Request) -> str | None:
    """Resolve the caller from a user bearer token. None when no token was sent."""
    token = bearer_token(request)
    if token is None:
        return None
    auth = request.app.state.auth_service.verify_bearer(token)
    if auth.type != USER_TOKEN:
        raise ServiceError(ErrorKind.UNAUTHORIZED, "User token required")
    return auth.subject_id


def require_user_id(user_id: str | None = Depends(current_user_id)) -> str:
    if not user_id:
        raise ServiceError(ErrorKind.UNAUTHORIZED, "Authentication required")
    return user_id


def require_admin_id(request: Request, user_id: str = Depends(require_user_id)) -> str:
    if not request.app.state.profile_repository.is_admin(user_id):
        raise ServiceError(ErrorKind.FORBIDDEN, "Admin privileges required")
    return user_id
