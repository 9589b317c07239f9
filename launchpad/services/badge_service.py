import hashlib
import hmac
import json
import logging
import uuid

from launchpad.errors import ErrorKind, ServiceError, utc_timestamp
from launchpad.models.badge import BadgeDefinition, BadgeVerification, UserBadge
from launchpad.repositories.base import AbstractBadgeRepository, AbstractProfileRepository

logger = logging.getLogger(__name__)

ASSIGNMENT_TYPES = ("automatic", "manual", "verified")


def compute_signature(payload: dict, public_key: str) -> str:
    """
    sha256(sha256(json of payload) + public_key), hex encoded.

    The payload is serialized the way JSON.stringify does it: compact, in
    insertion order, non-ASCII text unescaped.
    """
    canonical = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    payload_digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return hashlib.sha256((payload_digest + public_key).encode("utf-8")).hexdigest()


class BadgeService:
    def __init__(self, repository: AbstractBadgeRepository, profiles: AbstractProfileRepository) -> None:
        self._repository = repository
        self._profiles = profiles

    def _require_admin(self, actor_id: str | None) -> None:
        if not actor_id:
            raise ServiceError(ErrorKind.UNAUTHORIZED, "Authentication required")
        if not self._profiles.is_admin(actor_id):
            raise ServiceError(ErrorKind.FORBIDDEN, "Admin privileges required")

    def _definition(self, slug: str) -> BadgeDefinition:
        definition = self._repository.get_definition(slug)
        if definition is None or not definition.is_active:
            raise ServiceError(ErrorKind.NOT_FOUND, "Badge not found")
        return definition

    def list_badges(self, category: str | None = None) -> list[BadgeDefinition]:
        return self._repository.list_definitions(category)

    def get_badge(self, slug: str) -> dict:
        definition = self._definition(slug)
        return {**definition.to_dict(), "award_count": self._repository.count_active_awards(definition.id)}

    def list_user_badges(self, user_id: str) -> list[UserBadge]:
        if self._profiles.get(user_id) is None:
            raise ServiceError(ErrorKind.NOT_FOUND, "User not found")
        return self._repository.list_user_badges(user_id)

    def award_badge(
        self,
        user_id: str,
        slug: str,
        actor_id: str | None,
        reason: str | None = None,
        assignment_type: str = "manual",
    ) -> UserBadge:
        self._require_admin(actor_id)
        if assignment_type not in ASSIGNMENT_TYPES:
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "Invalid assignment type")
        if self._profiles.get(user_id) is None:
            raise ServiceError(ErrorKind.NOT_FOUND, "User not found")

        definition = self._definition(slug)
        if definition.max_awards is not None and self._repository.count_active_awards(definition.id) >= definition.max_awards:
            raise ServiceError(ErrorKind.CONFLICT, "Badge award limit reached")

        awarded = self._repository.award(
            UserBadge(
                id=str(uuid.uuid4()),
                user_id=user_id,
                badge_id=definition.id,
                earned_at=utc_timestamp(),
                assignment_type=assignment_type,
                assigned_by=actor_id,
                assignment_reason=reason,
            )
        )
        logger.info("[badge] awarded | user_id=%s | badge=%s | by=%s", user_id, slug, actor_id)
        return awarded

    def revoke_badge(self, user_id: str, slug: str, actor_id: str | None, reason: str | None) -> UserBadge:
        self._require_admin(actor_id)
        if not reason or not reason.strip():
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "Revocation reason is required")
        definition = self._definition(slug)

        revoked = self._repository.revoke(user_id, definition.id, actor_id, reason.strip())
        if revoked is None:
            raise ServiceError(ErrorKind.NOT_FOUND, "User does not have this badge")
        logger.info("[badge] revoked | user_id=%s | badge=%s | by=%s", user_id, slug, actor_id)
        return revoked

    def verify_badge(
        self, user_badge_id: str, signature_hash: str, public_key: str, payload: dict | None = None
    ) -> BadgeVerification:
        if not user_badge_id or not signature_hash or not public_key:
            raise ServiceError(
                ErrorKind.VALIDATION_ERROR, "user_badge_id, signature_hash and public_key are required"
            )
        user_badge = self._repository.get_user_badge(user_badge_id)
        if user_badge is None:
            raise ServiceError(ErrorKind.NOT_FOUND, "Badge award not found")

        payload = payload or {}
        expected = compute_signature(payload, public_key)
        is_valid = user_badge.status == "active" and hmac.compare_digest(expected, signature_hash.lower())

        verification = self._repository.record_verification(
            BadgeVerification(
                id=str(uuid.uuid4()),
                user_badge_id=user_badge_id,
                signature_hash=signature_hash,
                public_key=public_key,
                is_valid=is_valid,
                verified_at=utc_timestamp(),
                verification_payload=payload,
            )
        )
        logger.info("[badge] verification | user_badge_id=%s | valid=%s", user_badge_id, is_valid)
        return verification
