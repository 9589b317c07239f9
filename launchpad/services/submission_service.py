import logging
import math
import sqlite3
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from launchpad.errors import ErrorKind, ServiceError
from launchpad.models.submission import Submission
from launchpad.repositories.base import (
    AbstractProfileRepository,
    AbstractSubmissionRepository,
    SubmissionQuery,
)
from launchpad.repositories.submission_repository import DUPLICATE_URL_MESSAGE, SORTABLE_COLUMNS
from launchpad.schemas.submission import SubmissionCreate, SubmissionListParams
from launchpad.services.ai_rewriter import AIRewriter
from launchpad.services.metadata_fetcher import MetadataFetcher

logger = logging.getLogger(__name__)

DAILY_LIMIT_MESSAGE = (
    "Daily free submission limit reached. Please try again tomorrow or choose a paid option."
)
MODERATION_STATUSES = ("approved", "rejected", "pending")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SubmissionService:
    def __init__(
        self,
        repository: AbstractSubmissionRepository,
        profiles: AbstractProfileRepository,
        metadata_fetcher: MetadataFetcher,
        ai_rewriter: AIRewriter | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._repository = repository
        self._profiles = profiles
        self._fetcher = metadata_fetcher
        self._rewriter = ai_rewriter
        self._clock = clock

    async def create_submission(self, payload: SubmissionCreate, user_id: str | None) -> Submission:
        if not user_id:
            raise ServiceError(ErrorKind.UNAUTHORIZED, "Authentication required")

        url = payload.url
        self._fetcher.validate_url(url)
        if self._repository.exists_by_url(url):
            raise ServiceError(ErrorKind.VALIDATION_ERROR, DUPLICATE_URL_MESSAGE)

        day = self._clock().date().isoformat()
        claimed = False
        if payload.submission_type == "free" and not self._profiles.is_admin(user_id):
            if not self._repository.claim_free_slot(user_id, day):
                logger.info("[submission] free limit reached | user_id=%s | day=%s", user_id, day)
                raise ServiceError(ErrorKind.RATE_LIMITED, DAILY_LIMIT_MESSAGE)
            claimed = True

        try:
            submission = await self._build_and_store(payload, user_id)
        except BaseException:
            if claimed:
                self._repository.release_free_slot(user_id, day)
            raise

        if claimed:
            self._repository.attach_free_slot(user_id, day, submission.id)
        logger.info(
            "[submission] created | id=%s | url=%s | type=%s",
            submission.id, submission.url, submission.submission_type,
        )
        return submission

    async def _build_and_store(self, payload: SubmissionCreate, user_id: str) -> Submission:
        original_meta = await self._fetcher.fetch(payload.url)
        rewritten = await self._rewrite(original_meta)

        tags = list(dict.fromkeys([*rewritten.get("tags", []), *payload.tags]))
        images = original_meta.get("images") or {}
        favicons = original_meta.get("favicons") or []
        now = self._clock().isoformat()

        submission = Submission(
            id=str(uuid.uuid4()),
            url=payload.url,
            submitted_by=user_id,
            submission_type=payload.submission_type,
            original_meta=original_meta,
            rewritten_meta=rewritten,
            images={
                "main": images.get("primary") or original_meta.get("image"),
                "favicon": favicons[0]["url"] if favicons else original_meta.get("favicon"),
                "all": images.get("sources", []),
                "favicons": favicons,
            },
            tags=tags,
            status="pending",
            created_at=now,
            updated_at=now,
        )
        return self._repository.insert(submission)

    async def _rewrite(self, metadata: dict) -> dict:
        fallback = {
            "title": metadata.get("title") or "Untitled",
            "description": metadata.get("description") or "No description available",
            "tags": [],
        }
        if self._rewriter is None or not metadata.get("title") or not metadata.get("description"):
            return fallback

        try:
            return await self._rewriter.rewrite_metadata(
                {**metadata, "url": metadata.get("url") or ""}
            )
        except ServiceError as exc:
            logger.warning("[submission] rewrite failed | url=%s | error=%s", metadata.get("url"), exc.message)
            raise ServiceError(ErrorKind.EXTERNAL_SERVICE_ERROR, "AI service temporarily unavailable") from exc

    def get_submissions(self, params: SubmissionListParams) -> dict:
        sort_by = params.sort_by if params.sort_by in SORTABLE_COLUMNS else "created_at"
        query = SubmissionQuery(
            page=params.page,
            limit=params.limit,
            status=None if params.status == "all" else params.status,
            tags=params.tags,
            search=params.search.strip(),
            sort_by=sort_by,
            sort_order=params.sort_order,
            submitted_by=params.submitted_by,
        )
        submissions, total = self._repository.query(query)
        return {
            "data": [submission.to_dict() for submission in submissions],
            "pagination": {
                "page": params.page,
                "limit": params.limit,
                "total": total,
                "totalPages": math.ceil(total / params.limit) if total else 0,
            },
        }

    def get_submission_by_id(self, submission_id: str, statuses: tuple[str, ...] | None = None) -> Submission:
        """Only submissions in statuses (any status when None) are found and counted as viewed."""
        submission = self._repository.get_by_id(submission_id)
        if submission is None or (statuses is not None and submission.status not in statuses):
            raise ServiceError(ErrorKind.NOT_FOUND, "Submission not found")
        try:
            self._repository.increment_view_count(submission_id)
        except sqlite3.Error:
            logger.warning("[submission] view count update failed | id=%s", submission_id)
        return submission

    def update_submission(self, submission_id: str, fields: dict, user_id: str | None) -> Submission:
        if not user_id:
            raise ServiceError(ErrorKind.UNAUTHORIZED, "Authentication required")
        allowed = {key: value for key, value in fields.items() if key in ("rewritten_meta", "tags", "images")}
        if not allowed:
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "No valid fields to update")

        updated = self._repository.update_owned(submission_id, user_id, allowed)
        if updated is None:
            raise ServiceError(
                ErrorKind.NOT_FOUND,
                "Submission not found or you do not have permission to update it",
            )
        logger.info("[submission] updated | id=%s | fields=%s", submission_id, ",".join(sorted(allowed)))
        return updated

    def delete_submission(self, submission_id: str, user_id: str | None) -> None:
        if not user_id:
            raise ServiceError(ErrorKind.UNAUTHORIZED, "Authentication required")
        if not self._repository.delete_owned(submission_id, user_id):
            raise ServiceError(
                ErrorKind.NOT_FOUND,
                "Submission not found or you do not have permission to delete it",
            )
        logger.info("[submission] deleted | id=%s | user_id=%s", submission_id, user_id)

    def moderate_submission(self, submission_id: str, status: str, moderator_id: str | None) -> Submission:
        if not moderator_id:
            raise ServiceError(ErrorKind.UNAUTHORIZED, "Authentication required")
        if not self._profiles.is_admin(moderator_id):
            raise ServiceError(ErrorKind.FORBIDDEN, "Admin privileges required")
        if status not in MODERATION_STATUSES:
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "Invalid moderation status")

        submission = self._repository.set_status(submission_id, status)
        if submission is None:
            raise ServiceError(ErrorKind.NOT_FOUND, "Submission not found")
        logger.info("[submission] moderated | id=%s | status=%s | by=%s", submission_id, status, moderator_id)
        return submission

    def daily_status(self, user_id: str | None) -> dict:
        if not user_id:
            raise ServiceError(ErrorKind.UNAUTHORIZED, "Authentication required")
        now = self._clock()
        is_admin = self._profiles.is_admin(user_id)
        used = 1 if self._repository.free_slot_used(user_id, now.date().isoformat()) else 0
        tomorrow = datetime.combine(now.date() + timedelta(days=1), datetime.min.time(), tzinfo=timezone.utc)
        return {
            "is_admin": is_admin,
            "used_today": used,
            "remaining_today": None if is_admin else 1 - used,
            "can_use_free": is_admin or used == 0,
            "resets_at": tomorrow.isoformat(),
        }
