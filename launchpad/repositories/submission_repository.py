import json
import logging
import sqlite3

from launchpad.db.connection import get_connection
from launchpad.errors import ErrorKind, ServiceError, utc_timestamp
from launchpad.models.submission import Profile, Submission
from launchpad.repositories.base import (
    AbstractProfileRepository,
    AbstractSubmissionRepository,
    SubmissionQuery,
)

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = ("created_at", "published_at", "votes_count", "views_count", "comments_count")
UPDATABLE_FIELDS = ("rewritten_meta", "tags", "images")

DUPLICATE_URL_MESSAGE = "URL has already been submitted"


def _row_to_submission(row: sqlite3.Row) -> Submission:
    return Submission(
        id=row["id"],
        url=row["url"],
        submitted_by=row["submitted_by"],
        submission_type=row["submission_type"],
        original_meta=json.loads(row["original_meta"] or "{}"),
        rewritten_meta=json.loads(row["rewritten_meta"]) if row["rewritten_meta"] else None,
        images=json.loads(row["images"] or "{}"),
        tags=json.loads(row["tags"] or "[]"),
        status=row["status"],
        votes_count=row["votes_count"],
        comments_count=row["comments_count"],
        views_count=row["views_count"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        published_at=row["published_at"],
    )


class SubmissionRepository(AbstractSubmissionRepository):
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def insert(self, submission: Submission) -> Submission:
        try:
            with get_connection(self._db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO submissions
                        (id, url, submitted_by, submission_type, original_meta,
                         rewritten_meta, images, tags, status, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        submission.id,
                        submission.url,
                        submission.submitted_by,
                        submission.submission_type,
                        json.dumps(submission.original_meta),
                        json.dumps(submission.rewritten_meta) if submission.rewritten_meta is not None else None,
                        json.dumps(submission.images),
                        json.dumps(submission.tags),
                        submission.status,
                        submission.created_at,
                        submission.updated_at,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            if "submissions.url" in str(exc):
                logger.info("[submission] duplicate url rejected | url=%s", submission.url)
                raise ServiceError(ErrorKind.VALIDATION_ERROR, DUPLICATE_URL_MESSAGE) from exc
            raise
        return submission

    def exists_by_url(self, url: str) -> bool:
        with get_connection(self._db_path) as conn:
            row = conn.execute("SELECT 1 FROM submissions WHERE url = ?", (url,)).fetchone()
        return row is not None

    def get_by_id(self, submission_id: str) -> Submission | None:
        with get_connection(self._db_path) as conn:
            row = conn.execute("SELECT * FROM submissions WHERE id = ?", (submission_id,)).fetchone()
        return _row_to_submission(row) if row else None

    def query(self, query: SubmissionQuery) -> tuple[list[Submission], int]:
        clauses: list[str] = []
        params: list = []

        if query.status:
            clauses.append("status = ?")
            params.append(query.status)
        if query.submitted_by:
            clauses.append("submitted_by = ?")
            params.append(query.submitted_by)
        if query.tags:
            placeholders = ", ".join("?" for _ in query.tags)
            clauses.append(
                f"EXISTS (SELECT 1 FROM json_each(submissions.tags) WHERE json_each.value IN ({placeholders}))"
            )
            params.extend(query.tags)
        if query.search:
            pattern = f"%{query.search}%"
            clauses.append(
                """(
                    json_extract(rewritten_meta, '$.title') LIKE ?
                    OR json_extract(rewritten_meta, '$.description') LIKE ?
                    OR json_extract(original_meta, '$.title') LIKE ?
                    OR json_extract(original_meta, '$.description') LIKE ?
                )"""
            )
            params.extend([pattern] * 4)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        sort_by = query.sort_by if query.sort_by in SORTABLE_COLUMNS else "created_at"
        order = "ASC" if query.sort_order == "asc" else "DESC"
        offset = (query.page - 1) * query.limit

        with get_connection(self._db_path) as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM submissions {where}", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM submissions {where} ORDER BY {sort_by} {order}, id {order} LIMIT ? OFFSET ?",
                [*params, query.limit, offset],
            ).fetchall()
        return [_row_to_submission(row) for row in rows], total

    def increment_view_count(self, submission_id: str) -> None:
        with get_connection(self._db_path) as conn:
            conn.execute(
                "UPDATE submissions SET views_count = views_count + 1 WHERE id = ?",
                (submission_id,),
            )

    def update_owned(self, submission_id: str, user_id: str, fields: dict) -> Submission | None:
        assignments = []
        params: list = []
        for name in UPDATABLE_FIELDS:
            if name in fields:
                assignments.append(f"{name} = ?")
                params.append(json.dumps(fields[name]))
        if not assignments:
            return None
        assignments.append("updated_at = ?")
        params.extend([utc_timestamp(), submission_id, user_id])

        with get_connection(self._db_path) as conn:
            cursor = conn.execute(
                f"""
                UPDATE submissions SET {', '.join(assignments)}
                WHERE id = ? AND submitted_by = ? AND status = 'pending'
                """,
                params,
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute("SELECT * FROM submissions WHERE id = ?", (submission_id,)).fetchone()
        return _row_to_submission(row)

    def delete_owned(self, submission_id: str, user_id: str) -> bool:
        with get_connection(self._db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM submissions WHERE id = ? AND submitted_by = ?",
                (submission_id, user_id),
            )
        return cursor.rowcount > 0

    def set_status(self, submission_id: str, status: str) -> Submission | None:
        now = utc_timestamp()
        with get_connection(self._db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE submissions
                SET status = ?,
                    updated_at = ?,
                    published_at = CASE
                        WHEN ? = 'approved' THEN COALESCE(published_at, ?)
                        ELSE published_at
                    END
                WHERE id = ?
                """,
                (status, now, status, now, submission_id),
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute("SELECT * FROM submissions WHERE id = ?", (submission_id,)).fetchone()
        return _row_to_submission(row)

    def claim_free_slot(self, user_id: str, day: str) -> bool:
        try:
            with get_connection(self._db_path) as conn:
                conn.execute(
                    "INSERT INTO free_submission_claims (user_id, day) VALUES (?, ?)",
                    (user_id, day),
                )
        except sqlite3.IntegrityError:
            return False
        return True

    def attach_free_slot(self, user_id: str, day: str, submission_id: str) -> None:
        with get_connection(self._db_path) as conn:
            conn.execute(
                "UPDATE free_submission_claims SET submission_id = ? WHERE user_id = ? AND day = ?",
                (submission_id, user_id, day),
            )

    def release_free_slot(self, user_id: str, day: str) -> None:
        with get_connection(self._db_path) as conn:
            conn.execute(
                "DELETE FROM free_submission_claims WHERE user_id = ? AND day = ? AND submission_id IS NULL",
                (user_id, day),
            )

    def free_slot_used(self, user_id: str, day: str) -> bool:
        with get_connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT 1 FROM free_submission_claims WHERE user_id = ? AND day = ?",
                (user_id, day),
            ).fetchone()
        return row is not None


class ProfileRepository(AbstractProfileRepository):
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def get(self, user_id: str) -> Profile | None:
        with get_connection(self._db_path) as conn:
            row = conn.execute("SELECT * FROM profiles WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return Profile(
            id=row["id"],
            username=row["username"],
            full_name=row["full_name"],
            avatar_url=row["avatar_url"],
            is_admin=bool(row["is_admin"]),
        )

    def is_admin(self, user_id: str) -> bool:
        with get_connection(self._db_path) as conn:
            row = conn.execute("SELECT is_admin FROM profiles WHERE id = ?", (user_id,)).fetchone()
        return bool(row and row["is_admin"])

    def create(self, profile: Profile) -> Profile:
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO profiles (id, username, full_name, avatar_url, is_admin)
                VALUES (?, ?, ?, ?, ?)
                """,
                (profile.id, profile.username, profile.full_name, profile.avatar_url, int(profile.is_admin)),
            )
        return profile
