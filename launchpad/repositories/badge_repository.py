import json
import sqlite3

from launchpad.db.connection import get_connection
from launchpad.errors import ErrorKind, ServiceError, utc_timestamp
from launchpad.models.badge import BadgeDefinition, BadgeVerification, UserBadge
from launchpad.repositories.base import AbstractBadgeRepository

_USER_BADGE_COLUMNS = """
    ub.id, ub.user_id, ub.badge_id, ub.assignment_type, ub.status, ub.assigned_by,
    ub.assignment_reason, ub.revoked_by, ub.revoked_at, ub.revocation_reason, ub.earned_at,
    bd.slug, bd.name, bd.description, bd.category, bd.level, bd.icon_url,
    bd.is_federation_badge, bd.requires_verification, bd.max_awards, bd.is_active
"""


def _row_to_definition(row: sqlite3.Row, id_column: str = "id") -> BadgeDefinition:
    return BadgeDefinition(
        id=row[id_column],
        slug=row["slug"],
        name=row["name"],
        description=row["description"],
        category=row["category"],
        level=row["level"],
        icon_url=row["icon_url"],
        is_federation_badge=bool(row["is_federation_badge"]),
        requires_verification=bool(row["requires_verification"]),
        max_awards=row["max_awards"],
        is_active=bool(row["is_active"]),
    )


def _row_to_user_badge(row: sqlite3.Row) -> UserBadge:
    return UserBadge(
        id=row["id"],
        user_id=row["user_id"],
        badge_id=row["badge_id"],
        assignment_type=row["assignment_type"],
        status=row["status"],
        assigned_by=row["assigned_by"],
        assignment_reason=row["assignment_reason"],
        revoked_by=row["revoked_by"],
        revoked_at=row["revoked_at"],
        revocation_reason=row["revocation_reason"],
        earned_at=row["earned_at"],
        badge=_row_to_definition(row, id_column="badge_id"),
    )


class BadgeRepository(AbstractBadgeRepository):
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def list_definitions(self, category: str | None = None) -> list[BadgeDefinition]:
        sql = "SELECT * FROM badge_definitions WHERE is_active = 1"
        params: list = []
        if category:
            sql += " AND category = ?"
            params.append(category)
        sql += " ORDER BY category, name"
        with get_connection(self._db_path) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_definition(row) for row in rows]

    def get_definition(self, slug: str) -> BadgeDefinition | None:
        with get_connection(self._db_path) as conn:
            row = conn.execute("SELECT * FROM badge_definitions WHERE slug = ?", (slug,)).fetchone()
        return _row_to_definition(row) if row else None

    def list_user_badges(self, user_id: str, include_revoked: bool = False) -> list[UserBadge]:
        sql = f"""
            SELECT {_USER_BADGE_COLUMNS}
            FROM user_badges ub JOIN badge_definitions bd ON bd.id = ub.badge_id
            WHERE ub.user_id = ?
        """
        if not include_revoked:
            sql += " AND ub.status = 'active'"
        sql += " ORDER BY ub.earned_at DESC"
        with get_connection(self._db_path) as conn:
            rows = conn.execute(sql, (user_id,)).fetchall()
        return [_row_to_user_badge(row) for row in rows]

    def get_user_badge(self, user_badge_id: str) -> UserBadge | None:
        with get_connection(self._db_path) as conn:
            row = conn.execute(
                f"""
                SELECT {_USER_BADGE_COLUMNS}
                FROM user_badges ub JOIN badge_definitions bd ON bd.id = ub.badge_id
                WHERE ub.id = ?
                """,
                (user_badge_id,),
            ).fetchone()
        return _row_to_user_badge(row) if row else None

    def count_active_awards(self, badge_id: str) -> int:
        with get_connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM user_badges WHERE badge_id = ? AND status = 'active'",
                (badge_id,),
            ).fetchone()
        return row[0]

    def award(self, user_badge: UserBadge) -> UserBadge:
        try:
            with get_connection(self._db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO user_badges
                        (id, user_id, badge_id, assignment_type, status,
                         assigned_by, assignment_reason, earned_at)
                    VALUES (?, ?, ?, ?, 'active', ?, ?, ?)
                    """,
                    (
                        user_badge.id,
                        user_badge.user_id,
                        user_badge.badge_id,
                        user_badge.assignment_type,
                        user_badge.assigned_by,
                        user_badge.assignment_reason,
                        user_badge.earned_at,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            if "user_badges.user_id" in str(exc):
                raise ServiceError(ErrorKind.CONFLICT, "User already has this badge") from exc
            raise
        return self.get_user_badge(user_badge.id) or user_badge

    def revoke(self, user_id: str, badge_id: str, revoked_by: str, reason: str) -> UserBadge | None:
        with get_connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT id FROM user_badges WHERE user_id = ? AND badge_id = ? AND status = 'active'",
                (user_id, badge_id),
            ).fetchone()
            if row is None:
                return None
            conn.execute(
                """
                UPDATE user_badges
                SET status = 'revoked', revoked_by = ?, revoked_at = ?, revocation_reason = ?
                WHERE id = ?
                """,
                (revoked_by, utc_timestamp(), reason, row["id"]),
            )
        return self.get_user_badge(row["id"])

    def record_verification(self, verification: BadgeVerification) -> BadgeVerification:
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO badge_verifications
                    (id, user_badge_id, signature_hash, public_key, verification_payload,
                     verification_method, is_valid, verified_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    verification.id,
                    verification.user_badge_id,
                    verification.signature_hash,
                    verification.public_key,
                    json.dumps(verification.verification_payload),
                    verification.verification_method,
                    int(verification.is_valid),
                    verification.verified_at,
                ),
            )
        return verification
