import logging
import sqlite3

from launchpad.db.connection import get_connection
from launchpad.errors import ErrorKind, ServiceError, utc_timestamp
from launchpad.models.federation import FederatedSubmission, FederationInstance, FederationPartner
from launchpad.repositories.base import AbstractFederationRepository

logger = logging.getLogger(__name__)


def _row_to_partner(row: sqlite3.Row) -> FederationPartner:
    return FederationPartner(
        id=row["id"],
        name=row["name"],
        api_key=row["api_key"],
        tier=row["tier"],
        status=row["status"],
        organization=row["organization"],
        contact_email=row["contact_email"],
        rate_limit=row["rate_limit"],
        last_active=row["last_active"],
    )


def _row_to_instance(row: sqlite3.Row) -> FederationInstance:
    return FederationInstance(
        id=row["id"],
        name=row["name"],
        base_url=row["base_url"],
        admin_email=row["admin_email"],
        description=row["description"],
        status=row["status"],
        last_seen=row["last_seen"],
        created_at=row["created_at"],
    )


def _row_to_federated(row: sqlite3.Row) -> FederatedSubmission:
    return FederatedSubmission(
        id=row["id"],
        submission_id=row["submission_id"],
        user_id=row["user_id"],
        directory_id=row["directory_id"],
        instance_url=row["instance_url"],
        payment_method=row["payment_method"],
        status=row["status"],
        remote_submission_id=row["remote_submission_id"],
        error_message=row["error_message"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class FederationRepository(AbstractFederationRepository):
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    # partners

    def get_partner_by_key(self, api_key: str) -> FederationPartner | None:
        with get_connection(self._db_path) as conn:
            row = conn.execute("SELECT * FROM federation_partners WHERE api_key = ?", (api_key,)).fetchone()
        return _row_to_partner(row) if row else None

    def get_partner(self, partner_id: str) -> FederationPartner | None:
        with get_connection(self._db_path) as conn:
            row = conn.execute("SELECT * FROM federation_partners WHERE id = ?", (partner_id,)).fetchone()
        return _row_to_partner(row) if row else None

    def create_partner(self, partner: FederationPartner) -> FederationPartner:
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO federation_partners
                    (id, name, organization, contact_email, api_key, tier, rate_limit, status)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    partner.id,
                    partner.name,
                    partner.organization,
                    partner.contact_email,
                    partner.api_key,
                    partner.tier,
                    partner.rate_limit,
                    partner.status,
                ),
            )
        return partner

    def touch_partner(self, partner_id: str) -> None:
        with get_connection(self._db_path) as conn:
            conn.execute(
                "UPDATE federation_partners SET last_active = ? WHERE id = ?",
                (utc_timestamp(), partner_id),
            )

    # instances

    def create_instance(self, instance: FederationInstance) -> FederationInstance:
        instance.created_at = instance.created_at or utc_timestamp()
        try:
            with get_connection(self._db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO federation_instances
                        (id, name, base_url, description, admin_email, status, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        instance.id,
                        instance.name,
                        instance.base_url,
                        instance.description,
                        instance.admin_email,
                        instance.status,
                        instance.created_at,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise ServiceError(ErrorKind.CONFLICT, "Instance with this URL already registered") from exc
        return instance

    def update_instance_status(self, instance_id: str, status: str) -> FederationInstance | None:
        with get_connection(self._db_path) as conn:
            conn.execute(
                "UPDATE federation_instances SET status = ?, last_seen = ? WHERE id = ?",
                (status, utc_timestamp(), instance_id),
            )
            row = conn.execute("SELECT * FROM federation_instances WHERE id = ?", (instance_id,)).fetchone()
        return _row_to_instance(row) if row else None

    def list_instances(self, status: str | None = None, limit: int | None = None) -> list[FederationInstance]:
        sql = "SELECT * FROM federation_instances"
        params: list = []
        if status:
            sql += " WHERE status = ?"
            params.append(status)
        sql += " ORDER BY last_seen IS NULL, last_seen DESC, created_at DESC"
        if limit:
            sql += " LIMIT ?"
            params.append(limit)
        with get_connection(self._db_path) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_instance(row) for row in rows]

    # federated submissions

    def create_federated(self, rows: list[FederatedSubmission]) -> None:
        with get_connection(self._db_path) as conn:
            conn.executemany(
                """
                INSERT INTO federated_submissions
                    (id, submission_id, user_id, directory_id, instance_url,
                     payment_method, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        row.id,
                        row.submission_id,
                        row.user_id,
                        row.directory_id,
                        row.instance_url,
                        row.payment_method,
                        row.status,
                        row.created_at,
                        row.updated_at,
                    )
                    for row in rows
                ],
            )

    def update_federated(
        self,
        row_id: str,
        status: str,
        remote_submission_id: str | None = None,
        error_message: str | None = None,
    ) -> None:
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                UPDATE federated_submissions
                SET status = ?, remote_submission_id = ?, error_message = ?, updated_at = ?
                WHERE id = ?
                """,
                (status, remote_submission_id, error_message, utc_timestamp(), row_id),
            )

    def list_federated_for_submission(
        self, submission_id: str, status: str | None = None
    ) -> list[FederatedSubmission]:
        sql = "SELECT * FROM federated_submissions WHERE submission_id = ?"
        params: list = [submission_id]
        if status:
            sql += " AND status = ?"
            params.append(status)
        sql += " ORDER BY created_at, directory_id"
        with get_connection(self._db_path) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_federated(row) for row in rows]

    def list_federated_for_user(
        self, user_id: str, status: str | None, limit: int, offset: int
    ) -> tuple[list[FederatedSubmission], int]:
        where = "WHERE user_id = ?"
        params: list = [user_id]
        if status:
            where += " AND status = ?"
            params.append(status)
        with get_connection(self._db_path) as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM federated_submissions {where}", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM federated_submissions {where} ORDER BY created_at DESC, id LIMIT ? OFFSET ?",
                [*params, limit, offset],
            ).fetchall()
        return [_row_to_federated(row) for row in rows], total
