import asyncio
import logging
import uuid
from dataclasses import asdict, dataclass, field

import httpx

from launchpad.errors import ErrorKind, ServiceError, utc_timestamp
from launchpad.models.federation import PAYMENT_METHODS, FederatedSubmission
from launchpad.models.submission import Submission
from launchpad.repositories.base import AbstractFederationRepository, AbstractSubmissionRepository
from launchpad.schemas.federation import DirectoryTarget
from launchpad.services.federation_discovery_service import local_directories

logger = logging.getLogger(__name__)

SUBMIT_PATH = "/api/federation/submit"
FEDERATION_USER_AGENT = "LaunchPadder-Federation/1.0"


@dataclass
class TargetResult:
    id: str
    directory_id: str
    instance_url: str | None
    status: str
    remote_submission_id: str | None = None
    error: str | None = None


@dataclass
class FanOutResult:
    submission_id: str
    results: list[TargetResult] = field(default_factory=list)

    @property
    def synced(self) -> int:
        return sum(1 for r in self.results if r.status == "synced")

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status == "failed")

    def to_dict(self) -> dict:
        return {
            "submission_id": self.submission_id,
            "results": [asdict(r) for r in self.results],
            "synced": self.synced,
            "failed": self.failed,
        }


class FederatedSubmissionService:
    def __init__(
        self,
        repository: AbstractFederationRepository,
        submissions: AbstractSubmissionRepository,
        source_instance: str = "launchpadder",
        timeout: float = 30.0,
        concurrency: int = 4,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._repository = repository
        self._submissions = submissions
        self._source_instance = source_instance
        self._timeout = timeout
        self._concurrency = max(1, concurrency)
        self._transport = transport

    def _owned_submission(self, submission_id: str, user_id: str | None) -> Submission:
        if not user_id:
            raise ServiceError(ErrorKind.UNAUTHORIZED, "Authentication required")
        submission = self._submissions.get_by_id(submission_id)
        if submission is None or submission.submitted_by != user_id:
            raise ServiceError(ErrorKind.NOT_FOUND, "Submission not found or access denied")
        return submission

    async def create_federated_submission(
        self,
        submission_id: str,
        directories: list[DirectoryTarget],
        payment_method: str,
        user_id: str | None,
    ) -> FanOutResult:
        if not directories:
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "At least one directory must be selected")
        if payment_method not in PAYMENT_METHODS:
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "Invalid payment method. Must be stripe or crypto")

        submission = self._owned_submission(submission_id, user_id)

        targets = list({target.id: target for target in directories}.values())
        existing = {row.directory_id for row in self._repository.list_federated_for_submission(submission_id)}
        already = [target.id for target in targets if target.id in existing]
        if already:
            raise ServiceError(
                ErrorKind.CONFLICT, f"Submission already sent to: {', '.join(sorted(already))}"
            )

        now = utc_timestamp()
        rows = [
            FederatedSubmission(
                id=str(uuid.uuid4()),
                submission_id=submission_id,
                user_id=user_id,
                directory_id=target.id,
                instance_url=target.instance_url,
                payment_method=payment_method,
                status="pending",
                created_at=now,
                updated_at=now,
            )
            for target in targets
        ]
        self._repository.create_federated(rows)
        logger.info(
            "[federation] fan-out started | submission_id=%s | targets=%d", submission_id, len(rows)
        )
        return await self._process(submission, rows)

    async def retry_failed(self, submission_id: str, user_id: str | None) -> FanOutResult:
        submission = self._owned_submission(submission_id, user_id)
        failed = self._repository.list_federated_for_submission(submission_id, status="failed")
        if not failed:
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "No failed submissions to retry")
        for row in failed:
            self._repository.update_federated(row.id, "pending")
        logger.info("[federation] retrying | submission_id=%s | targets=%d", submission_id, len(failed))
        return await self._process(submission, failed)

    async def _process(self, submission: Submission, rows: list[FederatedSubmission]) -> FanOutResult:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def run(row: FederatedSubmission) -> TargetResult:
            async with semaphore:
                return await self._sync_target(submission, row)

        tasks = [asyncio.create_task(run(row)) for row in rows]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        result = FanOutResult(submission_id=submission.id)
        for row, outcome in zip(rows, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "[federation] target crashed | id=%s | directory_id=%s",
                    row.id, row.directory_id, exc_info=outcome,
                )
                message = str(outcome) or outcome.__class__.__name__
                self._repository.update_federated(row.id, "failed", error_message=message)
                outcome = TargetResult(
                    id=row.id,
                    directory_id=row.directory_id,
                    instance_url=row.instance_url,
                    status="failed",
                    error=message,
                )
            result.results.append(outcome)

        logger.info(
            "[federation] fan-out finished | submission_id=%s | synced=%d | failed=%d",
            submission.id, result.synced, result.failed,
        )
        return result

    async def _sync_target(self, submission: Submission, row: FederatedSubmission) -> TargetResult:
        try:
            remote_id = await self._deliver(submission, row)
        except ServiceError as exc:
            self._repository.update_federated(row.id, "failed", error_message=exc.message)
            logger.info(
                "[federation] target failed | directory_id=%s | error=%s", row.directory_id, exc.message
            )
            return TargetResult(
                id=row.id,
                directory_id=row.directory_id,
                instance_url=row.instance_url,
                status="failed",
                error=exc.message,
            )

        self._repository.update_federated(row.id, "synced", remote_submission_id=remote_id)
        return TargetResult(
            id=row.id,
            directory_id=row.directory_id,
            instance_url=row.instance_url,
            status="synced",
            remote_submission_id=remote_id,
        )

    async def _deliver(self, submission: Submission, row: FederatedSubmission) -> str | None:
        if not row.instance_url:
            if row.directory_id not in local_directories():
                raise ServiceError(ErrorKind.NOT_FOUND, f"Unknown directory: {row.directory_id}")
            return submission.id

        meta = submission.rewritten_meta or submission.original_meta
        payload = {
            "url": submission.url,
            "title": meta.get("title"),
            "description": meta.get("description"),
            "tags": submission.tags,
            "directory_id": row.directory_id,
            "source_instance": self._source_instance,
            "federation_submission_id": row.id,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{row.instance_url}{SUBMIT_PATH}",
                    json=payload,
                    headers={"User-Agent": FEDERATION_USER_AGENT},
                )
        except httpx.TimeoutException as exc:
            raise ServiceError(ErrorKind.EXTERNAL_SERVICE_ERROR, "Request timeout") from exc
        except httpx.HTTPError as exc:
            raise ServiceError(ErrorKind.EXTERNAL_SERVICE_ERROR, str(exc) or exc.__class__.__name__) from exc

        if response.status_code >= 400:
            raise ServiceError(
                ErrorKind.EXTERNAL_SERVICE_ERROR, f"HTTP {response.status_code}: {response.reason_phrase}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise ServiceError(ErrorKind.EXTERNAL_SERVICE_ERROR, "Invalid response from remote instance") from exc
        if not isinstance(body, dict) or not body.get("success"):
            error = body.get("error") if isinstance(body, dict) else None
            raise ServiceError(ErrorKind.EXTERNAL_SERVICE_ERROR, error or "Submission failed")
        remote_id = body.get("submission_id")
        return str(remote_id) if remote_id is not None else None

    def list_federated_submissions(
        self, user_id: str | None, status: str | None = None, limit: int = 20, offset: int = 0
    ) -> dict:
        if not user_id:
            raise ServiceError(ErrorKind.UNAUTHORIZED, "Authentication required")
        limit = min(max(1, limit), 100)
        offset = max(0, offset)
        rows, total = self._repository.list_federated_for_user(user_id, status, limit, offset)
        return {
            "data": [row.to_dict() for row in rows],
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "has_more": offset + limit < total,
            },
        }

    def get_status(self, submission_id: str, user_id: str | None) -> dict:
        submission = self._owned_submission(submission_id, user_id)
        rows = self._repository.list_federated_for_submission(submission_id)
        summary = {"total": len(rows), "pending": 0, "synced": 0, "failed": 0}
        for row in rows:
            summary[row.status] += 1
        return {
            "submission_id": submission.id,
            "url": submission.url,
            "results": [row.to_dict() for row in rows],
            "summary": summary,
        }

    @staticmethod
    def calculate_cost(directory_ids: list[str]) -> dict:
        if not directory_ids:
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "At least one directory must be selected")
        catalog = local_directories()
        unknown = [d for d in directory_ids if d not in catalog]
        if unknown:
            raise ServiceError(ErrorKind.VALIDATION_ERROR, f"Unknown directories: {', '.join(unknown)}")
        breakdown = [
            {"directory_id": d, "cost_usd": catalog[d]["submission_fee"]["usd"]} for d in directory_ids
        ]
        return {
            "total_usd": round(sum(item["cost_usd"] for item in breakdown), 2),
            "breakdown": breakdown,
            "currency": "USD",
        }
