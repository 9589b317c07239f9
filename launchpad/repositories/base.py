from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from launchpad.models.badge import BadgeDefinition, BadgeVerification, UserBadge
from launchpad.models.federation import FederatedSubmission, FederationInstance, FederationPartner
from launchpad.models.submission import Profile, Submission


@dataclass
class SubmissionQuery:
    page: int = 1
    limit: int = 10
    status: str | None = "approved"
    tags: list[str] = field(default_factory=list)
    search: str = ""
    sort_by: str = "created_at"
    sort_order: str = "desc"
    submitted_by: str | None = None


class AbstractSubmissionRepository(ABC):
    @abstractmethod
    def insert(self, submission: Submission) -> Submission:
        """Insert a submission. Raises ServiceError if the URL already exists."""

    @abstractmethod
    def exists_by_url(self, url: str) -> bool:
        """Return True if a submission with the given URL exists."""

    @abstractmethod
    def get_by_id(self, submission_id: str) -> Submission | None:
        """Return the submission or None."""

    @abstractmethod
    def query(self, query: SubmissionQuery) -> tuple[list[Submission], int]:
        """Return one page of submissions and the total matching count."""

    @abstractmethod
    def increment_view_count(self, submission_id: str) -> None:
        """Bump views_count by one."""

    @abstractmethod
    def update_owned(self, submission_id: str, user_id: str, fields: dict) -> Submission | None:
        """Update a pending submission owned by user_id. None if nothing matched."""

    @abstractmethod
    def delete_owned(self, submission_id: str, user_id: str) -> bool:
        """Delete a submission owned by user_id. False if nothing matched."""

    @abstractmethod
    def set_status(self, submission_id: str, status: str) -> Submission | None:
        """Moderation status change. Stamps published_at on approval."""

    @abstractmethod
    def claim_free_slot(self, user_id: str, day: str) -> bool:
        """Take the user's free-tier slot for the UTC day. False if already taken."""

    @abstractmethod
    def attach_free_slot(self, user_id: str, day: str, submission_id: str) -> None:
        """Link a claimed slot to the submission that consumed it."""

    @abstractmethod
    def release_free_slot(self, user_id: str, day: str) -> None:
        """Give back a claimed slot whose submission never got created."""

    @abstractmethod
    def free_slot_used(self, user_id: str, day: str) -> bool:
        """Return True if the user already consumed the free slot for the day."""


class AbstractProfileRepository(ABC):
    @abstractmethod
    def get(self, user_id: str) -> Profile | None:
        """Return the profile or None."""

    @abstractmethod
    def is_admin(self, user_id: str) -> bool:
        """Return True if the user is flagged admin."""

    @abstractmethod
    def create(self, profile: Profile) -> Profile:
        """Insert a profile."""


class AbstractFederationRepository(ABC):
    @abstractmethod
    def get_partner_by_key(self, api_key: str) -> FederationPartner | None:
        """Look up a partner by API key regardless of status."""

    @abstractmethod
    def get_partner(self, partner_id: str) -> FederationPartner | None:
        """Look up a partner by id regardless of status."""

    @abstractmethod
    def create_partner(self, partner: FederationPartner) -> FederationPartner:
        """Insert a partner."""

    @abstractmethod
    def touch_partner(self, partner_id: str) -> None:
        """Update the partner's last_active timestamp."""

    @abstractmethod
    def create_instance(self, instance: FederationInstance) -> FederationInstance:
        """Insert an instance. Raises ServiceError on a duplicate base_url."""

    @abstractmethod
    def update_instance_status(self, instance_id: str, status: str) -> FederationInstance | None:
        """Set status and last_seen."""

    @abstractmethod
    def list_instances(self, status: str | None = None, limit: int | None = None) -> list[FederationInstance]:
        """Known instances, most recently seen first."""

    @abstractmethod
    def create_federated(self, rows: list[FederatedSubmission]) -> None:
        """Insert fan-out tracking rows."""

    @abstractmethod
    def update_federated(
        self,
        row_id: str,
        status: str,
        remote_submission_id: str | None = None,
        error_message: str | None = None,
    ) -> None:
        """Record the outcome of one target's sync."""

    @abstractmethod
    def list_federated_for_submission(
        self, submission_id: str, status: str | None = None
    ) -> list[FederatedSubmission]:
        """Tracking rows for a submission."""

    @abstractmethod
    def list_federated_for_user(
        self, user_id: str, status: str | None, limit: int, offset: int
    ) -> tuple[list[FederatedSubmission], int]:
        """A page of the user's tracking rows and the total count."""


class AbstractBadgeRepository(ABC):
    @abstractmethod
    def list_definitions(self, category: str | None = None) -> list[BadgeDefinition]:
        """Active badge definitions."""

    @abstractmethod
    def get_definition(self, slug: str) -> BadgeDefinition | None:
        """Return a definition by slug."""

    @abstractmethod
    def list_user_badges(self, user_id: str, include_revoked: bool = False) -> list[UserBadge]:
        """Badges held by a user, newest first."""

    @abstractmethod
    def get_user_badge(self, user_badge_id: str) -> UserBadge | None:
        """Return an award record."""

    @abstractmethod
    def count_active_awards(self, badge_id: str) -> int:
        """Number of active awards of a badge."""

    @abstractmethod
    def award(self, user_badge: UserBadge) -> UserBadge:
        """Insert an award. Raises ServiceError if the user already holds it."""

    @abstractmethod
    def revoke(self, user_id: str, badge_id: str, revoked_by: str, reason: str) -> UserBadge | None:
        """Revoke an active award. None if there was none."""

    @abstractmethod
    def record_verification(self, verification: BadgeVerification) -> BadgeVerification:
        """Insert a verification record."""
