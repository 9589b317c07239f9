from dataclasses import dataclass

PAYMENT_METHODS = ("stripe", "crypto")


@dataclass
class FederationPartner:
    id: str
    name: str
    api_key: str
    tier: str = "basic"
    status: str = "active"
    organization: str | None = None
    contact_email: str | None = None
    rate_limit: int = 100
    last_active: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def public_info(self) -> dict:
        """Partner fields that are safe to hand back to the partner itself."""
        return {
            "id": self.id,
            "name": self.name,
            "organization": self.organization,
            "tier": self.tier,
            "rate_limit": self.rate_limit,
            "status": self.status,
        }


@dataclass
class FederationInstance:
    id: str
    name: str
    base_url: str
    admin_email: str
    description: str = ""
    status: str = "pending"
    last_seen: str | None = None
    created_at: str | None = None

    def public_info(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "base_url": self.base_url,
            "description": self.description,
            "status": self.status,
            "last_seen": self.last_seen,
            "created_at": self.created_at,
        }


@dataclass
class FederatedSubmission:
    id: str
    submission_id: str
    user_id: str
    directory_id: str
    created_at: str
    updated_at: str
    instance_url: str | None = None
    payment_method: str = "stripe"
    status: str = "pending"
    remote_submission_id: str | None = None
    error_message: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "submission_id": self.submission_id,
            "user_id": self.user_id,
            "directory_id": self.directory_id,
            "instance_url": self.instance_url,
            "payment_method": self.payment_method,
            "status": self.status,
            "remote_submission_id": self.remote_submission_id,
            "error_message": self.error_message,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
