from dataclasses import asdict, dataclass, field


@dataclass
class BadgeDefinition:
    id: str
    slug: str
    name: str
    description: str
    category: str
    level: str = "bronze"
    icon_url: str | None = None
    is_federation_badge: bool = False
    requires_verification: bool = False
    max_awards: int | None = None
    is_active: bool = True

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class UserBadge:
    id: str
    user_id: str
    badge_id: str
    earned_at: str
    assignment_type: str = "manual"
    status: str = "active"
    assigned_by: str | None = None
    assignment_reason: str | None = None
    revoked_by: str | None = None
    revoked_at: str | None = None
    revocation_reason: str | None = None
    badge: BadgeDefinition | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["badge"] = self.badge.to_dict() if self.badge else None
        return data


@dataclass
class BadgeVerification:
    id: str
    user_badge_id: str
    signature_hash: str
    public_key: str
    is_valid: bool
    verified_at: str
    verification_payload: dict = field(default_factory=dict)
    verification_method: str = "sha256"

    def to_dict(self) -> dict:
        return asdict(self)
