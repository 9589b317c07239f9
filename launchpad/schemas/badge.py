from pydantic import BaseModel, field_validator


class AwardRequest(BaseModel):
    slug: str
    reason: str | None = None
    assignment_type: str = "manual"

    @field_validator("slug")
    @classmethod
    def slug_must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("slug must not be empty")
        return v.strip()


class RevokeRequest(BaseModel):
    reason: str | None = None


class VerifyRequest(BaseModel):
    user_badge_id: str
    signature_hash: str
    public_key: str
    payload: dict = {}
