from pydantic import BaseModel, field_validator


class DirectoryTarget(BaseModel):
    id: str
    instance_url: str | None = None

    @field_validator("instance_url")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str | None:
        return v.strip().rstrip("/") if v and v.strip() else None


class FederatedSubmissionCreate(BaseModel):
    submission_id: str
    directories: list[DirectoryTarget | str]
    payment_method: str = "stripe"

    def targets(self) -> list[DirectoryTarget]:
        return [d if isinstance(d, DirectoryTarget) else DirectoryTarget(id=d) for d in self.directories]


class CostRequest(BaseModel):
    directories: list[DirectoryTarget | str]

    def directory_ids(self) -> list[str]:
        return [d.id if isinstance(d, DirectoryTarget) else d for d in self.directories]


class InstanceRegistration(BaseModel):
    name: str | None = None
    base_url: str | None = None
    admin_email: str | None = None
    description: str | None = None


class TokenRequest(BaseModel):
    api_key: str | None = None


class DiscoverRequest(BaseModel):
    category: str | None = None
    limit: int | None = None
