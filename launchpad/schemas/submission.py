from typing import Literal

from pydantic import BaseModel, field_validator, model_validator


class SubmissionCreate(BaseModel):
    url: str
    submission_type: Literal["free", "paid", "federated"] = "paid"
    tags: list[str] = []

    @field_validator("url")
    @classmethod
    def url_must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("URL is required")
        return v.strip()

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v: list[str]) -> list[str]:
        return [tag.strip() for tag in v if tag and tag.strip()]


class SubmissionUpdate(BaseModel):
    rewritten_meta: dict | None = None
    tags: list[str] | None = None
    images: dict | None = None

    def fields(self) -> dict:
        return self.model_dump(exclude_none=True)


class ModerationRequest(BaseModel):
    status: Literal["approved", "rejected", "pending"]
    notes: str | None = None


class SubmissionListParams(BaseModel):
    page: int = 1
    limit: int = 10
    status: str = "approved"
    tags: list[str] = []
    search: str = ""
    sort_by: str = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"
    submitted_by: str | None = None

    @model_validator(mode="after")
    def clamp_paging(self) -> "SubmissionListParams":
        self.page = max(1, self.page)
        self.limit = min(max(1, self.limit), 50)
        return self


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class SubmissionOut(BaseModel):
    id: str
    url: str
    submitted_by: str
    submission_type: str
    original_meta: dict
    rewritten_meta: dict | None
    images: dict
    tags: list[str]
    status: str
    votes_count: int
    comments_count: int
    views_count: int
    created_at: str
    updated_at: str
    published_at: str | None


class SubmissionPage(BaseModel):
    data: list[SubmissionOut]
    pagination: Pagination


class DailyStatus(BaseModel):
    is_admin: bool
    used_today: int
    remaining_today: int | None
    can_use_free: bool
    resets_at: str
