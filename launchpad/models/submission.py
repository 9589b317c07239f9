from dataclasses import dataclass, field


@dataclass
class Submission:
    id: str
    url: str
    submitted_by: str
    created_at: str
    updated_at: str
    submission_type: str = "paid"
    original_meta: dict = field(default_factory=dict)
    rewritten_meta: dict | None = None
    images: dict = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    status: str = "pending"
    votes_count: int = 0
    comments_count: int = 0
    views_count: int = 0
    published_at: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "submitted_by": self.submitted_by,
            "submission_type": self.submission_type,
            "original_meta": self.original_meta,
            "rewritten_meta": self.rewritten_meta,
            "images": self.images,
            "tags": self.tags,
            "status": self.status,
            "votes_count": self.votes_count,
            "comments_count": self.comments_count,
            "views_count": self.views_count,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "published_at": self.published_at,
        }


@dataclass
class Profile:
    id: str
    username: str | None = None
    full_name: str | None = None
    avatar_url: str | None = None
    is_admin: bool = False
