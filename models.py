"""
models.py - Value types shared by the prober, the duplicate analyzer and the merger.
"""

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class HealthStatus(str, Enum):
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    SLOW = "slow"
    REDIRECT = "redirect"
    BROKEN = "broken"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Bookmark:
    id: int
    url: str
    title: str = ""
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    is_favorite: bool = False

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Bookmark":
        """Builds a bookmark from a RealDictCursor row."""
        return cls(
            id=row["id"],
            url=row["url"],
            title=row.get("title") or "",
            description=row.get("description"),
            tags=[tag for tag in (row.get("tags") or []) if tag],
            created_at=row.get("created_at") or utcnow(),
            updated_at=row.get("updated_at"),
            is_favorite=bool(row.get("is_favorite")),
        )


@dataclass
class HealthRecord:
    bookmark_id: int
    url: str
    status: HealthStatus = HealthStatus.UNKNOWN
    status_code: int = 0
    response_time_ms: int = 0
    redirect_url: Optional[str] = None
    error: Optional[str] = None
    last_checked: datetime = field(default_factory=utcnow)

    def copy(self) -> "HealthRecord":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "id": self.bookmark_id,
            "url": self.url,
            "status": self.status.value,
            "status_code": self.status_code,
            "response_time_ms": self.response_time_ms,
            "last_checked": self.last_checked.isoformat(),
        }
        if self.redirect_url:
            payload["redirect_url"] = self.redirect_url
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass
class NormalizedURL:
    original: str
    normalized: str
    variations: List[str] = field(default_factory=list)
    is_short_url: bool = False
    expanded_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DuplicateGroup:
    primary: Bookmark
    duplicates: List[Bookmark]
    confidence: float
    reason: str

    @property
    def duplicate_ids(self) -> List[int]:
        return [bookmark.id for bookmark in self.duplicates]


@dataclass
class DuplicateCheckResult:
    url_analysis: NormalizedURL
    has_exact_duplicate: bool = False
    exact_duplicate: Optional[Bookmark] = None
    has_similar_bookmarks: bool = False
    similar_bookmarks: List[Bookmark] = field(default_factory=list)
    confidence: float = 0.0
    recommendations: List[str] = field(default_factory=list)


@dataclass
class MergeResult:
    primary: Bookmark
    merged_ids: List[int] = field(default_factory=list)
    skipped_ids: List[int] = field(default_factory=list)
    failed_deletions: Dict[int, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failed_deletions)


@dataclass
class SweepSummary:
    checked: int = 0
    counts: Dict[str, int] = field(default_factory=dict)
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
