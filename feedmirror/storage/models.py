"""Data models for the replicated post store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from feedmirror.storage.pools import Pool

# Column order shared by the insert statement and Post.to_row()
POST_COLUMNS = (
    "title",
    "creator",
    "description",
    "link",
    "pubDate",
    "guid",
    "guidIsPermaLink",
    "source",
    "sourceUrl",
)


@dataclass(frozen=True)
class Post:
    """A feed item as produced by the ingestion pipeline."""

    guid: str
    title: Optional[str] = None
    creator: Optional[str] = None
    description: Optional[str] = None
    link: Optional[str] = None
    pub_date: Optional[str] = None
    guid_is_perma_link: Optional[str] = None
    source: Optional[str] = None
    source_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Post:
        """Build a Post from a feed-style dict (camelCase or snake_case keys)."""
        guid = data.get("guid")
        if not guid:
            raise ValueError("post is missing a guid")
        return cls(
            guid=str(guid),
            title=data.get("title"),
            creator=data.get("creator"),
            description=data.get("description"),
            link=data.get("link"),
            pub_date=_first(data, "pubDate", "pub_date"),
            guid_is_perma_link=_flag(_first(data, "guidIsPermaLink", "guid_is_perma_link")),
            source=data.get("source"),
            source_url=_first(data, "sourceUrl", "source_url"),
        )

    def to_row(self) -> tuple:
        return (
            self.title,
            self.creator,
            self.description,
            self.link,
            self.pub_date,
            self.guid,
            self.guid_is_perma_link,
            self.source,
            self.source_url,
        )


@dataclass
class PersistedPost:
    """A post row as stored by one backend."""

    id: int
    post: Post
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> PersistedPost:
        # PostgreSQL folds unquoted identifiers to lower case
        lowered = {k.lower(): v for k, v in row.items()}
        post = Post(
            guid=lowered["guid"],
            title=lowered.get("title"),
            creator=lowered.get("creator"),
            description=lowered.get("description"),
            link=lowered.get("link"),
            pub_date=lowered.get("pubdate"),
            guid_is_perma_link=lowered.get("guidispermalink"),
            source=lowered.get("source"),
            source_url=lowered.get("sourceurl"),
        )
        return cls(
            id=int(lowered["id"]),
            post=post,
            created_at=parse_ts(lowered.get("created_at")),
        )


@dataclass(frozen=True)
class BackendDescriptor:
    """A named backend and the connection pool that reaches it."""

    name: str
    pool: "Pool"


@dataclass
class BatchOutcome:
    """Result of writing one batch to one backend."""

    name: str
    success: bool
    error: Optional[str] = None


@dataclass
class BatchResult:
    """Aggregate result of a replicated write."""

    outcomes: List[BatchOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def succeeded(self) -> List[str]:
        return [o.name for o in self.outcomes if o.success]

    @property
    def failed(self) -> List[str]:
        return [o.name for o in self.outcomes if not o.success]


@dataclass
class HealthResult:
    """Connectivity of one backend."""

    name: str
    connected: bool
    error: Optional[str] = None


@dataclass
class StatsSnapshot:
    """Row count and newest insert time for one backend."""

    name: str
    total_posts: int
    latest_post: Optional[datetime] = None
    status: str = "healthy"
    error: Optional[str] = None

    @classmethod
    def failed(cls, name: str, error: str) -> StatsSnapshot:
        return cls(name=name, total_posts=-1, latest_post=None, status="error", error=error)

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "totalPosts": self.total_posts,
            "latestPost": self.latest_post.isoformat() if self.latest_post else None,
            "status": self.status,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


# --- Helpers ---

def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _flag(val: Any) -> Optional[str]:
    """Normalize the permalink flag to the stored string form."""
    if val is None:
        return None
    if isinstance(val, bool):
        return "true" if val else "false"
    return str(val)


def parse_ts(val: Any) -> Optional[datetime]:
    """Parse a timestamp string or return None."""
    if val is None:
        return None
    if isinstance(val, datetime):
        return val
    try:
        from dateutil.parser import parse
        return parse(str(val))
    except (ValueError, TypeError, OverflowError):
        return None
