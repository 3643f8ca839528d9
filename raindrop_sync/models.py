import re
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Union
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

_NEWLINES = re.compile(r"[\r\n]+")
_WHITESPACE = re.compile(r"\s+")


def format_timestamp(value: datetime) -> str:
    """Fixed-width UTC form, so string comparison matches chronological order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def normalize_timestamp(value: Union[str, datetime, None]) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return format_timestamp(value)
    text = str(value).strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    return format_timestamp(datetime.fromisoformat(text))


def utc_now_timestamp() -> str:
    return format_timestamp(datetime.now(timezone.utc))


def clean_excerpt(text: str) -> str:
    return _WHITESPACE.sub(" ", _NEWLINES.sub(" ", text or "")).strip()


class Bookmark(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = "Untitled"
    url: str = ""
    excerpt: str = ""
    excerpt_clean: Optional[str] = Field(
        default=None,
        alias="excerptClean",
        validation_alias=AliasChoices("excerptClean", "excerpt_clean"),
    )
    tags: List[str] = Field(default_factory=list)
    created: Optional[str] = None
    last_update: Optional[str] = Field(
        default=None,
        alias="lastUpdate",
        validation_alias=AliasChoices("lastUpdate", "last_update"),
    )
    domain: str = ""
    collection: str = "Unsorted"

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        if v is None or v == "":
            raise ValueError("bookmark id is required")
        return str(v)

    @field_validator("title", "excerpt", "domain", mode="before")
    @classmethod
    def _none_to_default(cls, v, info):
        if v is None:
            return cls.model_fields[info.field_name].default
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def _dedupe_tags(cls, v):
        if v is None:
            return []
        seen = []
        for tag in v:
            if tag not in seen:
                seen.append(tag)
        return seen

    @field_validator("created", "last_update", mode="before")
    @classmethod
    def _normalize_timestamps(cls, v):
        return normalize_timestamp(v)

    @property
    def recency(self) -> str:
        return self.last_update or self.created or ""

    def clean(self) -> "Bookmark":
        """Return a copy with excerpt_clean derived from excerpt."""
        return self.model_copy(update={"excerpt_clean": clean_excerpt(self.excerpt)})


class CacheSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bookmarks: List[Bookmark]
    count: int = 0
    timestamp: int = 0
    last_updated: Optional[str] = Field(
        default=None,
        alias="lastUpdated",
        validation_alias=AliasChoices("lastUpdated", "last_updated"),
    )

    def to_json(self) -> Dict:
        return self.model_dump(by_alias=True)


class FetchResult(BaseModel):
    bookmarks: List[Bookmark] = Field(default_factory=list)
    count: Optional[int] = None  # server-reported total
    error: Optional[str] = None


class MetadataResult(BaseModel):
    count: int = 0
    last_update: Optional[str] = None
    error: Optional[str] = None


class SyncResult(BaseModel):
    bookmarks: List[Bookmark] = Field(default_factory=list)
    error: Optional[str] = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


def latest_update(bookmarks: Iterable[Bookmark]) -> Optional[str]:
    latest = None
    for bookmark in bookmarks:
        if bookmark.last_update and (latest is None or bookmark.last_update > latest):
            latest = bookmark.last_update
    return latest


def merge_bookmarks(existing: Iterable[Bookmark], updates: Iterable[Bookmark]) -> List[Bookmark]:
    """Overwrite existing records with updates keyed by id; untouched records are kept."""
    merged: Dict[str, Bookmark] = {}
    for bookmark in existing:
        merged[bookmark.id] = bookmark
    for update in updates:
        merged[update.id] = update
    return list(merged.values())
