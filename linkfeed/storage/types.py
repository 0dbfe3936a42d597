from __future__ import annotations

from dataclasses import dataclass, field


INSERT_CREATED = "CREATED"
INSERT_EXISTS = "EXISTS"


@dataclass(frozen=True)
class FeedSource:
    id: str
    name: str
    url: str
    feed_url: str | None = None
    category: str | None = None
    logo_url: str | None = None


@dataclass(frozen=True)
class FeedEntry:
    title: str
    link: str
    description: str
    published_at: int


@dataclass(frozen=True)
class FeedDocument:
    url: str
    title: str
    entries: tuple[FeedEntry, ...] = field(default_factory=tuple)

    @property
    def item_count(self) -> int:
        return len(self.entries)

    def items(self, offset: int = 0, limit: int = 10) -> list[FeedEntry]:
        offset = max(0, int(offset))
        limit = max(0, int(limit))
        return list(self.entries[offset : offset + limit])


@dataclass(frozen=True)
class NewItem:
    category: str
    title: str
    link: str
    description: str
    publish_date: int
    source_name: str
    source_url: str
    logo_url: str


@dataclass(frozen=True)
class StoredItem:
    id: int
    category: str
    title: str
    link: str
    description: str
    publish_date: int
    source_name: str
    source_url: str
    logo_url: str
    created_at: int
    updated_at: int


@dataclass(frozen=True)
class InsertResult:
    status: str
    item_id: int | None

    @property
    def created(self) -> bool:
        return self.status == INSERT_CREATED
