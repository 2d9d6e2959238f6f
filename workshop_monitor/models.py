"""Data model shared by the fetch, store, diff and notify stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

ITEM_URL_TEMPLATE = "https://steamcommunity.com/sharedfiles/filedetails/?id={id}"


class Channel(str, Enum):
    """How an item's metadata was obtained. Values are persisted verbatim."""

    PRIMARY = "api"
    FALLBACK = "scraped"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class ChangeKind(str, Enum):
    NEW = "new"
    REMOVED = "removed"
    LISTED = "listed"
    UNLISTED = "unlisted"
    UNAVAILABLE = "unavailable"
    UPDATED = "updated"
    TITLE_CHANGED = "title_changed"
    TITLE_AND_UPDATED = "title_and_updated"


@dataclass
class ItemRecord:
    id: str
    title: str
    time_updated: Optional[int] = None
    channel: Optional[Channel] = Channel.PRIMARY
    preview_url: Optional[str] = None
    result: Optional[int] = None

    def __post_init__(self) -> None:
        self.id = str(self.id or "").strip()
        if not self.id:
            raise ValueError("ItemRecord requires a non-empty id")
        if self.channel is Channel.UNAVAILABLE:
            self.time_updated = None

    @property
    def url(self) -> str:
        return ITEM_URL_TEMPLATE.format(id=self.id)


@dataclass(frozen=True)
class Collection:
    id: str
    child_ids: Tuple[str, ...]
    name: Optional[str] = None


@dataclass(frozen=True)
class Snapshot:
    collection_id: str
    captured_at: int
    items: Tuple[ItemRecord, ...] = ()
    collection_name: Optional[str] = None
    counts: Mapping[str, int] = field(default_factory=dict)

    def by_id(self) -> Dict[str, ItemRecord]:
        return {it.id: it for it in self.items}


@dataclass(frozen=True)
class ChangeEvent:
    id: str
    kind: ChangeKind
    old_title: Optional[str] = None
    new_title: Optional[str] = None
    old_time: Optional[int] = None
    new_time: Optional[int] = None
    old_channel: Optional[Channel] = None
    new_channel: Optional[Channel] = None
    preview_url: Optional[str] = None

    @property
    def url(self) -> str:
        return ITEM_URL_TEMPLATE.format(id=self.id)

    @property
    def title(self) -> str:
        return self.new_title or self.old_title or "Unknown"


__all__ = [
    "ITEM_URL_TEMPLATE",
    "Channel",
    "ChangeKind",
    "ItemRecord",
    "Collection",
    "Snapshot",
    "ChangeEvent",
]
