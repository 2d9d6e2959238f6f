"""JSON snapshot persistence for the workshop monitor.

One file holds the latest capture. Each successful run replaces it whole;
the previous capture is read before the write and handed to the differ as
an immutable value.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import time
from collections import Counter
from pathlib import Path
from typing import Any, Iterable, List, Optional

from .config import KEEP_BACKUP, SNAPSHOT_PATH
from .errors import SnapshotCorrupt
from .fetcher import FetchResult
from .models import Channel, Collection, ItemRecord, Snapshot

logger = logging.getLogger(__name__)


def _tally(items: Iterable[ItemRecord]) -> dict:
    counts = Counter(it.channel.value if it.channel else "none" for it in items)
    return dict(counts)


def assemble_snapshot(
    collection: Collection,
    fetched: FetchResult,
    *,
    captured_at: Optional[int] = None,
) -> Snapshot:
    """Merge batch results in batch order into one snapshot."""
    items: List[ItemRecord] = []
    seen: set[str] = set()
    for rec in fetched.records():
        if rec.id in seen:
            logger.debug("Duplicate item %s in collection %s ignored", rec.id, collection.id)
            continue
        seen.add(rec.id)
        items.append(rec)

    return Snapshot(
        collection_id=collection.id,
        collection_name=collection.name,
        captured_at=int(captured_at if captured_at is not None else time.time()),
        items=tuple(items),
        counts=_tally(items),
    )


def _item_to_dict(it: ItemRecord) -> dict:
    return {
        "id": it.id,
        "title": it.title,
        "updated": it.time_updated,
        "channel": it.channel.value if it.channel else None,
        "preview_url": it.preview_url,
        "result": it.result,
    }


def snapshot_to_dict(snapshot: Snapshot) -> dict:
    return {
        "collection_id": snapshot.collection_id,
        "collection_name": snapshot.collection_name,
        "captured_at": snapshot.captured_at,
        "item_count": len(snapshot.items),
        "counts": dict(snapshot.counts),
        "items": [_item_to_dict(it) for it in snapshot.items],
    }


def _as_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_channel(value: Any) -> Optional[Channel]:
    if value is None:
        return None
    try:
        return Channel(str(value))
    except ValueError:
        return Channel.UNKNOWN


def _item_from_dict(raw: dict, default_channel: Optional[Channel] = None) -> Optional[ItemRecord]:
    pid = str(raw.get("id") or "").strip()
    if not pid:
        return None
    channel = _as_channel(raw.get("channel")) if "channel" in raw else default_channel
    return ItemRecord(
        id=pid,
        title=str(raw.get("title") or ""),
        time_updated=_as_int(raw.get("updated")),
        channel=channel,
        preview_url=raw.get("preview_url") or None,
        result=_as_int(raw.get("result")),
    )


def snapshot_from_dict(data: Any) -> Snapshot:
    """Build a snapshot from stored JSON; accepts the legacy bare-list format."""
    default_channel: Optional[Channel] = None
    if isinstance(data, list):
        # Bare lists predate channel tags and were always API results.
        data = {"collection_id": "", "captured_at": 0, "items": data}
        default_channel = Channel.PRIMARY
    if not isinstance(data, dict) or not isinstance(data.get("items", []), list):
        raise SnapshotCorrupt("snapshot must be an object with an items list")

    items: List[ItemRecord] = []
    seen: set[str] = set()
    for raw in data.get("items", []):
        if not isinstance(raw, dict):
            continue
        rec = _item_from_dict(raw, default_channel)
        if rec is None or rec.id in seen:
            continue
        seen.add(rec.id)
        items.append(rec)

    return Snapshot(
        collection_id=str(data.get("collection_id") or ""),
        collection_name=data.get("collection_name") or None,
        captured_at=_as_int(data.get("captured_at")) or 0,
        items=tuple(items),
        counts=data.get("counts") or _tally(items),
    )


def load_snapshot(path: str | os.PathLike = SNAPSHOT_PATH) -> Optional[Snapshot]:
    """Return the stored snapshot, or None if there is none yet."""
    p = Path(path)
    if not p.exists():
        return None
    try:
        with p.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as e:
        raise SnapshotCorrupt(f"cannot read {p}: {e}") from e
    return snapshot_from_dict(data)


def save_snapshot(
    snapshot: Snapshot,
    path: str | os.PathLike = SNAPSHOT_PATH,
    *,
    keep_backup: bool = KEEP_BACKUP,
) -> Path:
    """Replace the stored snapshot atomically (optionally keeping <path>.bak)."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    if keep_backup and p.exists():
        shutil.copy2(p, p.with_name(p.name + ".bak"))

    tmp = p.with_name(p.name + ".tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        json.dump(snapshot_to_dict(snapshot), fh, ensure_ascii=False, indent=2)
    os.replace(tmp, p)
    logger.info("Saved snapshot of %d items to %s", len(snapshot.items), p)
    return p


__all__ = [
    "assemble_snapshot",
    "snapshot_to_dict",
    "snapshot_from_dict",
    "load_snapshot",
    "save_snapshot",
]
