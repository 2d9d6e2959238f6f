"""Snapshot comparison and change classification.

Each item present in both snapshots yields at most one event. Channel
transitions are classified first because losing availability outranks any
content change; a rename published together with an update is reported
once as ``title_and_updated``.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .fallback import ERROR_PAGE_TITLE
from .models import ChangeEvent, ChangeKind, Channel, ItemRecord, Snapshot

logger = logging.getLogger(__name__)

_NOT_LISTED = (Channel.FALLBACK, Channel.UNKNOWN, Channel.UNAVAILABLE, None)
_WAS_RETRIEVABLE = (Channel.PRIMARY, Channel.FALLBACK)
_NEVER_CLASSIFIED = (Channel.UNKNOWN, None)


@dataclass
class DiffResult:
    events: List[ChangeEvent] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)


def _unlisted_or_error(new_title: Optional[str]) -> ChangeKind:
    if new_title == ERROR_PAGE_TITLE:
        return ChangeKind.UNAVAILABLE
    return ChangeKind.UNLISTED


def classify_transition(
    old: Optional[Channel],
    new: Optional[Channel],
    new_title: Optional[str] = None,
) -> Optional[ChangeKind]:
    """Classify a channel change (``old != new``). First matching rule wins."""
    if new is Channel.PRIMARY and old in _NOT_LISTED:
        return ChangeKind.LISTED
    if old is Channel.PRIMARY and new is Channel.FALLBACK:
        return _unlisted_or_error(new_title)
    if new is None or (old in _WAS_RETRIEVABLE and new is Channel.UNAVAILABLE):
        return ChangeKind.UNAVAILABLE
    if old in _NEVER_CLASSIFIED and new is Channel.FALLBACK:
        return _unlisted_or_error(new_title)
    if new is Channel.UNAVAILABLE:
        return ChangeKind.UNAVAILABLE
    # Downgrade to an unclassified tag carries no information.
    return None


def classify_content(
    time_changed: bool,
    title_changed: bool,
    new_title: Optional[str],
) -> Optional[ChangeKind]:
    """Classify a content change on an unchanged channel."""
    if not (time_changed or title_changed):
        return None
    if new_title == ERROR_PAGE_TITLE:
        return ChangeKind.UNAVAILABLE
    if time_changed and title_changed:
        return ChangeKind.TITLE_AND_UPDATED
    if time_changed:
        return ChangeKind.UPDATED
    return ChangeKind.TITLE_CHANGED


def classify_pair(old: ItemRecord, new: ItemRecord) -> Optional[ChangeKind]:
    time_changed = (
        old.time_updated is not None
        and new.time_updated is not None
        and old.time_updated != new.time_updated
    )
    title_changed = old.title != new.title
    if old.channel != new.channel:
        return classify_transition(old.channel, new.channel, new.title)
    return classify_content(time_changed, title_changed, new.title)


def _event(kind: ChangeKind, old: Optional[ItemRecord], new: Optional[ItemRecord]) -> ChangeEvent:
    preview = new.preview_url if new else None
    if not preview and old and kind in (ChangeKind.REMOVED, ChangeKind.UNAVAILABLE):
        preview = old.preview_url
    ref = new or old
    return ChangeEvent(
        id=ref.id,
        kind=kind,
        old_title=old.title if old else None,
        new_title=new.title if new else None,
        old_time=old.time_updated if old else None,
        new_time=new.time_updated if new else None,
        old_channel=old.channel if old else None,
        new_channel=new.channel if new else None,
        preview_url=preview,
    )


def diff_snapshots(previous: Optional[Snapshot], current: Snapshot) -> DiffResult:
    """Compare two captures and return ordered change events plus per-kind counts."""
    result = DiffResult()
    if previous is None:
        logger.info("No previous snapshot; nothing to compare against.")
        return result

    old_index = previous.by_id()
    new_index = current.by_id()

    for item in current.items:
        prior = old_index.get(item.id)
        if prior is None:
            result.events.append(_event(ChangeKind.NEW, None, item))
            continue
        kind = classify_pair(prior, item)
        if kind is not None:
            result.events.append(_event(kind, prior, item))

    for item in previous.items:
        if item.id not in new_index:
            result.events.append(_event(ChangeKind.REMOVED, item, None))

    result.counts = dict(Counter(e.kind.value for e in result.events))
    if result.events:
        logger.info(
            "Detected %d changes: %s",
            len(result.events),
            ", ".join(f"{k}={v}" for k, v in sorted(result.counts.items())),
        )
    else:
        logger.info("No changes detected.")
    return result


__all__ = [
    "DiffResult",
    "classify_transition",
    "classify_content",
    "classify_pair",
    "diff_snapshots",
]
