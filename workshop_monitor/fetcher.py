"""Batched detail retrieval with bounded concurrency.

Ids are split into contiguous batches; each batch is one
GetPublishedFileDetails call handled end to end by a pool worker,
including sequential fallbacks for the items the API denies. Results are
keyed by batch index so the caller can rebuild global order regardless of
completion order.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

import requests

from . import fallback, steam_api
from .config import BATCH_SIZE, MAX_CONCURRENT_BATCHES, REQUEST_TIMEOUT, STEAM_API_BASE
from .errors import BatchTransportFailure, ItemRetrievalDenied
from .models import Channel, ItemRecord
from .utils import get_http_session

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 50

# (item_id, primary result code) -> replacement record
FallbackResolver = Callable[[str, Optional[int]], ItemRecord]


@dataclass
class FetchResult:
    batches: Dict[int, List[ItemRecord]] = field(default_factory=dict)
    dropped: List[int] = field(default_factory=list)
    batch_count: int = 0

    def records(self) -> List[ItemRecord]:
        out: List[ItemRecord] = []
        for idx in sorted(self.batches):
            out.extend(self.batches[idx])
        return out


def partition(ids: Sequence[str], batch_size: int) -> List[List[str]]:
    """Split ``ids`` into ceil(N/B) contiguous, order-preserving batches."""
    if not 1 <= batch_size <= MAX_BATCH_SIZE:
        raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}, got {batch_size}")
    return [list(ids[i : i + batch_size]) for i in range(0, len(ids), batch_size)]


def _default_resolver(item_id: str, result: Optional[int]) -> ItemRecord:
    return fallback.resolve_item(item_id, result=result)


def _parse_detail(entry: dict) -> ItemRecord:
    """Map one API detail entry to a record; raise on denial."""
    pid = str(entry.get("publishedfileid") or "")
    result = entry.get("result")
    if result != steam_api.RESULT_OK:
        raise ItemRetrievalDenied(pid, result)

    raw_time = entry.get("time_updated")
    try:
        updated = int(raw_time) if raw_time is not None else None
    except (TypeError, ValueError):
        updated = None

    return ItemRecord(
        id=pid,
        title=str(entry.get("title") or ""),
        time_updated=updated,
        channel=Channel.PRIMARY,
        preview_url=(entry.get("preview_url") or None),
        result=result,
    )


def fetch_batch(
    index: int,
    ids: Sequence[str],
    *,
    session_factory: Callable[[], requests.Session] = get_http_session,
    resolver: FallbackResolver = _default_resolver,
    api_base: str = STEAM_API_BASE,
    timeout: float = REQUEST_TIMEOUT,
) -> List[ItemRecord]:
    """Retrieve one batch; denied items are resolved through the fallback path."""
    session = session_factory()
    try:
        try:
            details = steam_api.query_details(ids, session=session, api_base=api_base, timeout=timeout)
        except (requests.RequestException, ValueError) as e:
            raise BatchTransportFailure(index, str(e)) from e
    finally:
        session.close()

    wanted = set(ids)
    resolved: Dict[str, ItemRecord] = {}
    for entry in details:
        if not isinstance(entry, dict):
            continue
        pid = str(entry.get("publishedfileid") or "")
        if pid not in wanted or pid in resolved:
            continue
        try:
            resolved[pid] = _parse_detail(entry)
        except ItemRetrievalDenied as denied:
            logger.info("%s; trying Workshop page", denied)
            resolved[pid] = resolver(denied.item_id, denied.result)

    # Request order, not response order.
    records = [resolved[pid] for pid in ids if pid in resolved]
    logger.debug("Batch %d resolved %d/%d items", index, len(records), len(ids))
    return records


def fetch_details(
    ids: Sequence[str],
    *,
    batch_size: int = BATCH_SIZE,
    max_workers: int = MAX_CONCURRENT_BATCHES,
    session_factory: Callable[[], requests.Session] = get_http_session,
    resolver: FallbackResolver = _default_resolver,
    api_base: str = STEAM_API_BASE,
    timeout: float = REQUEST_TIMEOUT,
) -> FetchResult:
    """Fetch all ``ids`` in batches, at most ``max_workers`` batches in flight."""
    batches = partition(ids, batch_size)
    result = FetchResult(batch_count=len(batches))
    if not batches:
        return result

    logger.info(
        "Fetching %d items in %d batches (size=%d, concurrency=%d)",
        len(ids), len(batches), batch_size, max_workers,
    )
    with ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="batch") as executor:
        futures = {
            executor.submit(
                fetch_batch,
                idx,
                chunk,
                session_factory=session_factory,
                resolver=resolver,
                api_base=api_base,
                timeout=timeout,
            ): idx
            for idx, chunk in enumerate(batches)
        }
        for future in as_completed(futures):
            idx = futures[future]
            try:
                result.batches[idx] = future.result()
            except BatchTransportFailure as e:
                logger.warning("Dropping %s", e)
                result.dropped.append(idx)
            except Exception:
                logger.exception("Dropping batch %d after unexpected error", idx)
                result.dropped.append(idx)

    result.dropped.sort()
    if result.dropped:
        logger.warning(
            "%d of %d batches dropped; their items will read as removed",
            len(result.dropped), len(batches),
        )
    return result


__all__ = ["MAX_BATCH_SIZE", "FetchResult", "partition", "fetch_batch", "fetch_details"]
