from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from . import config, differ, fetcher, notifier, steam_api, store
from .errors import ConfigError, RunAborted, SnapshotCorrupt

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@dataclass
class RunSummary:
    items: int = 0
    channels: Dict[str, int] = field(default_factory=dict)
    dropped_batches: int = 0
    changes: Dict[str, int] = field(default_factory=dict)
    sent: int = 0
    failed: int = 0


def _default_sink() -> notifier.Sink:
    if config.DRY_RUN:
        return notifier.LogSink()
    return notifier.DiscordSink(config.DISCORD_WEBHOOK_URL or "")


def run_once(
    collection_id: Optional[str] = None,
    *,
    snapshot_path: str | Path = config.SNAPSHOT_PATH,
    sink: Optional[notifier.Sink] = None,
    sleep=time.sleep,
) -> RunSummary:
    """Capture the collection, diff against the last capture and notify."""
    cid = collection_id or config.WORKSHOP_COLLECTION_ID
    logger.info("Starting check for collection %s", cid)

    # 1) Membership; failures here abort before anything is written.
    collection = steam_api.resolve_collection(cid)

    # 2) Previous capture, read before it gets replaced.
    try:
        previous = store.load_snapshot(snapshot_path)
    except SnapshotCorrupt as e:
        logger.warning("Ignoring unreadable previous snapshot: %s", e)
        previous = None

    # 3) Details (with Workshop page fallback) and the new capture.
    fetched = fetcher.fetch_details(
        list(collection.child_ids),
        batch_size=config.BATCH_SIZE,
        max_workers=config.MAX_CONCURRENT_BATCHES,
    )
    snapshot = store.assemble_snapshot(collection, fetched)
    store.save_snapshot(snapshot, snapshot_path, keep_backup=config.KEEP_BACKUP)

    # 4) Classify and notify.
    diff = differ.diff_snapshots(previous, snapshot)
    summary = RunSummary(
        items=len(snapshot.items),
        channels=dict(snapshot.counts),
        dropped_batches=len(fetched.dropped),
        changes=dict(diff.counts),
    )
    if diff.events:
        units = notifier.render_events(diff.events)
        target = sink or _default_sink()
        try:
            report = notifier.dispatch(
                units,
                target,
                batch_size=config.NOTIFY_BATCH_SIZE,
                pause=config.NOTIFY_PAUSE_SECONDS,
                sleep=sleep,
            )
        finally:
            if sink is None and isinstance(target, notifier.DiscordSink):
                target.close()
        summary.sent, summary.failed = report.sent, report.failed

    logger.info(
        "Check complete: %d items (%s), %d dropped batches, %d changes, %d sent, %d failed",
        summary.items,
        ", ".join(f"{k}={v}" for k, v in sorted(summary.channels.items())) or "none",
        summary.dropped_batches,
        sum(summary.changes.values()),
        summary.sent,
        summary.failed,
    )
    return summary


def _run_reporting_abort() -> int:
    try:
        run_once()
    except RunAborted as e:
        logger.error("Run aborted (%s): %s", type(e).__name__, e)
        return 1
    return 0


def main() -> int:
    """Run one check (or loop when CHECK_INTERVAL_MINUTES > 0)."""
    setup_logging()
    try:
        config.validate()
    except ConfigError as e:
        logger.error("%s", e)
        return 2

    if config.CHECK_INTERVAL_MINUTES <= 0:
        return _run_reporting_abort()

    logger.info(
        "Monitoring collection %s every %d minutes.",
        config.WORKSHOP_COLLECTION_ID, config.CHECK_INTERVAL_MINUTES,
    )
    while True:
        try:
            _run_reporting_abort()
        except Exception:
            logger.exception("Unexpected error during check of %s.", config.WORKSHOP_COLLECTION_ID)
        time.sleep(config.CHECK_INTERVAL_MINUTES * 60)


if __name__ == "__main__":
    sys.exit(main())
