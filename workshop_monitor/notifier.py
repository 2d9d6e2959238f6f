"""Discord webhook notifier.

Renders change events as Discord embeds and delivers them in batches
(Discord accepts up to 10 embeds per message). Failed batches are logged
and skipped; only HTTP 429 answers are waited out, since that is Discord
asking us to slow down rather than rejecting the message.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Sequence

import requests
from tenacity import (Retrying, before_sleep_log, retry_if_exception_type,
                      stop_after_attempt)

from .config import (DISCORD_USERNAME, NOTIFY_BATCH_SIZE, NOTIFY_PAUSE_SECONDS,
                     REQUEST_TIMEOUT)
from .errors import DispatchFailure
from .models import ChangeEvent, ChangeKind
from .utils import get_http_session

logger = logging.getLogger(__name__)

Sink = Callable[[List[dict]], None]

_HEADINGS = {
    ChangeKind.NEW: "🆕 New item: {title}",
    ChangeKind.REMOVED: "🗑️ Removed from collection: {title}",
    ChangeKind.LISTED: "📢 Now public: {title}",
    ChangeKind.UNLISTED: "🙈 Unlisted: {title}",
    ChangeKind.UNAVAILABLE: "⛔ Unavailable: {title}",
    ChangeKind.UPDATED: "🔄 Updated: {title}",
    ChangeKind.TITLE_CHANGED: "✏️ Renamed: {title}",
    ChangeKind.TITLE_AND_UPDATED: "✏️ Renamed & updated: {title}",
}

_COLORS = {
    ChangeKind.NEW: 0x2ECC71,
    ChangeKind.REMOVED: 0x95A5A6,
    ChangeKind.LISTED: 0x3498DB,
    ChangeKind.UNLISTED: 0xE67E22,
    ChangeKind.UNAVAILABLE: 0xE74C3C,
    ChangeKind.UPDATED: 0x1ABC9C,
    ChangeKind.TITLE_CHANGED: 0x9B59B6,
    ChangeKind.TITLE_AND_UPDATED: 0xF1C40F,
}

_DESCRIPTIONS = {
    ChangeKind.NEW: "🆕 Item added to the collection.",
    ChangeKind.REMOVED: "🗑️ Item is no longer part of the collection.",
    ChangeKind.LISTED: "📢 Item is visible through the Steam API again.",
    ChangeKind.UNLISTED: "🙈 Item is hidden from the Steam API (unlisted or friends-only).",
    ChangeKind.UNAVAILABLE: "⛔ Item can no longer be accessed.",
    ChangeKind.UPDATED: "🆕 New update published.",
    ChangeKind.TITLE_CHANGED: "✏️ Title changed.",
    ChangeKind.TITLE_AND_UPDATED: "✏️ Title changed & new update published.",
}

# Events about an item going away read better under the name it had.
_PREFER_OLD_TITLE = (ChangeKind.REMOVED, ChangeKind.UNAVAILABLE)

_MAX_TITLE = 256
_MAX_FIELD = 1024
_RENAMES = (ChangeKind.TITLE_CHANGED, ChangeKind.TITLE_AND_UPDATED)


def _format_time(ts: Optional[int]) -> str:
    if ts is None:
        return "Unknown"
    return datetime.fromtimestamp(int(ts), tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


def _display_title(event: ChangeEvent) -> str:
    if event.kind in _PREFER_OLD_TITLE:
        return event.old_title or event.new_title or "Unknown"
    return event.new_title or event.old_title or "Unknown"


def _body(event: ChangeEvent) -> str:
    if event.kind in _RENAMES:
        return f"“{event.old_title or 'Unknown'}” → “{event.new_title or 'Unknown'}”"[:4096]
    if event.kind is ChangeKind.UPDATED:
        return f"{_format_time(event.old_time)} → {_format_time(event.new_time)} (UTC)"
    return _DESCRIPTIONS[event.kind]


def render_event(event: ChangeEvent) -> dict:
    """Render one change event as a Discord embed."""
    heading = _HEADINGS[event.kind].format(title=_display_title(event))
    if len(heading) > _MAX_TITLE:
        heading = heading[: _MAX_TITLE - 1] + "…"

    last_update = event.new_time if event.new_time is not None else event.old_time
    fields = [
        {"name": "🕒 Last Update", "value": _format_time(last_update), "inline": True},
        {"name": "🔗 Workshop Link", "value": event.url, "inline": False},
        {"name": "ℹ️ Change", "value": _DESCRIPTIONS[event.kind], "inline": False},
    ]
    if event.kind in _RENAMES and event.old_title and event.old_title != event.new_title:
        fields.append({"name": "📝 Previous Title", "value": event.old_title[:_MAX_FIELD], "inline": False})

    embed = {
        "title": heading,
        "url": event.url,
        "description": _body(event),
        "color": _COLORS[event.kind],
        "fields": fields,
        "footer": {"text": f"Workshop item {event.id}"},
    }
    if event.preview_url:
        embed["thumbnail"] = {"url": event.preview_url}
    return embed


def render_events(events: Iterable[ChangeEvent]) -> List[dict]:
    return [render_event(e) for e in events]


@dataclass
class DispatchReport:
    sent: int = 0
    failed: int = 0
    batches: int = 0


def dispatch(
    units: Sequence[dict],
    sink: Sink,
    *,
    batch_size: int = NOTIFY_BATCH_SIZE,
    pause: float = NOTIFY_PAUSE_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> DispatchReport:
    """Deliver ``units`` to ``sink`` in sequential batches with a pause in between."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")

    report = DispatchReport()
    chunks = [list(units[i : i + batch_size]) for i in range(0, len(units), batch_size)]
    for n, chunk in enumerate(chunks):
        if n > 0 and pause > 0:
            sleep(pause)
        report.batches += 1
        try:
            sink(chunk)
        except DispatchFailure as e:
            report.failed += len(chunk)
            logger.error("Notification batch %d/%d failed: %s", n + 1, len(chunks), e)
            continue
        report.sent += len(chunk)
        logger.info("Sent notification batch %d/%d (%d embeds)", n + 1, len(chunks), len(chunk))
    return report


class RateLimited(Exception):
    def __init__(self, retry_after: float) -> None:
        super().__init__(f"rate limited, retry after {retry_after:.2f}s")
        self.retry_after = retry_after


def _wait_retry_after(retry_state) -> float:
    exc = retry_state.outcome.exception()
    return max(0.0, float(getattr(exc, "retry_after", 1.0)))


def _retry_after_seconds(resp: requests.Response) -> float:
    try:
        body = resp.json()
        if isinstance(body, dict) and body.get("retry_after") is not None:
            return float(body["retry_after"])
    except ValueError:
        pass
    try:
        return float(resp.headers.get("Retry-After", "1"))
    except ValueError:
        return 1.0


class DiscordSink:
    """Posts batches of embeds to a Discord webhook."""

    def __init__(
        self,
        webhook_url: str,
        *,
        username: str = DISCORD_USERNAME,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
        max_attempts: int = 3,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.webhook_url = webhook_url
        self.username = username
        self.session = session or get_http_session()
        self.timeout = timeout
        self.max_attempts = max_attempts
        self._sleep = sleep

    def _post_once(self, payload: dict) -> None:
        try:
            resp = self.session.post(self.webhook_url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise DispatchFailure(f"webhook request failed: {e}") from e
        if resp.status_code == 429:
            raise RateLimited(_retry_after_seconds(resp))
        if not 200 <= resp.status_code < 300:
            raise DispatchFailure(f"webhook returned HTTP {resp.status_code}: {(resp.text or '')[:200]}")

    def __call__(self, units: List[dict]) -> None:
        payload = {"username": self.username, "embeds": list(units)}
        retrying = Retrying(
            reraise=True,
            stop=stop_after_attempt(self.max_attempts),
            wait=_wait_retry_after,
            retry=retry_if_exception_type(RateLimited),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
        )
        try:
            for attempt in retrying:
                with attempt:
                    self._post_once(payload)
        except RateLimited as e:
            raise DispatchFailure(f"webhook still rate limited after {self.max_attempts} attempts") from e

    def close(self) -> None:
        self.session.close()


class LogSink:
    """Dry-run sink: logs what would have been posted."""

    def __call__(self, units: List[dict]) -> None:
        for embed in units:
            logger.info("[dry-run] %s | %s", embed.get("title"), embed.get("url"))


__all__ = [
    "render_event",
    "render_events",
    "DispatchReport",
    "dispatch",
    "RateLimited",
    "DiscordSink",
    "LogSink",
]
