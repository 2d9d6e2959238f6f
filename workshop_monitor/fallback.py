"""Workshop page fallback for items the Web API refuses to describe.

Unlisted, friends-only and freshly removed items come back from
GetPublishedFileDetails with a non-OK result. Their public ``filedetails``
page often still carries the title, preview and update time, so we fetch it
the way a browser would (warm-up for the ``sessionid`` cookie, then the
item page) and pull the fields out with a few patterns.
"""

from __future__ import annotations

import logging
import random
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import requests
from bs4 import BeautifulSoup

from .config import FALLBACK_DELAY_SECONDS, REQUEST_TIMEOUT, STEAM_COMMUNITY_BASE
from .errors import DocumentParseIncomplete, DocumentUnavailable
from .models import Channel, ItemRecord
from .utils import get_document_session

logger = logging.getLogger(__name__)

# Heading of Steam's "item not found / no access" page.
ERROR_PAGE_TITLE = "There was a problem accessing the item."
# Title used when the page itself could not be retrieved.
UNAVAILABLE_TITLE = "Unavailable resource"
# Title used when the page has content but no recognizable title.
RESTRICTED_TITLE = "Restricted item"
# Pages smaller than this (UTF-8 bytes) without a title are treated as error stubs.
MIN_RESTRICTED_BYTES = 5000

# Steam shows times in US Pacific local time without a zone marker.
PACIFIC_STANDARD = timezone(timedelta(hours=-8))
PACIFIC_DAYLIGHT = timezone(timedelta(hours=-7))

_MONTHS = {
    name: idx
    for idx, names in enumerate(
        [
            ("jan", "january"), ("feb", "february"), ("mar", "march"),
            ("apr", "april"), ("may",), ("jun", "june"), ("jul", "july"),
            ("aug", "august"), ("sep", "sept", "september"), ("oct", "october"),
            ("nov", "november"), ("dec", "december"),
        ],
        start=1,
    )
    for name in names
}

_DATE_RE = re.compile(
    r"(?P<day>\d{1,2})\s+(?P<month>[A-Za-z]+)\.?"
    r"(?:\s*,\s*(?P<year>\d{4}))?"
    r"\s*@\s*(?P<hour>\d{1,2}):(?P<minute>\d{2})\s*(?P<ampm>[ap]m)",
    re.IGNORECASE,
)

_PAGE_HEADING_RE = re.compile(r"^\s*Steam Workshop\s*::\s*(?P<title>.+?)\s*$", re.DOTALL)
_TIMESTAMP_ATTR_RE = re.compile(r"""data-timestamp\s*=\s*["']?(\d{9,11})\b""")
_ERROR_TEXT_RE = re.compile(r"There was a problem accessing the item", re.IGNORECASE)

_PREVIEW_SELECTORS = [
    'link[rel="image_src"]',
    'meta[property="og:image"]',
    "img#previewImageMain",
    "img#previewImage",
]


# ---------------------------
# Date parsing
# ---------------------------

def _pacific_offset(month: int, day: int) -> timezone:
    """Fixed DST heuristic: daylight from 8 Mar through 7 Nov."""
    if 4 <= month <= 10:
        return PACIFIC_DAYLIGHT
    if month == 3:
        return PACIFIC_DAYLIGHT if day >= 8 else PACIFIC_STANDARD
    if month == 11:
        return PACIFIC_DAYLIGHT if day <= 7 else PACIFIC_STANDARD
    return PACIFIC_STANDARD


def parse_steam_date(text: str, now: Optional[datetime] = None) -> Optional[int]:
    """
    Parse "15 Mar, 2023 @ 2:30pm" (year optional) into epoch seconds.

    A missing year means the year of ``now`` (defaults to the current UTC
    time). Returns None for anything that does not parse.
    """
    if not text:
        return None
    m = _DATE_RE.search(text)
    if not m:
        return None

    month = _MONTHS.get(m.group("month").lower())
    if month is None:
        return None
    day = int(m.group("day"))
    hour = int(m.group("hour"))
    minute = int(m.group("minute"))
    if not 1 <= hour <= 12 or minute > 59:
        return None
    hour = hour % 12
    if m.group("ampm").lower() == "pm":
        hour += 12

    if m.group("year"):
        year = int(m.group("year"))
    else:
        year = (now or datetime.now(timezone.utc)).year

    try:
        local = datetime(year, month, day, hour, minute, tzinfo=_pacific_offset(month, day))
    except ValueError:
        return None
    return int(local.timestamp())


# ---------------------------
# Field extraction
# ---------------------------

def _is_error_page(soup: BeautifulSoup, html: str) -> bool:
    if soup.select_one("div.error_ctn"):
        return True
    return bool(_ERROR_TEXT_RE.search(html))


def _extract_title(soup: BeautifulSoup) -> str:
    el = soup.select_one("div.workshopItemTitle")
    if el:
        title = el.get_text(" ", strip=True)
        if title:
            return title
    if soup.title:
        m = _PAGE_HEADING_RE.match(soup.title.get_text())
        if m:
            return m.group("title")
    raise DocumentParseIncomplete("no title pattern matched")


def _extract_preview(soup: BeautifulSoup) -> Optional[str]:
    for sel in _PREVIEW_SELECTORS:
        el = soup.select_one(sel)
        if not el:
            continue
        # link provides href, meta provides content, img provides src
        src = el.get("href") or el.get("content") or el.get("src")
        if src:
            return str(src).strip()
    return None


def _extract_timestamp(soup: BeautifulSoup, html: str, now: Optional[datetime]) -> Optional[int]:
    m = _TIMESTAMP_ATTR_RE.search(html)
    if m:
        return int(m.group(1))
    # Stats read File Size, Posted, Updated; the last date wins.
    found: Optional[int] = None
    for el in soup.select("div.detailsStatRight"):
        ts = parse_steam_date(el.get_text(" ", strip=True), now=now)
        if ts is not None:
            found = ts
    return found


def parse_document(
    item_id: str,
    html: str,
    *,
    result: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ItemRecord:
    """Classify a fetched Workshop page into an item record."""
    soup = BeautifulSoup(html, "html.parser")

    if _is_error_page(soup, html):
        logger.info("Fallback: item %s shows the Steam error page", item_id)
        return ItemRecord(id=item_id, title=ERROR_PAGE_TITLE, channel=Channel.UNAVAILABLE, result=result)

    preview = _extract_preview(soup)
    updated = _extract_timestamp(soup, html, now)

    try:
        title = _extract_title(soup)
    except DocumentParseIncomplete:
        size = len(html.encode("utf-8"))
        if size >= MIN_RESTRICTED_BYTES:
            logger.info("Fallback: item %s has content but no title (restricted)", item_id)
            return ItemRecord(
                id=item_id,
                title=RESTRICTED_TITLE,
                time_updated=updated,
                channel=Channel.FALLBACK,
                preview_url=preview,
                result=result,
            )
        logger.info("Fallback: item %s page too small to be an item (%d bytes)", item_id, size)
        return ItemRecord(id=item_id, title=ERROR_PAGE_TITLE, channel=Channel.UNAVAILABLE, result=result)

    if updated is None:
        logger.debug("Fallback: no update time found for %s", item_id)
    return ItemRecord(
        id=item_id,
        title=title,
        time_updated=updated,
        channel=Channel.FALLBACK,
        preview_url=preview,
        result=result,
    )


# ---------------------------
# Retrieval
# ---------------------------

def _item_page_url(community_base: str) -> str:
    return f"{community_base.rstrip('/')}/sharedfiles/filedetails/"


def _fetch_document(
    session: requests.Session,
    item_id: str,
    community_base: str,
    timeout: float,
) -> str:
    """Warm up the session (sessionid cookie), then fetch the item page."""
    try:
        warm = session.get(community_base.rstrip("/") + "/", timeout=timeout, allow_redirects=True)
        warm.raise_for_status()
        resp = session.get(
            _item_page_url(community_base),
            params={"id": item_id},
            timeout=timeout,
            allow_redirects=True,
        )
        resp.raise_for_status()
    except requests.RequestException as e:
        raise DocumentUnavailable(f"item {item_id}: {e}") from e
    return resp.text or ""


def _courtesy_pause(delay: float, sleep: Callable[[float], None]) -> None:
    if delay and delay > 0:
        sleep(delay + random.uniform(0, delay / 2))


def resolve_item(
    item_id: str,
    *,
    result: Optional[int] = None,
    community_base: str = STEAM_COMMUNITY_BASE,
    session_factory: Callable[[str], requests.Session] = get_document_session,
    delay: float = FALLBACK_DELAY_SECONDS,
    timeout: float = REQUEST_TIMEOUT,
    sleep: Callable[[float], None] = time.sleep,
    now: Optional[datetime] = None,
) -> ItemRecord:
    """Resolve a single denied item through its public Workshop page."""
    session = session_factory(community_base)
    try:
        _courtesy_pause(delay, sleep)
        try:
            html = _fetch_document(session, item_id, community_base, timeout)
        except DocumentUnavailable as e:
            logger.warning("Fallback: %s", e)
            return ItemRecord(
                id=item_id,
                title=UNAVAILABLE_TITLE,
                channel=Channel.UNAVAILABLE,
                result=result,
            )
        return parse_document(item_id, html, result=result, now=now)
    finally:
        session.close()


__all__ = [
    "ERROR_PAGE_TITLE",
    "UNAVAILABLE_TITLE",
    "RESTRICTED_TITLE",
    "MIN_RESTRICTED_BYTES",
    "PACIFIC_STANDARD",
    "PACIFIC_DAYLIGHT",
    "parse_steam_date",
    "parse_document",
    "resolve_item",
]
