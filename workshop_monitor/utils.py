"""Helper utilities.

This module centralises common helper functions such as creating a
configured HTTP session and building randomized browser identities for
the Workshop page fallback.
"""

from __future__ import annotations

import logging
import random
from typing import Dict, Optional

import requests


logger = logging.getLogger(__name__)


def get_http_session() -> requests.Session:
    """Return a new HTTP session for the Steam Web API.

    Caller is responsible for closing the session or letting it be
    garbage collected.
    """
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": "Mozilla/5.0 (compatible; WorkshopMonitor/1.0; +https://github.com/)",
            "Accept": "application/json, text/javascript, */*; q=0.01",
        }
    )
    return session


_BROWSER_UAS = [
    # A handful of realistic desktop UAs. Rotate to avoid simple blocks.
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0 Safari/537.36 Edg/126.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_4) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:127.0) Gecko/20100101 Firefox/127.0",
]

_ACCEPT_LANGUAGES = [
    "en-US,en;q=0.9",
    "en-GB,en;q=0.8",
    "en-US,en;q=0.8,de;q=0.5",
    "en;q=0.9",
]

_PLATFORMS = ['"Windows"', '"macOS"', '"Linux"']


def random_identity(base_url: str, rng: Optional[random.Random] = None) -> Dict[str, str]:
    """
    Return realistic browser headers with a randomized client identity and
    request fingerprint.
    """
    rng = rng or random
    ua = rng.choice(_BROWSER_UAS)
    major = rng.randint(120, 127)
    return {
        "User-Agent": ua,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": rng.choice(_ACCEPT_LANGUAGES),
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Site": "same-origin",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-User": "?1",
        "Sec-Fetch-Dest": "document",
        "sec-ch-ua": f'"Chromium";v="{major}", "Not.A/Brand";v="24"',
        "sec-ch-ua-platform": rng.choice(_PLATFORMS),
        "Referer": base_url.rstrip("/") + "/",
    }


def get_document_session(base_url: str) -> requests.Session:
    """Return an isolated session carrying a fresh random identity."""
    session = requests.Session()
    session.headers.update(random_identity(base_url))
    return session


__all__ = ["get_http_session", "random_identity", "get_document_session"]
