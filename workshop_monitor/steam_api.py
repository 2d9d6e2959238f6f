"""Steam Web API access (ISteamRemoteStorage).

Both endpoints take form-encoded POST bodies with indexed
``publishedfileids[i]`` keys and answer with a ``response`` envelope whose
``result`` values follow Steam's EResult codes.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

import requests

from .config import REQUEST_TIMEOUT, STEAM_API_BASE
from .errors import (CollectionEmpty, CollectionNotFound, CollectionPrivate,
                     ServiceUnreachable)
from .models import Collection
from .utils import get_http_session

logger = logging.getLogger(__name__)

RESULT_OK = 1
RESULT_FILE_NOT_FOUND = 9
RESULT_ACCESS_DENIED = 15


def _build_collection_endpoint(api_base: str) -> str:
    return f"{api_base.rstrip('/')}/ISteamRemoteStorage/GetCollectionDetails/v1/"


def _build_details_endpoint(api_base: str) -> str:
    return f"{api_base.rstrip('/')}/ISteamRemoteStorage/GetPublishedFileDetails/v1/"


def _post(session: requests.Session, url: str, **kwargs) -> requests.Response:
    """POST and raise for HTTP errors. No retry: one call, one outcome."""
    resp = session.post(url, **kwargs)
    resp.raise_for_status()
    return resp


def _indexed_ids(ids: Sequence[str]) -> Dict[str, str]:
    return {f"publishedfileids[{i}]": str(pid) for i, pid in enumerate(ids)}


def query_details(
    ids: Sequence[str],
    *,
    session: requests.Session,
    api_base: str = STEAM_API_BASE,
    timeout: float = REQUEST_TIMEOUT,
) -> List[dict]:
    """
    Call GetPublishedFileDetails for ``ids`` and return the raw per-item dicts.

    Raises ``requests.RequestException`` on transport/HTTP failure and
    ``ValueError`` when the body is not the expected JSON envelope.
    """
    data = {"itemcount": str(len(ids))}
    data.update(_indexed_ids(ids))
    resp = _post(session, _build_details_endpoint(api_base), data=data, timeout=timeout)
    payload = resp.json()
    response = payload.get("response") if isinstance(payload, dict) else None
    if not isinstance(response, dict):
        raise ValueError("response envelope missing or not an object")
    details = response.get("publishedfiledetails")
    if not isinstance(details, list):
        raise ValueError("response.publishedfiledetails missing")
    return details


def fetch_collection_name(
    collection_id: str,
    *,
    session: requests.Session,
    api_base: str = STEAM_API_BASE,
    timeout: float = REQUEST_TIMEOUT,
) -> Optional[str]:
    """Best-effort lookup of the collection's display name."""
    try:
        details = query_details([collection_id], session=session, api_base=api_base, timeout=timeout)
    except (requests.RequestException, ValueError):
        logger.debug("Collection name lookup failed for %s", collection_id, exc_info=True)
        return None
    for d in details:
        if isinstance(d, dict) and d.get("result") == RESULT_OK:
            title = str(d.get("title") or "").strip()
            return title or None
    return None


def resolve_collection(
    collection_id: str,
    *,
    session: Optional[requests.Session] = None,
    api_base: str = STEAM_API_BASE,
    timeout: float = REQUEST_TIMEOUT,
) -> Collection:
    """Return the ordered child ids (and name) of a Workshop collection."""
    close_session = False
    if session is None:
        session = get_http_session()
        close_session = True

    try:
        data = {"collectioncount": "1"}
        data.update(_indexed_ids([collection_id]))
        logger.debug("Collection fetch: %s", collection_id)
        try:
            resp = _post(session, _build_collection_endpoint(api_base), data=data, timeout=timeout)
            payload = resp.json()
        except requests.RequestException as e:
            raise ServiceUnreachable(f"collection request failed: {e}") from e
        except ValueError as e:
            raise ServiceUnreachable("collection response was not JSON") from e

        response = payload.get("response") if isinstance(payload, dict) else None
        details = response.get("collectiondetails") if isinstance(response, dict) else None
        if not isinstance(details, list) or not details or not isinstance(details[0], dict):
            raise ServiceUnreachable("collection response was empty or malformed")

        entry = details[0]
        result = entry.get("result")
        if result == RESULT_FILE_NOT_FOUND:
            raise CollectionNotFound(f"collection {collection_id} does not exist")
        if result == RESULT_ACCESS_DENIED:
            raise CollectionPrivate(f"collection {collection_id} is private or friends-only")
        if result != RESULT_OK:
            raise ServiceUnreachable(f"collection {collection_id} returned result={result}")

        children = entry.get("children") or []
        child_ids = tuple(
            str(c["publishedfileid"])
            for c in children
            if isinstance(c, dict) and c.get("publishedfileid")
        )
        if not child_ids:
            raise CollectionEmpty(f"collection {collection_id} has no items")

        name = fetch_collection_name(collection_id, session=session, api_base=api_base, timeout=timeout)
        logger.info(
            "Collection %s (%s) has %d items", collection_id, name or "unnamed", len(child_ids)
        )
        return Collection(id=str(collection_id), child_ids=child_ids, name=name)
    finally:
        if close_session:
            session.close()


__all__ = [
    "RESULT_OK",
    "RESULT_FILE_NOT_FOUND",
    "RESULT_ACCESS_DENIED",
    "query_details",
    "fetch_collection_name",
    "resolve_collection",
]
