"""Exception taxonomy.

`RunAborted` subclasses end the run with a non-zero exit status. Everything
else is raised and handled inside the component that owns it and ends up as
data (an item record, a dropped batch, a failed dispatch count).
"""

from __future__ import annotations


class WorkshopMonitorError(Exception):
    """Base class for all monitor errors."""


class ConfigError(WorkshopMonitorError):
    """Raised when required configuration is missing or invalid."""


# ---- Terminal ------------------------------------------------------------------

class RunAborted(WorkshopMonitorError):
    """A failure that stops the run before anything is written or sent."""


class CollectionNotFound(RunAborted):
    pass


class CollectionPrivate(RunAborted):
    pass


class CollectionEmpty(RunAborted):
    pass


class ServiceUnreachable(RunAborted):
    pass


# ---- Degrading -----------------------------------------------------------------

class BatchTransportFailure(WorkshopMonitorError):
    """A details request for a whole batch failed; its items are dropped."""

    def __init__(self, index: int, message: str) -> None:
        super().__init__(f"batch {index}: {message}")
        self.index = index


class ItemRetrievalDenied(WorkshopMonitorError):
    """The API refused details for one item; the fallback path takes over."""

    def __init__(self, item_id: str, result: int | None) -> None:
        super().__init__(f"item {item_id} denied by API (result={result})")
        self.item_id = item_id
        self.result = result


class DocumentUnavailable(WorkshopMonitorError):
    """The Workshop page could not be retrieved."""


class DocumentParseIncomplete(WorkshopMonitorError):
    """The Workshop page was retrieved but no title could be extracted."""


class DispatchFailure(WorkshopMonitorError):
    """The notification sink rejected a batch."""


class SnapshotCorrupt(WorkshopMonitorError):
    """The stored snapshot could not be parsed."""


__all__ = [
    "WorkshopMonitorError",
    "ConfigError",
    "RunAborted",
    "CollectionNotFound",
    "CollectionPrivate",
    "CollectionEmpty",
    "ServiceUnreachable",
    "BatchTransportFailure",
    "ItemRetrievalDenied",
    "DocumentUnavailable",
    "DocumentParseIncomplete",
    "DispatchFailure",
    "SnapshotCorrupt",
]
