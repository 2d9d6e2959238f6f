"""
Steam Workshop collection monitor package.

This package contains modules for capturing a Workshop collection through
the Steam Web API (with a Workshop page fallback for hidden items),
persisting the capture, classifying changes between captures and notifying
Discord.  See README.md for details.
"""

__all__ = [
    "config",
    "errors",
    "models",
    "steam_api",
    "fetcher",
    "fallback",
    "store",
    "differ",
    "notifier",
    "main",
    "utils",
]
