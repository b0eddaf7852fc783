"""
In-memory preview cache: identifier -> PreviewEntry.

One entry per identifier, replaced wholesale on put(). There is no TTL; entries
live until invalidate(), clear_all() (explicit request or the weekly
housekeeping timer) or, with single_use enabled, the first cache-backed
document built from them. Memory grows with the number of distinct
identifiers requested between clears.
"""

import logging
from typing import Dict, Optional

from .models import PreviewEntry

logger = logging.getLogger("preview.cache")

class PreviewCache:

    def __init__(self, single_use: bool = True):
        # single_use: drop an entry once a document has been built from it
        self.single_use = single_use
        self._entries: Dict[str, PreviewEntry] = {}

    def get(self, identifier: str) -> Optional[PreviewEntry]:
        return self._entries.get(identifier)

    def put(self, identifier: str, entry: PreviewEntry) -> None:
        self._entries[identifier] = entry
        logger.info("Cached %s (%s pages)", identifier, len(entry.pages))

    def invalidate(self, identifier: str) -> bool:
        """Remove one entry. Returns True if something was removed."""
        removed = self._entries.pop(identifier, None) is not None
        if removed:
            logger.info("Invalidated %s", identifier)
        return removed

    def clear_all(self) -> int:
        """Remove every entry and return how many were dropped."""
        count = len(self._entries)
        self._entries.clear()
        logger.info("Cache cleared (%s entries)", count)
        return count

    def consumed(self, identifier: str) -> None:
        """
        Called after a document was assembled from this identifier's entry.
        """
        if self.single_use:
            self.invalidate(identifier)

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._entries

    def __len__(self) -> int:
        return len(self._entries)
