"""
Responsible for "discovery": find the contiguous run of preview pages [0, N)
the origin serves for an identifier.

The origin publishes no index, so pages are probed in batches:
  1) Start the title fetch (best effort, never gates image discovery).
  2) Fetch `concurrency` consecutive pages at once.
  3) Retry a transiently failed page per the RetryPolicy; a page that still
     fails counts as missing, i.e. the end of the sequence.
  4) Scan the batch in index order; the first missing page truncates the run
     (found pages after it in the same batch are dropped).
  5) A complete batch moves on to the next one; an incomplete one stops.

Zero pages raises PreviewNotFound.
"""

import asyncio
import logging
from typing import List, Optional

from .models import PreviewEntry, PreviewPage
from .origin import Found, OriginClient, Outcome, is_transient
from .retry import RetryPolicy, retry_transient

logger = logging.getLogger("preview.discovery")

class PreviewNotFound(LookupError):
    """No preview pages exist at the origin for this identifier."""

    def __init__(self, identifier: str):
        super().__init__(f"No images found for {identifier}")
        self.identifier = identifier

class SequenceDiscoverer:

    def __init__(self, origin: OriginClient, concurrency: int = 5,
                 retry: Optional[RetryPolicy] = None, max_pages: int = 0):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.origin = origin
        self.concurrency = concurrency
        self.retry = retry or RetryPolicy()
        self.max_pages = max_pages # 0 = no cap

    async def _fetch_page(self, identifier: str, page: int) -> Outcome:
        return await retry_transient(
            self.origin.fetch_image, self.retry, is_transient, identifier, page
        )

    def _batch_indexes(self, start: int) -> range:
        stop = start + self.concurrency
        if self.max_pages:
            stop = min(stop, self.max_pages)
        return range(start, stop)

    async def discover_pages(self, identifier: str) -> List[PreviewPage]:
        pages: List[PreviewPage] = []
        start = 0
        while True:
            indexes = self._batch_indexes(start)
            if not indexes:
                logger.info("Reached MAX_PAGES=%s for %s", self.max_pages, identifier)
                break

            # gather() returns results in argument order, not completion order
            outcomes = await asyncio.gather(
                *(self._fetch_page(identifier, i) for i in indexes)
            )

            complete = True
            for idx, outcome in zip(indexes, outcomes):
                if not isinstance(outcome, Found):
                    logger.info("Sequence for %s ends at page %s (%s)",
                                identifier, idx, type(outcome).__name__)
                    complete = False
                    break
                pages.append(PreviewPage(source_url=outcome.url, data=outcome.data))

            if not complete:
                break
            logger.info("Batch %s-%s complete for %s", indexes[0], indexes[-1], identifier)
            start = indexes[-1] + 1
        return pages

    async def discover(self, identifier: str) -> PreviewEntry:
        """
        Run title fetch and page discovery together and build a PreviewEntry.
        Raises PreviewNotFound when the origin has no pages at all.
        """
        title_task = asyncio.create_task(self.origin.fetch_title(identifier))
        try:
            pages = await self.discover_pages(identifier)
        except BaseException:
            title_task.cancel()
            raise
        title = await title_task

        if not pages:
            raise PreviewNotFound(identifier)

        logger.info("Discovered %s pages for %s", len(pages), identifier)
        return PreviewEntry(identifier=identifier, title=title, pages=pages)
