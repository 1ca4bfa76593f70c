"""Background metadata enrichment for feed records."""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

import aiohttp

from .errors import EnrichmentError
from .models import EnrichmentOutcome, FeedEvent, FeedRecord
from .store import FeedStore
from .utils.logging import log_with_context

logger = logging.getLogger(__name__)


class EnrichmentPool:
    """
    Inserts a placeholder record per event and enriches it in the background.

    Each lookup runs in its own task with a hard timeout and a single attempt;
    a failure marks only that record as Failed. Lookups complete in any order
    and are merged back by identity and revision, so a late result can neither
    land on the wrong record nor overwrite a newer insertion of the same token.

    With ``max_concurrency`` unset the number of in-flight lookups is
    unbounded; setting it queues lookups behind a semaphore (queue time does not
    count toward the timeout).
    """

    def __init__(
        self,
        store: FeedStore,
        client,
        timeout_seconds: float = 10.0,
        max_concurrency: Optional[int] = None
    ):
        self.store = store
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

        self.stats = {
            'submitted': 0,
            'skipped_no_uri': 0,
            'loaded': 0,
            'failed': 0,
            'timeouts': 0,
        }

        logger.info(
            f"EnrichmentPool initialized: timeout={timeout_seconds}s, "
            f"max_concurrency={max_concurrency or 'unbounded'}"
        )

    def submit(self, event: FeedEvent) -> Optional[FeedRecord]:
        """
        Insert ``event`` as a Pending record and start its lookup.

        The record is in the store when this returns; the lookup (if any) runs
        in the background.
        """
        if self._closed:
            logger.debug(f"Pool closed, dropping event for {event.identity}")
            return None

        record = self.store.insert(FeedRecord.pending(event))
        if record is None:
            logger.debug(f"Store closed, dropping event for {event.identity}")
            return None
        self.stats['submitted'] += 1

        if not event.descriptor_uri:
            self.stats['skipped_no_uri'] += 1
            self.stats['failed'] += 1
            self.store.merge_enrichment(
                record.identity,
                EnrichmentOutcome.failed("No metadata URI"),
                revision=record.revision
            )
            return record

        task = asyncio.create_task(self._enrich(record))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return record

    async def _enrich(self, record: FeedRecord):
        if self._semaphore is not None:
            async with self._semaphore:
                outcome = await self._lookup(record)
        else:
            outcome = await self._lookup(record)

        self.store.merge_enrichment(record.identity, outcome, revision=record.revision)

    async def _lookup(self, record: FeedRecord) -> EnrichmentOutcome:
        uri = record.descriptor_uri

        try:
            metadata = await asyncio.wait_for(self.client.fetch(uri), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            self.stats['timeouts'] += 1
            return self._failure(record, f"Timed out after {self.timeout_seconds}s")
        except (EnrichmentError, aiohttp.ClientError, ValueError) as e:
            return self._failure(record, str(e) or type(e).__name__)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Unexpected enrichment error for {record.identity}: {e}", exc_info=True)
            return self._failure(record, f"Unexpected error: {e}")

        self.stats['loaded'] += 1
        logger.debug(f"Loaded metadata for {record.identity}")
        return EnrichmentOutcome.loaded(metadata)

    def _failure(self, record: FeedRecord, reason: str) -> EnrichmentOutcome:
        self.stats['failed'] += 1
        log_with_context(
            logger, logging.WARNING,
            f"Failed to fetch metadata for token {record.identity}: {reason}",
            identity=record.identity,
            uri=record.descriptor_uri
        )
        return EnrichmentOutcome.failed(reason)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None):
        """Wait for outstanding lookups to finish (each is bounded by its own timeout)."""
        if not self._tasks:
            return

        pending = list(self._tasks)
        logger.info(f"Waiting for {len(pending)} in-flight lookups")
        _, not_done = await asyncio.wait(pending, timeout=timeout)

        if not_done:
            logger.warning(f"Cancelling {len(not_done)} lookups still running after drain timeout")
            for task in not_done:
                task.cancel()
            await asyncio.gather(*not_done, return_exceptions=True)

    def close(self):
        """Stop accepting new events; running lookups continue."""
        self._closed = True

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            'in_flight': self.in_flight,
            'max_concurrency': self.max_concurrency,
            'closed': self._closed,
        }
