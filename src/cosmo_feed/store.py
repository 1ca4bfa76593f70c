"""Ordered, bounded feed store keyed by token identity."""

import itertools
import logging
import threading
from collections import OrderedDict
from dataclasses import replace
from typing import Any, Dict, List, Optional

from .models import EnrichmentOutcome, EnrichmentState, FeedRecord

logger = logging.getLogger(__name__)


class FeedStore:
    """
    The single shared collection of feed records.

    Features:
    - Newest-first ordering, one record per identity (last write wins)
    - Bounded size with oldest-first eviction
    - Identity-keyed enrichment merges that never reorder the feed
    - One lock around every read and write

    Records live in an ``OrderedDict`` whose tail is the newest record, so
    inserts, replacements, merges and evictions are all O(1).
    """

    def __init__(self, max_records: int = 1000):
        if max_records < 1:
            raise ValueError("max_records must be at least 1")

        self.max_records = max_records
        self._records: "OrderedDict[str, FeedRecord]" = OrderedDict()
        self._lock = threading.Lock()
        self._revisions = itertools.count(1)
        self._closed = False

        self.stats = {
            'inserted': 0,
            'replaced': 0,
            'evicted': 0,
            'merges_applied': 0,
            'merges_dropped': 0,
        }

        logger.info(f"FeedStore initialized: max_records={max_records}")

    def insert(self, record: FeedRecord) -> Optional[FeedRecord]:
        """
        Put ``record`` at the head of the feed.

        An existing record with the same identity is replaced, not duplicated.
        Returns the stored record stamped with its revision, or None if the
        store is closed and nothing was stored.
        """
        with self._lock:
            if self._closed:
                logger.debug(f"Store closed, ignoring insert for {record.identity}")
                return None

            stored = replace(record, revision=next(self._revisions))

            if stored.identity in self._records:
                del self._records[stored.identity]
                self.stats['replaced'] += 1

            self._records[stored.identity] = stored
            self.stats['inserted'] += 1

            while len(self._records) > self.max_records:
                evicted_identity, _ = self._records.popitem(last=False)
                self.stats['evicted'] += 1
                logger.debug(f"Evicted oldest record {evicted_identity}")

            return stored

    def merge_enrichment(
        self,
        identity: str,
        outcome: EnrichmentOutcome,
        revision: Optional[int] = None
    ) -> bool:
        """
        Apply an enrichment outcome to the record for ``identity``.

        Only ``enrichment``, ``enrichment_state`` and ``enrichment_error`` change;
        position and event fields stay as they are. The merge is a no-op when the
        record is gone, already terminal, or (if ``revision`` is given) has been
        replaced since the lookup started.

        Returns:
            True if the record was updated
        """
        if not outcome.state.is_terminal:
            raise ValueError("Enrichment outcome must be Loaded or Failed")

        with self._lock:
            current = None if self._closed else self._records.get(identity)

            if (
                current is None
                or current.enrichment_state.is_terminal
                or (revision is not None and current.revision != revision)
            ):
                self.stats['merges_dropped'] += 1
                logger.debug(f"Dropped enrichment merge for {identity}")
                return False

            # Assigning an existing key keeps its position in the OrderedDict
            self._records[identity] = replace(
                current,
                enrichment=outcome.metadata if outcome.state is EnrichmentState.LOADED else None,
                enrichment_state=outcome.state,
                enrichment_error=outcome.error,
            )
            self.stats['merges_applied'] += 1
            return True

    def snapshot(self, limit: Optional[int] = None) -> List[FeedRecord]:
        """Return the feed newest-first, optionally truncated to ``limit`` records."""
        with self._lock:
            records = list(reversed(self._records.values()))

        if limit is not None:
            records = records[:max(limit, 0)]
        return records

    def get(self, identity: str) -> Optional[FeedRecord]:
        with self._lock:
            return self._records.get(identity)

    def close(self):
        """Stop accepting writes; later merges become no-ops."""
        with self._lock:
            self._closed = True
        logger.info("FeedStore closed")

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            states = {state.value: 0 for state in EnrichmentState}
            for record in self._records.values():
                states[record.enrichment_state.value] += 1

            return {
                **self.stats,
                'size': len(self._records),
                'max_records': self.max_records,
                'by_state': states,
                'closed': self._closed,
            }


def display_count(count: int, threshold: int = 100) -> str:
    """Render a feed size for display, e.g. ``"100+"`` once past ``threshold``."""
    if count > threshold:
        return f"{threshold}+"
    return str(count)
