"""
Bulk round fetch for a known round-id range.

Used for feeds whose rounds live in one contiguous id space, and as the bulk
path once a phase's sub-range [start id, end id] has been located.
"""
from typing import List, Optional
import logging

from config import ResolverConfig
from contract_reader import CancelToken, ContractCall, ContractReader, check_cancel
from point_finder import PointFinder
from resolver_errors import RoundDataUnavailable, TransportError
from round_models import FeedCatalog, Found, NotFound, RoundRecord, SearchPolicy

logger = logging.getLogger(__name__)


class ChunkedRangeFetcher:
    def __init__(self, reader: ContractReader, config: Optional[ResolverConfig] = None,
                 finder: Optional[PointFinder] = None):
        self.reader = reader
        self.config = config or ResolverConfig()
        self.finder = finder or PointFinder(reader, self.config)

    def fetch_range(
        self,
        aggregator_address: str,
        start_round_id: int,
        end_round_id: int,
        chunk_size: Optional[int] = None,
        phase_id: int = 0,
        cancel: Optional[CancelToken] = None,
    ) -> List[RoundRecord]:
        """
        Fetch rounds [start_round_id, end_round_id] in batches of ``chunk_size``.

        Entries that fail inside a batch are dropped. A batch that fails as a
        whole raises RoundDataUnavailable carrying the rounds collected so far.
        """
        size = self.config.chunk_size if chunk_size is None else chunk_size
        if size < 1:
            raise ValueError(f"chunk_size must be positive, got {size}")
        records: List[RoundRecord] = []
        if end_round_id < start_round_id:
            return records

        dropped = 0
        for chunk_start in range(start_round_id, end_round_id + 1, size):
            check_cancel(cancel)
            chunk_end = min(chunk_start + size - 1, end_round_id)
            ids = list(range(chunk_start, chunk_end + 1))
            calls = [ContractCall(aggregator_address, "getRoundData", (rid,)) for rid in ids]
            try:
                results = self.reader.batch_read(calls, cancel)
            except TransportError as e:
                raise RoundDataUnavailable(
                    f"Failed to get rounds {chunk_start}-{chunk_end} from {aggregator_address}: {e.message}",
                    partial_rounds=records,
                ) from e

            for rid, res in zip(ids, results):
                if not res.ok:
                    dropped += 1
                    continue
                record = RoundRecord.from_round_data(phase_id, rid, res.value)
                if record.updated_ts == 0:
                    dropped += 1
                    continue
                records.append(record)
            logger.debug("Fetched rounds %s-%s from %s", chunk_start, chunk_end, aggregator_address)

        if dropped:
            logger.info("Dropped %s unreadable round(s) in %s-%s from %s",
                        dropped, start_round_id, end_round_id, aggregator_address)
        return records

    def fetch_between(self, catalog: FeedCatalog, start: int, end: int,
                      cancel: Optional[CancelToken] = None) -> List[RoundRecord]:
        """Rounds with start <= updatedAt <= end, phase by phase, without stitching.

        Each searchable phase is bounded by its latest round at or before
        ``end`` and, when one exists, its latest round at or before ``start``.
        """
        rounds: List[RoundRecord] = []
        for phase in catalog.phases:
            if not phase.searchable:
                continue
            upper = self.finder.locate(phase, end, SearchPolicy.NEAREST_AT_OR_BEFORE, cancel=cancel)
            if isinstance(upper, NotFound):
                logger.debug("Phase %s has nothing at or before %s: %s", phase.phase_id, end, upper.reason)
                continue
            lower = self.finder.locate(phase, start, SearchPolicy.NEAREST_AT_OR_BEFORE, cancel=cancel)
            first_id = lower.round_id if isinstance(lower, Found) else self.config.first_round_id

            try:
                fetched = self.fetch_range(phase.aggregator_address, first_id, upper.round_id,
                                           phase_id=phase.phase_id, cancel=cancel)
            except RoundDataUnavailable as e:
                kept = rounds + [r for r in e.partial_rounds if start <= r.updated_ts <= end]
                raise RoundDataUnavailable(e.message, partial_rounds=kept) from e
            rounds.extend(r for r in fetched if start <= r.updated_ts <= end)
        return rounds
