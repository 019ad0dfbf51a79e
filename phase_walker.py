"""
Phase-stitched walk over a feed's rounds.

The walk is an explicit state machine:

    SEEKING -> WALKING <-> TRANSITIONING -> DONE
    SEEKING -> FAILED           (no phase covers the start)
    TRANSITIONING -> FAILED     (nothing accumulated)

Each step takes an immutable WalkCursor and returns the next one, so every
transition can be exercised on its own against a scripted reader.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional, Union
import logging

from config import ResolverConfig
from contract_reader import CancelToken, ContractCall, ContractReader, check_cancel
from point_finder import PointFinder
from resolver_errors import (
    InvalidQuery,
    NoMatchFound,
    NonMonotonicRounds,
    NoPhaseDataFound,
    RoundResolverError,
)
from round_models import FeedCatalog, Found, NotFound, PhaseRecord, RoundRecord, SearchPolicy

logger = logging.getLogger(__name__)


class WalkState(Enum):
    SEEKING = "seeking"
    WALKING = "walking"
    TRANSITIONING = "transitioning"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class WalkCursor:
    state: WalkState
    phase_id: Optional[int] = None
    round_id: Optional[int] = None
    # timestamp of the last round read successfully; target for the next transition
    last_timestamp: Optional[int] = None
    # timestamp of the last round appended to the result
    last_appended: Optional[int] = None
    error: Optional[RoundResolverError] = None


@dataclass(frozen=True)
class Continuation:
    phase_id: int
    round_id: int
    timestamp: int


class PhaseWalker:
    def __init__(self, reader: ContractReader, config: Optional[ResolverConfig] = None,
                 finder: Optional[PointFinder] = None):
        self.reader = reader
        self.config = config or ResolverConfig()
        self.finder = finder or PointFinder(reader, self.config)

    def read_round(self, phase: PhaseRecord, round_id: int,
                   cancel: Optional[CancelToken] = None) -> Optional[RoundRecord]:
        check_cancel(cancel)
        res = self.reader.read(ContractCall(phase.aggregator_address, "getRoundData", (round_id,)), cancel)
        if not res.ok:
            logger.debug("getRoundData(%s) failed in phase %s: %s", round_id, phase.phase_id, res.error)
            return None
        record = RoundRecord.from_round_data(phase.phase_id, round_id, res.value)
        if record.updated_ts == 0:
            return None
        return record

    # ------------------------------------------------------------------
    # SEEKING
    # ------------------------------------------------------------------
    def seek(self, catalog: FeedCatalog, start: int, cancel: Optional[CancelToken] = None) -> WalkCursor:
        """Pick the first phase that covers ``start`` and anchor the walk in it.

        A phase qualifies when some round lies within the seek tolerance of
        ``start``. The anchor is the latest round at or before ``start``
        inside that phase; when every round is later, the nearest one (the
        earliest readable round) anchors instead.
        """
        tolerance = self.config.seek_tolerance_seconds
        for phase in catalog.phases:
            if not phase.searchable:
                logger.debug("Skipping phase %s: latest round unknown", phase.phase_id)
                continue
            match = self.finder.locate(phase, start, SearchPolicy.WITHIN_TOLERANCE,
                                       tolerance_seconds=tolerance, cancel=cancel)
            if isinstance(match, NotFound):
                logger.debug("Phase %s does not cover %s: %s", phase.phase_id, start, match.reason)
                continue
            anchor = self.finder.locate(phase, start, SearchPolicy.NEAREST_AT_OR_BEFORE, cancel=cancel)
            if isinstance(anchor, NotFound):
                anchor = self.finder.locate(phase, start, SearchPolicy.NEAREST_ANY, cancel=cancel)
            if isinstance(anchor, NotFound):
                anchor = match
            logger.info("Starting walk at phase %s round %s (ts=%s)",
                        phase.phase_id, anchor.round_id, anchor.timestamp)
            return WalkCursor(WalkState.WALKING, phase.phase_id, anchor.round_id,
                              last_timestamp=anchor.timestamp)

        return WalkCursor(WalkState.FAILED, error=NoPhaseDataFound(
            f"Failed to find a round within {tolerance}s of {start} in any phase of {catalog.feed.address}."
        ))

    # ------------------------------------------------------------------
    # WALKING
    # ------------------------------------------------------------------
    def walk(self, catalog: FeedCatalog, cursor: WalkCursor, start: int, end: int,
             rounds: List[RoundRecord], cancel: Optional[CancelToken] = None) -> WalkCursor:
        """Read forward inside the current phase, appending rounds in [start, end]."""
        phase = catalog.phase(cursor.phase_id)
        round_id = cursor.round_id
        last_ts = cursor.last_timestamp
        last_appended = cursor.last_appended
        previous_in_phase = None

        while True:
            record = self.read_round(phase, round_id, cancel)
            if record is None:
                logger.info("Phase %s ends at unreadable round %s", phase.phase_id, round_id)
                return replace(cursor, state=WalkState.TRANSITIONING, round_id=round_id,
                               last_timestamp=last_ts, last_appended=last_appended)

            ts = record.updated_ts
            if previous_in_phase is not None and ts < previous_in_phase and self.config.strict_monotonic:
                raise NonMonotonicRounds(
                    f"Round {round_id} of phase {phase.phase_id} (ts={ts}) is older than "
                    f"round {round_id - 1} (ts={previous_in_phase})."
                )
            previous_in_phase = ts

            if ts > end:
                return replace(cursor, state=WalkState.DONE, round_id=round_id,
                               last_timestamp=last_ts, last_appended=last_appended)

            last_ts = ts
            if ts >= start and (last_appended is None or ts > last_appended):
                rounds.append(record)
                last_appended = ts

            if phase.latest_round_id is not None and round_id >= phase.latest_round_id:
                return replace(cursor, state=WalkState.TRANSITIONING, round_id=round_id,
                               last_timestamp=last_ts, last_appended=last_appended)
            round_id += 1

    # ------------------------------------------------------------------
    # TRANSITIONING
    # ------------------------------------------------------------------
    def find_continuation(self, catalog: FeedCatalog, first_phase_id: int, target: int,
                          attempts: int, cancel: Optional[CancelToken] = None) -> Union[Continuation, NotFound]:
        """Try at most ``attempts`` phases from ``first_phase_id`` for the round nearest ``target``."""
        tolerance = self.config.transition_tolerance_seconds
        for phase_id in range(first_phase_id, first_phase_id + max(0, attempts)):
            phase = catalog.phase(phase_id)
            if phase is None:
                break
            result = self.finder.locate(phase, target, SearchPolicy.NEAREST_ANY, cancel=cancel)
            if isinstance(result, Found) and abs(result.timestamp - target) <= tolerance:
                return Continuation(phase_id, result.round_id, result.timestamp)
            if isinstance(result, Found):
                logger.info("Phase %s nearest round %s is %ss from %s, beyond tolerance",
                            phase_id, result.round_id, abs(result.timestamp - target), target)
            else:
                logger.info("No continuation in phase %s: %s", phase_id, result.reason)
        return NotFound(f"no continuation for {target} within {attempts} phase(s) after {first_phase_id - 1}")

    def transition(self, catalog: FeedCatalog, cursor: WalkCursor, rounds: List[RoundRecord],
                   cancel: Optional[CancelToken] = None) -> WalkCursor:
        remaining = catalog.phase_count - cursor.phase_id
        outcome = self.find_continuation(catalog, cursor.phase_id + 1, cursor.last_timestamp,
                                         remaining, cancel)
        if isinstance(outcome, Continuation):
            logger.info("Stitched phase %s -> phase %s at round %s (ts=%s)",
                        cursor.phase_id, outcome.phase_id, outcome.round_id, outcome.timestamp)
            return replace(cursor, state=WalkState.WALKING, phase_id=outcome.phase_id,
                           round_id=outcome.round_id)
        if rounds:
            logger.info("Walk ends after phase %s with %s round(s): %s",
                        cursor.phase_id, len(rounds), outcome.reason)
            return replace(cursor, state=WalkState.DONE)
        return replace(cursor, state=WalkState.FAILED, error=NoMatchFound(
            f"No rounds found for {catalog.feed.address}: {outcome.reason}."
        ))

    # ------------------------------------------------------------------
    # Point query
    # ------------------------------------------------------------------
    def point(self, catalog: FeedCatalog, cursor: WalkCursor, timestamp: int,
              cancel: Optional[CancelToken] = None) -> RoundRecord:
        """Round in effect at ``timestamp``.

        Seeking may qualify an earlier phase than the one holding the
        answer, so later phases are checked while they still have a round
        at or before the timestamp.
        """
        phase_id, round_id, best_ts = cursor.phase_id, cursor.round_id, cursor.last_timestamp
        if best_ts is not None and best_ts <= timestamp:
            for phase in catalog.phases[phase_id:]:
                if not phase.searchable:
                    continue
                later = self.finder.locate(phase, timestamp, SearchPolicy.NEAREST_AT_OR_BEFORE, cancel=cancel)
                if isinstance(later, NotFound):
                    break
                if later.timestamp >= best_ts:
                    phase_id, round_id, best_ts = phase.phase_id, later.round_id, later.timestamp

        record = self.read_round(catalog.phase(phase_id), round_id, cancel)
        if record is None:
            raise NoMatchFound(f"Round {round_id} of phase {phase_id} could not be read.")
        return record

    # ------------------------------------------------------------------
    def resolve(self, catalog: FeedCatalog, start: int, end: int,
                cancel: Optional[CancelToken] = None) -> List[RoundRecord]:
        if start > end:
            raise InvalidQuery(f"End timestamp {end} is before start timestamp {start}.",
                               error_code="INVALID_START_TIMESTAMP")

        cursor = self.seek(catalog, start, cancel)
        if cursor.state is WalkState.FAILED:
            raise cursor.error
        if start == end:
            return [self.point(catalog, cursor, start, cancel)]

        rounds: List[RoundRecord] = []
        while cursor.state not in (WalkState.DONE, WalkState.FAILED):
            check_cancel(cancel)
            if cursor.state is WalkState.WALKING:
                cursor = self.walk(catalog, cursor, start, end, rounds, cancel)
            else:
                cursor = self.transition(catalog, cursor, rounds, cancel)

        if cursor.state is WalkState.FAILED:
            raise cursor.error
        return rounds
