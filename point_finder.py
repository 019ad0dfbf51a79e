"""
Binary search over one phase's round-id space.

One algorithm serves three strictness levels (see SearchPolicy) so that the
phase walker's seek, anchor and transition steps pick rounds the same way.
"""
from dataclasses import dataclass
from typing import Optional
import logging

from config import ResolverConfig
from contract_reader import CancelToken, ContractCall, ContractReader, check_cancel
from round_models import Found, LocateResult, NotFound, PhaseRecord, SearchPolicy

logger = logging.getLogger(__name__)


@dataclass
class SearchState:
    low: int
    high: int
    best_round_id: Optional[int] = None
    best_timestamp: Optional[int] = None
    best_delta: Optional[int] = None
    probes: int = 0

    def consider(self, round_id: int, timestamp: int, delta: int):
        self.best_round_id = round_id
        self.best_timestamp = timestamp
        self.best_delta = delta


class PointFinder:
    """Locate the round nearest a target timestamp inside a single phase."""

    def __init__(self, reader: ContractReader, config: Optional[ResolverConfig] = None):
        self.reader = reader
        self.config = config or ResolverConfig()

    def probe_timestamp(self, aggregator_address: str, round_id: int,
                        cancel: Optional[CancelToken] = None) -> Optional[int]:
        """Timestamp of a round, None when the round does not exist."""
        check_cancel(cancel)
        result = self.reader.read(ContractCall(aggregator_address, "getTimestamp", (round_id,)), cancel)
        if not result.ok:
            logger.debug("Probe %s@%s failed: %s", round_id, aggregator_address, result.error)
            return None
        ts = int(result.value or 0)
        # aggregators answer 0 for rounds that were never written
        return ts if ts > 0 else None

    def locate(
        self,
        phase: PhaseRecord,
        target_timestamp: int,
        policy: SearchPolicy = SearchPolicy.NEAREST_AT_OR_BEFORE,
        tolerance_seconds: Optional[int] = None,
        cancel: Optional[CancelToken] = None,
        first_round_id: Optional[int] = None,
    ) -> LocateResult:
        if policy is SearchPolicy.WITHIN_TOLERANCE and tolerance_seconds is None:
            raise ValueError("WITHIN_TOLERANCE requires tolerance_seconds")
        if phase.latest_round_id is None:
            return NotFound(f"phase {phase.phase_id} has no known latest round")

        origin = self.config.first_round_id if first_round_id is None else first_round_id
        state = SearchState(low=origin, high=int(phase.latest_round_id))
        target = int(target_timestamp)
        readable = 0

        while state.low <= state.high:
            if state.probes >= self.config.probe_budget:
                logger.warning("Probe budget (%s) exhausted searching phase %s for %s",
                               self.config.probe_budget, phase.phase_id, target)
                break
            mid = state.low + (state.high - state.low) // 2
            state.probes += 1
            ts = self.probe_timestamp(phase.aggregator_address, mid, cancel)
            if ts is None:
                # missing round: step past it
                state.low = mid + 1
                continue
            readable += 1
            delta = ts - target

            if policy is SearchPolicy.WITHIN_TOLERANCE:
                if abs(delta) <= tolerance_seconds:
                    logger.debug("Phase %s round %s within %ss of %s after %s probes",
                                 phase.phase_id, mid, tolerance_seconds, target, state.probes)
                    return Found(mid, ts, state.probes)
            elif policy is SearchPolicy.NEAREST_ANY:
                if state.best_delta is None or abs(delta) < state.best_delta:
                    state.consider(mid, ts, abs(delta))
            elif ts <= target:
                if state.best_timestamp is None or ts > state.best_timestamp:
                    state.consider(mid, ts, delta)

            if policy is SearchPolicy.NEAREST_AT_OR_BEFORE:
                if ts <= target:
                    state.low = mid + 1
                else:
                    state.high = mid - 1
            elif ts < target:
                state.low = mid + 1
            else:
                state.high = mid - 1

        if state.best_round_id is not None:
            return Found(state.best_round_id, state.best_timestamp, state.probes)
        if readable == 0:
            return NotFound(f"no readable rounds in phase {phase.phase_id}", state.probes)
        if policy is SearchPolicy.WITHIN_TOLERANCE:
            return NotFound(f"no round within {tolerance_seconds}s of {target} in phase {phase.phase_id}",
                            state.probes)
        return NotFound(f"no round at or before {target} in phase {phase.phase_id}", state.probes)
