"""
Value types shared by the phase catalog, point finder and phase walker.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple, Union


@dataclass(frozen=True)
class FeedIdentity:
    address: str
    chain: str


@dataclass(frozen=True)
class PhaseRecord:
    """One generation of the underlying aggregator behind a proxy.

    ``latest_round_id`` is None when the latest-round read failed. Such a
    phase can still be addressed while stitching, but never starts a walk.
    """

    phase_id: int
    aggregator_address: str
    latest_round_id: Optional[int] = None

    @property
    def searchable(self) -> bool:
        return self.latest_round_id is not None


@dataclass(frozen=True)
class FeedCatalog:
    feed: FeedIdentity
    description: str
    decimals: int
    phases: Tuple[PhaseRecord, ...]

    @property
    def phase_count(self) -> int:
        return len(self.phases)

    def phase(self, phase_id: int) -> Optional[PhaseRecord]:
        # phase ids are contiguous from 1
        if 1 <= phase_id <= len(self.phases):
            return self.phases[phase_id - 1]
        return None


def _to_utc(ts: int) -> datetime:
    return datetime.fromtimestamp(int(ts), tz=timezone.utc)


@dataclass(frozen=True, order=True)
class RoundRecord:
    """A single published observation; ordered by (phase_id, round_id)."""

    phase_id: int
    round_id: int
    answer: int = field(compare=False)
    started_at: datetime = field(compare=False)
    updated_at: datetime = field(compare=False)

    @classmethod
    def from_round_data(cls, phase_id: int, round_id: int, data: Sequence[Any]) -> 'RoundRecord':
        # getRoundData -> (roundId, answer, startedAt, updatedAt, answeredInRound)
        _, answer, started_at, updated_at, _ = data
        return cls(
            phase_id=int(phase_id),
            round_id=int(round_id),
            answer=int(answer),
            started_at=_to_utc(started_at),
            updated_at=_to_utc(updated_at),
        )

    @property
    def updated_ts(self) -> int:
        return int(self.updated_at.timestamp())

    @property
    def proxy_round_id(self) -> int:
        """Composite id as the proxy reports it: (phaseId << 64) | roundId."""
        return (self.phase_id << 64) | self.round_id

    def to_dict(self) -> Dict[str, str]:
        return {
            "phaseId": str(self.phase_id),
            "roundId": str(self.round_id),
            "proxyRoundId": str(self.proxy_round_id),
            "answer": str(self.answer),
            "startedAt": self.started_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class FeedHistory:
    """Resolution of a query: feed metadata plus rounds in ascending order."""

    description: str
    decimals: int
    rounds: Tuple[RoundRecord, ...]
    complete: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "decimals": self.decimals,
            "rounds": [r.to_dict() for r in self.rounds],
            "complete": self.complete,
        }


class SearchPolicy(Enum):
    NEAREST_ANY = "nearest_any"
    NEAREST_AT_OR_BEFORE = "nearest_at_or_before"
    WITHIN_TOLERANCE = "within_tolerance"


@dataclass(frozen=True)
class Found:
    round_id: int
    timestamp: int
    probes: int = 0


@dataclass(frozen=True)
class NotFound:
    reason: str
    probes: int = 0


LocateResult = Union[Found, NotFound]

