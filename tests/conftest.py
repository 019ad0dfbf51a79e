from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

from contract_reader import ContractReader, ReadResult, check_cancel  # noqa: E402

# ETH / USD on mainnet; a real checksummed address so query validation passes
PROXY = "0x5f4eC3Df9cbd43714FE2740f5E3616155c5b8419"


def aggregator_address(n: int) -> str:
    return "0x" + f"{n:040x}"


class FakeContractReader(ContractReader):
    """Scripted proxy and aggregators answering the feed ABI from memory.

    ``reverts`` and ``transient`` hold (address, function, args) keys; an
    args value of None matches every call of that function on that address.
    """

    def __init__(self) -> None:
        self.proxies: dict[str, dict] = {}
        self.aggregators: dict[str, dict] = {}
        self.reverts: set = set()
        self.transient: set = set()
        self.calls: list = []
        self.batch_sizes: list[int] = []

    def add_proxy(self, address, aggregators, description="ETH / USD", decimals=8):
        self.proxies[address] = {
            "description": description,
            "decimals": decimals,
            "aggregators": list(aggregators),
        }

    def add_aggregator(self, address, timestamps, first_round_id=1, latest=None, answers=None):
        rounds = {}
        for i, ts in enumerate(timestamps):
            rid = first_round_id + i
            answer = answers[i] if answers is not None else 100_000_000 * (i + 1)
            rounds[rid] = (answer, ts, ts)
        if latest is None and rounds:
            latest = max(rounds)
        self.aggregators[address] = {"rounds": rounds, "latest": latest}

    def fail(self, address, function, *args, transient=False):
        key = (address, function, tuple(args) if args else None)
        (self.transient if transient else self.reverts).add(key)

    def _matches(self, keys, call) -> bool:
        return (call.address, call.function, tuple(call.args)) in keys or \
            (call.address, call.function, None) in keys

    def reads_of(self, address, function=None):
        return [c for c in self.calls if c.address == address and (function is None or c.function == function)]

    def read(self, call, cancel=None):
        check_cancel(cancel)
        self.calls.append(call)
        if self._matches(self.transient, call):
            return ReadResult(error="connection reset", transient=True)
        if self._matches(self.reverts, call):
            return ReadResult(error="execution reverted")

        if call.address in self.proxies:
            return self._proxy_read(self.proxies[call.address], call)
        if call.address in self.aggregators:
            return self._aggregator_read(self.aggregators[call.address], call)
        return ReadResult(error="execution reverted")

    def batch_read(self, calls, cancel=None):
        self.batch_sizes.append(len(calls))
        return super().batch_read(calls, cancel)

    @staticmethod
    def _proxy_read(proxy, call):
        if call.function == "phaseId":
            return ReadResult(value=len(proxy["aggregators"]))
        if call.function == "description":
            return ReadResult(value=proxy["description"])
        if call.function == "decimals":
            return ReadResult(value=proxy["decimals"])
        if call.function == "phaseAggregators":
            (pid,) = call.args
            if 1 <= pid <= len(proxy["aggregators"]):
                return ReadResult(value=proxy["aggregators"][pid - 1])
            return ReadResult(value="0x" + "0" * 40)
        return ReadResult(error="execution reverted")

    @staticmethod
    def _aggregator_read(agg, call):
        if call.function == "latestRound":
            if agg["latest"] is None:
                return ReadResult(error="execution reverted")
            return ReadResult(value=agg["latest"])
        if call.function == "getTimestamp":
            (rid,) = call.args
            entry = agg["rounds"].get(rid)
            return ReadResult(value=entry[2] if entry else 0)
        if call.function == "getRoundData":
            (rid,) = call.args
            entry = agg["rounds"].get(rid)
            if entry is None:
                return ReadResult(error="execution reverted: No data present")
            answer, started, updated = entry
            return ReadResult(value=(rid, answer, started, updated, rid))
        return ReadResult(error="execution reverted")


def build_feed(reader, phases, address=PROXY, **proxy_kwargs):
    """Register a proxy whose phase N (1-based) publishes ``phases[N-1]`` timestamps.

    A phase given as None gets an aggregator whose latestRound reverts.
    """
    aggregators = []
    for n, timestamps in enumerate(phases, start=1):
        agg = aggregator_address(n)
        if timestamps is None:
            reader.add_aggregator(agg, [])
        else:
            reader.add_aggregator(agg, timestamps)
        aggregators.append(agg)
    reader.add_proxy(address, aggregators, **proxy_kwargs)
    return aggregators


@pytest.fixture
def reader():
    return FakeContractReader()


@pytest.fixture
def two_phase_feed(reader):
    """Phase 1 publishes at 100, 200, 300 and phase 2 at 305, 400, 500."""
    build_feed(reader, [[100, 200, 300], [305, 400, 500]])
    return reader
