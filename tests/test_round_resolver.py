from __future__ import annotations

import pytest

import round_resolver
from config import ResolverConfig
from contract_reader import CancelToken
from resolver_errors import InvalidQuery
from round_resolver import get_reader, get_rounds_by_timestamp, run_query, validate_query, validate_timestamps

from conftest import PROXY, build_feed


def _factory(reader):
    created = []

    def factory(chain, config):
        created.append(chain)
        return reader

    factory.created = created
    return factory


def test_query_returns_payload(two_phase_feed):
    status, payload = get_rounds_by_timestamp(PROXY, "mainnet", "150", "450",
                                              reader_factory=_factory(two_phase_feed))

    assert status == 200
    assert payload["description"] == "ETH / USD"
    assert payload["decimals"] == 8
    assert payload["complete"] is True
    first = payload["rounds"][0]
    assert first["phaseId"] == "1"
    assert first["roundId"] == "2"
    assert first["proxyRoundId"] == str((1 << 64) | 2)
    assert first["answer"] == "200000000"
    assert first["updatedAt"] == "1970-01-01T00:03:20+00:00"
    assert [r["roundId"] for r in payload["rounds"]] == ["2", "3", "1", "2"]


def test_lowercase_address_is_checksummed(two_phase_feed):
    history = run_query(PROXY.lower(), "mainnet", 150, 450, reader_factory=_factory(two_phase_feed))

    assert len(history.rounds) == 4


def test_chunked_strategy_matches_phased(two_phase_feed):
    factory = _factory(two_phase_feed)

    phased = run_query(PROXY, "mainnet", 150, 450, reader_factory=factory)
    chunked = run_query(PROXY, "mainnet", 150, 450, strategy="chunked", reader_factory=factory)

    assert chunked.rounds == phased.rounds
    assert factory.created == ["mainnet", "mainnet"]


def test_chunked_partial_failure_is_incomplete(reader):
    aggs = build_feed(reader, [[100, 200, 300], [305, 400, 500]])
    reader.fail(aggs[1], "getRoundData", 2, transient=True)

    status, payload = get_rounds_by_timestamp(PROXY, "mainnet", 150, 450, strategy="chunked",
                                              reader_factory=_factory(reader))

    assert status == 200
    assert payload["complete"] is False
    assert len(payload["rounds"]) == 2


@pytest.mark.parametrize("address, chain, start, end, code", [
    ("0x1234", "mainnet", 150, 450, "INVALID_CONTRACT_ADDRESS"),
    (None, "mainnet", 150, 450, "INVALID_CONTRACT_ADDRESS"),
    (PROXY, "dogechain", 150, 450, "UNSUPPORTED_CHAIN"),
    (PROXY, None, 150, 450, "UNSUPPORTED_CHAIN"),
    (PROXY, "mainnet", "abc", 450, "INVALID_START_TIMESTAMP"),
    (PROXY, "mainnet", 450, 150, "INVALID_START_TIMESTAMP"),
    (PROXY, "mainnet", -5, 150, "INVALID_START_TIMESTAMP"),
    (PROXY, "mainnet", 4_000_000_000_000, 4_000_000_000_001, "INVALID_START_TIMESTAMP"),
])
def test_invalid_input_is_rejected_before_any_read(reader, address, chain, start, end, code):
    factory = _factory(reader)

    status, payload = get_rounds_by_timestamp(address, chain, start, end, reader_factory=factory)

    assert status == 400
    assert payload["errorCode"] == code
    assert factory.created == []


def test_unknown_strategy_is_invalid(two_phase_feed):
    with pytest.raises(InvalidQuery):
        run_query(PROXY, "mainnet", 150, 450, strategy="parallel", reader_factory=_factory(two_phase_feed))


def test_unreadable_proxy_maps_to_phase_data_error(reader):
    status, payload = get_rounds_by_timestamp(PROXY, "mainnet", 150, 450, reader_factory=_factory(reader))

    assert status == 500
    assert payload["errorCode"] == "FAILED_TO_FETCH_PHASE_DATA"


def test_range_without_rounds_maps_to_not_found(two_phase_feed):
    status, payload = get_rounds_by_timestamp(PROXY, "mainnet", 600, 700,
                                              reader_factory=_factory(two_phase_feed))

    assert status == 404
    assert payload["errorCode"] == "NO_MATCH_FOUND"


def test_cancelled_query_maps_to_cancelled(two_phase_feed):
    token = CancelToken()
    token.cancel()

    status, payload = get_rounds_by_timestamp(PROXY, "mainnet", 150, 450, cancel=token,
                                              reader_factory=_factory(two_phase_feed))

    assert status == 504
    assert payload["errorCode"] == "CANCELLED"


def test_validate_query_normalises_values():
    feed, start, end = validate_query(PROXY.lower(), "arbitrum", "100.0", 200, now=1_000)

    assert feed.address == PROXY
    assert feed.chain == "arbitrum"
    assert (start, end) == (100, 200)


def test_point_query_timestamps_are_valid():
    assert validate_timestamps(500, 500, now=1_000) == (500, 500)


def test_resolver_config_from_env(monkeypatch):
    monkeypatch.setenv("ROUND_RESOLVER_SEEK_TOLERANCE_SECONDS", "900")
    monkeypatch.setenv("ROUND_RESOLVER_STRICT_MONOTONIC", "true")
    monkeypatch.setenv("ROUND_RESOLVER_CHUNK_SIZE", "")

    config = ResolverConfig.from_env()

    assert config.seek_tolerance_seconds == 900
    assert config.strict_monotonic is True
    assert config.chunk_size == 100
    assert config.transition_tolerance_seconds == 86_400


class _StubReader:
    def __init__(self, chain, config=None):
        self.chain = chain
        self.config = config


def test_reader_cache_is_keyed_by_chain_and_config(monkeypatch):
    monkeypatch.setattr(round_resolver, "Web3ContractReader", _StubReader)
    monkeypatch.setattr(round_resolver, "_readers", {})

    one_retry = get_reader("mainnet", ResolverConfig(call_retries=1))
    nine_retries = get_reader("mainnet", ResolverConfig(call_retries=9))

    assert one_retry.config.call_retries == 1
    assert nine_retries.config.call_retries == 9
    assert get_reader("mainnet", ResolverConfig(call_retries=1)) is one_retry
    assert get_reader("arbitrum", ResolverConfig(call_retries=1)) is not one_retry
    assert get_reader("mainnet") is get_reader("mainnet", ResolverConfig())
