"""
Query entry point: feed address + chain + timestamp range -> ordered rounds.

``RoundResolver`` wires catalog discovery, phase walking and the chunked
strategy around one ContractReader. ``get_rounds_by_timestamp`` adds input
validation and shapes the (status, payload) pair the web layer returns.
"""
from typing import Callable, Dict, Optional, Tuple
import logging
import math
import threading
import time

from web3 import Web3

from chunked_fetcher import ChunkedRangeFetcher
from config import ResolverConfig, SUPPORTED_CHAINS, get_chain_config
from contract_reader import CancelToken, ContractReader, Web3ContractReader
from phase_catalog import PhaseCatalog
from phase_walker import PhaseWalker
from point_finder import PointFinder
from resolver_errors import InvalidQuery, RoundDataUnavailable, RoundResolverError
from round_models import FeedCatalog, FeedHistory, FeedIdentity

logger = logging.getLogger(__name__)

STRATEGIES = ("phased", "chunked")


class RoundResolver:
    def __init__(self, reader: ContractReader, config: Optional[ResolverConfig] = None):
        self.reader = reader
        self.config = config or ResolverConfig()
        self.finder = PointFinder(reader, self.config)
        self.phase_catalog = PhaseCatalog(reader)
        self.walker = PhaseWalker(reader, self.config, self.finder)
        self.fetcher = ChunkedRangeFetcher(reader, self.config, self.finder)

    def discover(self, feed: FeedIdentity, cancel: Optional[CancelToken] = None) -> FeedCatalog:
        return self.phase_catalog.discover(feed, cancel)

    def resolve(self, feed: FeedIdentity, start: int, end: int,
                cancel: Optional[CancelToken] = None) -> FeedHistory:
        """Phase-stitched resolution of [start, end] (a single round when start == end)."""
        catalog = self.discover(feed, cancel)
        rounds = self.walker.resolve(catalog, start, end, cancel)
        return FeedHistory(catalog.description, catalog.decimals, tuple(rounds))

    def resolve_contiguous(self, feed: FeedIdentity, start: int, end: int,
                           cancel: Optional[CancelToken] = None) -> FeedHistory:
        """Bulk resolution without phase stitching.

        A batch failure after some rounds were collected returns those
        rounds with ``complete=False``.
        """
        if start > end:
            raise InvalidQuery(f"End timestamp {end} is before start timestamp {start}.",
                               error_code="INVALID_START_TIMESTAMP")
        catalog = self.discover(feed, cancel)
        try:
            rounds = self.fetcher.fetch_between(catalog, start, end, cancel)
        except RoundDataUnavailable as e:
            if not e.partial_rounds:
                raise
            logger.warning("Returning %s partial round(s) for %s: %s",
                           len(e.partial_rounds), feed.address, e.message)
            return FeedHistory(catalog.description, catalog.decimals, tuple(e.partial_rounds), complete=False)
        return FeedHistory(catalog.description, catalog.decimals, tuple(rounds))

    def query(self, feed: FeedIdentity, start: int, end: int, strategy: str = "phased",
              cancel: Optional[CancelToken] = None) -> FeedHistory:
        if strategy == "chunked":
            return self.resolve_contiguous(feed, start, end, cancel)
        return self.resolve(feed, start, end, cancel)


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------
def validate_contract_address(contract_address) -> str:
    if not contract_address or not Web3.is_address(str(contract_address)):
        raise InvalidQuery(f"Invalid contract address {contract_address}.",
                           error_code="INVALID_CONTRACT_ADDRESS")
    return Web3.to_checksum_address(str(contract_address))


def validate_chain(chain) -> str:
    if not chain or get_chain_config(chain) is None:
        raise InvalidQuery(
            f"Chain name {chain} is not supported. Supported chains are: {', '.join(SUPPORTED_CHAINS)}.",
            error_code="UNSUPPORTED_CHAIN",
        )
    return chain


def _parse_timestamp(value, label: str) -> int:
    try:
        ts = float(value)
    except (TypeError, ValueError):
        raise InvalidQuery(f"{label} timestamp {value} is not a number.",
                           error_code="INVALID_START_TIMESTAMP")
    if not math.isfinite(ts) or ts < 0:
        raise InvalidQuery(f"{label} timestamp {value} is out of range.",
                           error_code="INVALID_START_TIMESTAMP")
    return int(ts)


def validate_timestamps(start_timestamp, end_timestamp, now: Optional[int] = None) -> Tuple[int, int]:
    start = _parse_timestamp(start_timestamp, "Start")
    end = _parse_timestamp(end_timestamp, "End")
    now = int(time.time()) if now is None else now
    if start > now or end < start:
        raise InvalidQuery(
            f"Start timestamp {start} is in the future or end timestamp {end} is before start timestamp.",
            error_code="INVALID_START_TIMESTAMP",
        )
    return start, end


def validate_query(contract_address, chain, start_timestamp, end_timestamp,
                   now: Optional[int] = None) -> Tuple[FeedIdentity, int, int]:
    address = validate_contract_address(contract_address)
    chain = validate_chain(chain)
    start, end = validate_timestamps(start_timestamp, end_timestamp, now)
    return FeedIdentity(address, chain), start, end


# ---------------------------------------------------------------------------
# Reader cache (one reader per chain and config)
# ---------------------------------------------------------------------------
_readers: Dict[Tuple[str, ResolverConfig], ContractReader] = {}
_readers_lock = threading.Lock()


def get_reader(chain: str, config: Optional[ResolverConfig] = None) -> ContractReader:
    config = config or ResolverConfig()
    key = (chain, config)
    with _readers_lock:
        reader = _readers.get(key)
        if reader is None:
            reader = Web3ContractReader(chain, config)
            _readers[key] = reader
        return reader


def run_query(
    contract_address,
    chain,
    start_timestamp,
    end_timestamp,
    strategy: str = "phased",
    config: Optional[ResolverConfig] = None,
    reader_factory: Optional[Callable[[str, ResolverConfig], ContractReader]] = None,
    timeout: Optional[float] = None,
    cancel: Optional[CancelToken] = None,
) -> FeedHistory:
    """Validate raw query parameters and resolve them; raises RoundResolverError."""
    config = config or ResolverConfig()
    factory = reader_factory or get_reader
    if strategy not in STRATEGIES:
        raise InvalidQuery(f"Unknown strategy {strategy}. Use one of: {', '.join(STRATEGIES)}.")
    feed, start, end = validate_query(contract_address, chain, start_timestamp, end_timestamp)
    if cancel is None and timeout:
        cancel = CancelToken.with_timeout(timeout)
    resolver = RoundResolver(factory(feed.chain, config), config)
    history = resolver.query(feed, start, end, strategy=strategy, cancel=cancel)
    logger.info("Resolved %s round(s) for %s on %s", len(history.rounds), feed.address, feed.chain)
    return history


def get_rounds_by_timestamp(contract_address, chain, start_timestamp, end_timestamp,
                            **kwargs) -> Tuple[int, Dict]:
    """
    Resolve the rounds of ``contract_address`` between two unix timestamps.

    Returns (status, payload): 200 with
    {"description", "decimals", "rounds", "complete"} on success, otherwise
    the error's status with {"errorCode", "message"}.
    """
    try:
        history = run_query(contract_address, chain, start_timestamp, end_timestamp, **kwargs)
    except RoundResolverError as e:
        logger.warning("Query %s on %s [%s, %s] failed: %s %s",
                       contract_address, chain, start_timestamp, end_timestamp, e.error_code, e.message)
        return e.status, e.to_dict()
    return 200, history.to_dict()
