"""
Round Resolver - RPC endpoint pools
One pool of fallback RPC endpoints per chain, plus process-wide call stats
for the /debug/rpc route.
"""
from web3 import Web3
from typing import Optional, List, Dict
from dataclasses import dataclass
from datetime import datetime, timezone
from collections import defaultdict, deque
import logging
import threading
import requests
import time

from config import get_chain_config

logger = logging.getLogger(__name__)


class RpcStats:
    """Success/error counters and recent latencies per endpoint URL."""

    def __init__(self, window: int = 100):
        self._lock = threading.Lock()
        self._ok = defaultdict(int)
        self._errors = defaultdict(int)
        self._latency = defaultdict(lambda: deque(maxlen=window))
        self._active: Dict[str, str] = {}

    def record_success(self, chain_name: str, url: str, elapsed: float):
        with self._lock:
            self._ok[url] += 1
            self._latency[url].append(elapsed)
            self._active[chain_name] = url

    def record_error(self, url: str):
        with self._lock:
            self._errors[url] += 1

    def snapshot(self, chain_name: Optional[str] = None) -> Dict:
        with self._lock:
            if chain_name:
                urls = list((get_chain_config(chain_name) or {}).get('rpc', []))
            else:
                urls = sorted(set(self._ok) | set(self._errors))
            rows = []
            for url in urls:
                ok, errors = self._ok.get(url, 0), self._errors.get(url, 0)
                total = ok + errors
                latency = self._latency.get(url) or ()
                rows.append({
                    'url': url,
                    'provider': url.split('/')[2] if '//' in url else url[:30],
                    'success': ok,
                    'errors': errors,
                    'total': total,
                    'success_rate': ok / total * 100 if total else 0,
                    'avg_response_time': sum(latency) / len(latency) if latency else 0,
                })
            active = dict(self._active)

        rows.sort(key=lambda r: (-r['total'], -r['success_rate'], r['avg_response_time']))
        return {
            'stats': rows,
            'total_requests': sum(r['total'] for r in rows),
            'total_success': sum(r['success'] for r in rows),
            'total_errors': sum(r['errors'] for r in rows),
            'active_provider': active.get(chain_name) if chain_name else active,
        }


RPC_STATS = RpcStats()


def track_rpc_success(chain_name: str, provider_url: str, response_time: float):
    RPC_STATS.record_success(chain_name, provider_url, response_time)


def track_rpc_error(provider_url: str):
    RPC_STATS.record_error(provider_url)


def get_rpc_stats(chain_name: Optional[str] = None) -> Dict:
    return RPC_STATS.snapshot(chain_name)


def provider_url(w3) -> Optional[str]:
    """Endpoint URI behind a Web3 instance, if it has an HTTP provider."""
    return getattr(getattr(w3, 'provider', None), 'endpoint_uri', None)


@dataclass
class Endpoint:
    url: str
    failures: int = 0
    last_ok: Optional[datetime] = None
    last_error: Optional[str] = None

    def ok(self):
        self.last_ok = datetime.now(timezone.utc)
        self.last_error = None

    def failed(self, reason: str):
        self.failures += 1
        self.last_error = reason


class ProviderPool:
    """Fallback RPC endpoints of one chain.

    Endpoints are tried in rotation order, least-failed first. The last
    healthy connection is reused until a caller forces a new one.
    """

    def __init__(self, chain_name: str):
        self.chain_name = chain_name
        cfg = get_chain_config(chain_name) or {}
        self.endpoints: List[Endpoint] = [Endpoint(url) for url in cfg.get('rpc', [])]
        self.expected_chain_id = cfg.get('chain_id')
        self._cursor = -1
        self._current: Optional[Web3] = None
        self._lock = threading.Lock()

    def _candidates(self) -> List[int]:
        n = len(self.endpoints)
        rotated = [(self._cursor + 1 + k) % n for k in range(n)]
        return sorted(rotated, key=lambda idx: (self.endpoints[idx].failures, rotated.index(idx)))

    def _open(self, endpoint: Endpoint, timeout: int) -> Optional[Web3]:
        started = time.time()
        w3 = Web3(Web3.HTTPProvider(endpoint.url, request_kwargs={'timeout': timeout}))
        if not w3.is_connected():
            endpoint.failed("connection check failed")
            return None
        served = w3.eth.chain_id
        if self.expected_chain_id and served != self.expected_chain_id:
            endpoint.failed(f"serves chain {served}")
            logger.warning("%s serves chain %s, expected %s; skipping",
                           endpoint.url, served, self.expected_chain_id)
            return None
        endpoint.ok()
        track_rpc_success(self.chain_name, endpoint.url, time.time() - started)
        return w3

    def connect(self, timeout: int = 10, force_new: bool = False) -> Optional[Web3]:
        with self._lock:
            if not force_new and self._current is not None and self._current.is_connected():
                return self._current
            if not self.endpoints:
                logger.error("No RPC endpoints configured for chain %s", self.chain_name)
                return None

            for attempt, idx in enumerate(self._candidates(), start=1):
                endpoint = self.endpoints[idx]
                logger.info("Connecting to %s (chain=%s, timeout=%ss, failures=%s)",
                            endpoint.url, self.chain_name, timeout * attempt, endpoint.failures)
                try:
                    w3 = self._open(endpoint, timeout * attempt)
                except requests.exceptions.RequestException as exc:
                    endpoint.failed(str(exc))
                    logger.warning("Network error on %s: %s", endpoint.url, exc)
                    w3 = None
                except Exception as exc:
                    endpoint.failed(str(exc))
                    logger.debug("%s failed with %s", endpoint.url, exc)
                    w3 = None
                if w3 is None:
                    track_rpc_error(endpoint.url)
                    continue
                self._cursor = idx
                self._current = w3
                return w3

            logger.error("All RPC endpoints failed for chain %s: %s", self.chain_name,
                         "; ".join(f"{e.url} ({e.failures}: {e.last_error})" for e in self.endpoints))
            return None


_pools: Dict[str, ProviderPool] = {}
_pools_lock = threading.Lock()


def get_provider_pool(chain_name: str) -> ProviderPool:
    with _pools_lock:
        pool = _pools.get(chain_name)
        if pool is None:
            pool = _pools[chain_name] = ProviderPool(chain_name)
        return pool


def get_web3(chain_name: str, timeout: int = 10, force_new: bool = False) -> Optional[Web3]:
    """
    Connected Web3 for ``chain_name``, or None when no endpoint is healthy.

    Args:
        chain_name: Chain identifier defined in config.CHAINS
        timeout: Base request timeout in seconds (grows with each endpoint tried)
        force_new: Drop the cached connection and rotate to the next endpoint
    """
    return get_provider_pool(chain_name).connect(timeout=timeout, force_new=force_new)
