"""
Contract read capability used by the resolver.

A read either returns the decoded value or a failed ReadResult. Reverts are
final ("this round does not exist"); anything else is treated as a transient
transport fault, retried with provider rotation, and only then reported.
"""
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple
import logging
import threading
import time

from web3 import Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, Web3ValidationError

from abis import FEED_ABI
from config import ResolverConfig
from resolver_errors import Cancelled, ClientUnavailable, TransportError
from web3_utils import get_web3, provider_url, track_rpc_error, track_rpc_success

logger = logging.getLogger(__name__)

# Deterministic failures: retrying them only burns RPC budget
REVERT_ERRORS = (ContractLogicError, BadFunctionCallOutput, Web3ValidationError)


@dataclass(frozen=True)
class ContractCall:
    address: str
    function: str
    args: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class ReadResult:
    value: Any = None
    error: Optional[str] = None
    transient: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class CancelToken:
    """Cooperative cancellation with an optional monotonic deadline."""

    def __init__(self, deadline: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float) -> 'CancelToken':
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def check(self):
        if self._event.is_set():
            raise Cancelled("Resolution cancelled by caller")
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise Cancelled("Resolution deadline exceeded")


def check_cancel(cancel: Optional[CancelToken]):
    if cancel is not None:
        cancel.check()


class ContractReader:
    """Single and batched contract reads. Subclasses implement ``read``."""

    def read(self, call: ContractCall, cancel: Optional[CancelToken] = None) -> ReadResult:
        raise NotImplementedError

    def batch_read(self, calls: Sequence[ContractCall],
                   cancel: Optional[CancelToken] = None) -> List[ReadResult]:
        """Read every call, results in request order.

        Raises TransportError when any entry failed for a reason other than
        a revert.
        """
        results = []
        for call in calls:
            check_cancel(cancel)
            results.append(self.read(call, cancel))
        _raise_on_transport_failure(calls, results)
        return results


def _raise_on_transport_failure(calls: Sequence[ContractCall], results: Sequence[ReadResult]):
    for call, result in zip(calls, results):
        if result.transient:
            raise TransportError(
                f"Batch read failed at {call.function}{tuple(call.args)} on {call.address}: {result.error}"
            )


class Web3ContractReader(ContractReader):
    """ContractReader backed by web3.py, one instance per chain."""

    def __init__(self, chain_name: str, config: Optional[ResolverConfig] = None,
                 w3=None, retry_delay: float = 0.5):
        self.chain_name = chain_name
        self.config = config or ResolverConfig()
        self.call_retries = max(1, self.config.call_retries)
        self.call_timeout = self.config.call_timeout
        self.retry_delay = retry_delay
        self._lock = threading.Lock()
        self.w3 = w3
        if self.w3 is None:
            self.w3 = get_web3(chain_name, timeout=self.call_timeout)
        if self.w3 is None:
            raise ClientUnavailable(f"Failed to create client for chain {chain_name}: no healthy RPC provider")

    def _provider_url(self) -> str:
        return provider_url(self.w3) or self.chain_name

    def _rotate_provider(self) -> bool:
        """Attempt to obtain a fresh Web3 provider."""
        logger.info("Rotating provider for %s (timeout=%ss)", self.chain_name, self.call_timeout)
        new_w3 = get_web3(self.chain_name, timeout=self.call_timeout, force_new=True)
        if new_w3 and new_w3.is_connected():
            with self._lock:
                self.w3 = new_w3
            logger.info("Provider rotated successfully")
            return True
        logger.warning("Provider rotation failed; no healthy providers available")
        return False

    def _call(self, call: ContractCall):
        with self._lock:
            w3 = self.w3
        contract = w3.eth.contract(address=Web3.to_checksum_address(call.address), abi=FEED_ABI)
        fn = getattr(contract.functions, call.function)
        return fn(*call.args).call()

    def read(self, call: ContractCall, cancel: Optional[CancelToken] = None) -> ReadResult:
        last_exc = None
        for attempt in range(1, self.call_retries + 1):
            check_cancel(cancel)
            start_time = time.time()
            try:
                value = self._call(call)
            except REVERT_ERRORS as e:
                logger.debug("%s%s on %s reverted: %s", call.function, tuple(call.args), call.address, e)
                return ReadResult(error=str(e) or e.__class__.__name__)
            except Exception as e:
                last_exc = e
                track_rpc_error(self._provider_url())
                logger.debug("Call attempt %s/%s for %s.%s failed: %s",
                             attempt, self.call_retries, call.address, call.function, e)
                if attempt < self.call_retries:
                    if self.chain_name and not self._rotate_provider():
                        time.sleep(self.retry_delay * attempt)
                continue
            track_rpc_success(self.chain_name, self._provider_url(), time.time() - start_time)
            return ReadResult(value=value)

        logger.warning("All call attempts failed for %s.%s: %s", call.address, call.function, last_exc)
        return ReadResult(error=str(last_exc) or last_exc.__class__.__name__, transient=True)

    def batch_read(self, calls: Sequence[ContractCall],
                   cancel: Optional[CancelToken] = None) -> List[ReadResult]:
        """Fan the calls out over a thread pool; results come back in request order."""
        if not calls:
            return []
        check_cancel(cancel)
        workers = max(1, min(self.config.max_workers, len(calls)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="contract-read") as pool:
            results = list(pool.map(lambda c: self.read(c, cancel), calls))
        _raise_on_transport_failure(calls, results)
        return results
