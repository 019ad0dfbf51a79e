"""
Phase discovery for a feed proxy.
"""
from typing import Optional
import logging

from contract_reader import CancelToken, ContractCall, ContractReader, check_cancel
from resolver_errors import FeedUnavailable, TransportError
from round_models import FeedCatalog, FeedIdentity, PhaseRecord

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class PhaseCatalog:
    def __init__(self, reader: ContractReader):
        self.reader = reader

    def discover(self, feed: FeedIdentity, cancel: Optional[CancelToken] = None) -> FeedCatalog:
        """Read phase count, description and decimals, then every phase aggregator.

        Phase ids are taken to be contiguous 1..phaseId. A failing
        ``latestRound`` leaves that phase in the catalog without a latest
        round id; only the two batched reads can fail discovery.
        """
        meta_calls = [
            ContractCall(feed.address, "phaseId"),
            ContractCall(feed.address, "description"),
            ContractCall(feed.address, "decimals"),
        ]
        try:
            phase_res, desc_res, dec_res = self.reader.batch_read(meta_calls, cancel)
        except TransportError as e:
            raise FeedUnavailable(f"Failed to get phase data from contract {feed.address}: {e.message}") from e
        for call, res in zip(meta_calls, (phase_res, desc_res, dec_res)):
            if not res.ok:
                raise FeedUnavailable(
                    f"Failed to get phase data from contract {feed.address}: {call.function}() failed ({res.error})"
                )

        phase_count = int(phase_res.value)
        description = str(desc_res.value)
        decimals = int(dec_res.value)
        phase_ids = list(range(1, phase_count + 1))
        logger.info("Feed %s (%s) on %s: %s phase(s), %s decimals",
                    feed.address, description, feed.chain, phase_count, decimals)

        address_calls = [ContractCall(feed.address, "phaseAggregators", (pid,)) for pid in phase_ids]
        try:
            address_results = self.reader.batch_read(address_calls, cancel)
        except TransportError as e:
            raise FeedUnavailable(f"Failed to get phase aggregators from contract {feed.address}: {e.message}") from e

        phases = []
        for pid, res in zip(phase_ids, address_results):
            if not res.ok:
                raise FeedUnavailable(
                    f"Failed to get aggregator of phase {pid} from contract {feed.address}: {res.error}"
                )
            address = str(res.value)
            phases.append(PhaseRecord(pid, address, self._latest_round(pid, address, cancel)))

        return FeedCatalog(feed=feed, description=description, decimals=decimals, phases=tuple(phases))

    def _latest_round(self, phase_id: int, address: str, cancel: Optional[CancelToken]) -> Optional[int]:
        if not address or address.lower() == ZERO_ADDRESS:
            logger.warning("Phase %s has no aggregator address", phase_id)
            return None
        check_cancel(cancel)
        res = self.reader.read(ContractCall(address, "latestRound"), cancel)
        if not res.ok:
            logger.warning("latestRound() failed for phase %s (%s): %s", phase_id, address, res.error)
            return None
        return int(res.value)
