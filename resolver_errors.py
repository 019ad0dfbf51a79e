"""
Error taxonomy for round resolution.

Each error carries the code and HTTP status the web layer reports, so the
route glue never has to know which failure it is looking at.
"""
from typing import Dict, List, Optional


class RoundResolverError(Exception):
    """Base class for every failure the resolver reports to its caller."""

    error_code = "ROUND_RESOLVER_ERROR"
    status = 500

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, str]:
        return {"errorCode": self.error_code, "message": self.message}


class InvalidQuery(RoundResolverError):
    """Malformed feed identity or timestamps; raised before any remote call."""

    error_code = "INVALID_QUERY"
    status = 400


class FeedUnavailable(RoundResolverError):
    """Proxy metadata or phase addresses could not be read."""

    error_code = "FAILED_TO_FETCH_PHASE_DATA"
    status = 500


class NoPhaseDataFound(RoundResolverError):
    error_code = "NO_PHASE_DATA_FOUND"
    status = 404


class NoMatchFound(RoundResolverError):
    error_code = "NO_MATCH_FOUND"
    status = 404


class RoundDataUnavailable(RoundResolverError):
    """A batched range read failed outright.

    Rounds from chunks that completed before the failure are kept on
    ``partial_rounds``.
    """

    error_code = "FAILED_TO_FETCH_ROUNDS_DATA"
    status = 500

    def __init__(self, message: str, partial_rounds: Optional[List] = None):
        super().__init__(message)
        self.partial_rounds = list(partial_rounds or [])


class Cancelled(RoundResolverError):
    error_code = "CANCELLED"
    status = 504


class NonMonotonicRounds(RoundResolverError):
    """A round inside one phase is older than the round before it."""

    error_code = "NON_MONOTONIC_ROUNDS"
    status = 500


class TransportError(RoundResolverError):
    """A round trip to the RPC endpoint kept failing after retries."""

    error_code = "TRANSPORT_ERROR"
    status = 502


class ClientUnavailable(RoundResolverError):
    error_code = "FAILED_CLIENT_CREATION"
    status = 500
