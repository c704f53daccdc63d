"""Custom exceptions for the vault rate tracker.

Adapters (chain reader, explorer client, cache stores) translate library
errors into this hierarchy at their boundary, so loops and route handlers
only need to catch RateTrackerError subclasses.
"""


class RateTrackerError(Exception):
    """Base exception for all rate tracker errors."""


class ConnectivityError(RateTrackerError):
    """Raised when the chain endpoint, explorer or cache store is unreachable or times out."""


class ExplorerError(ConnectivityError):
    """Raised when the block explorer answers with an error status."""


class DecodeError(RateTrackerError):
    """Raised when a response or stored payload cannot be decoded."""


class NotFoundError(RateTrackerError):
    """Raised when the cache holds no value for the requested key."""


class PartialReconstructionError(RateTrackerError):
    """Raised when backfill cannot resolve a block and strict mode is enabled."""
