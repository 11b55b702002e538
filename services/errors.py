"""Domain exceptions for the analysis pipeline."""


class GroundedError(Exception):
    """Base exception for the analysis pipeline."""
    pass


class ValidationError(GroundedError):
    """Rejected input (empty query, bad payment token, ...)."""
    pass


class QuotaExceededError(GroundedError):
    """Daily limit reached; carries the usage state for the client."""

    def __init__(self, usage):
        super().__init__("Daily limit exceeded")
        self.usage = usage


class TransportError(GroundedError):
    """Text-generation call failed (network, auth, timeout, empty output)."""
    pass


class PersistenceError(GroundedError):
    """Store write failed in the middle of the pipeline."""
    pass


class NotFoundError(GroundedError):
    """Analysis or user absent, or read access denied."""
    pass


class ConflictError(GroundedError):
    """Claim attempted on an analysis that already has an owner."""
    pass
