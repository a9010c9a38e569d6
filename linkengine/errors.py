"""
Error taxonomy for the link engine.

Creation and infrastructure failures are exceptions. Resolution gates are
not: they come back from the resolver as GateResult values, and their kinds
and user-facing messages live here so every layer renders them the same way.
"""

from enum import Enum


class LinkEngineError(Exception):
    """Base class for all link engine errors."""


class AliasTaken(LinkEngineError):
    """The requested alias (or code) already exists in the code namespace."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Code '{code}' is already taken")


class AllocationExhausted(LinkEngineError):
    """No free short code was found within the retry budget."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Could not allocate a unique short code after {attempts} attempts")


class IngestFailure(LinkEngineError):
    """An admitted click could not be recorded; the redirect must not happen."""


class StoreUnavailable(LinkEngineError):
    """The link store did not answer within the retry budget."""


class RateLimited(LinkEngineError):
    """The client used up its request budget for the current window."""

    def __init__(self, message: str, retry_after: int):
        self.retry_after = retry_after
        super().__init__(message)


class GateKind(str, Enum):
    """Terminal states of a resolution attempt"""
    NOT_FOUND = "not_found"
    SCHEDULED = "scheduled"
    EXPIRED = "expired"
    LOCKED = "locked"
    EXHAUSTED = "exhausted"


GATE_MESSAGES = {
    GateKind.NOT_FOUND: "Link not found",
    GateKind.SCHEDULED: "This link is not live yet",
    GateKind.EXPIRED: "This link has expired",
    GateKind.LOCKED: "Password required",
    GateKind.EXHAUSTED: "This link has reached its click limit",
}

INCORRECT_PASSWORD_MESSAGE = "Incorrect password"
