"""Error taxonomy for the order engine.

Every error carries a machine-readable ``reason`` so callers can branch on it
without parsing messages:

- ValidationError: bad input to a builder or compiler
- AuthorizationError: caller lacks the right to mutate an index
- ConsistencyError: order fields that disagree with each other or the domain
- RelayError: the off-chain orderbook rejected or failed a request
"""

from typing import Optional


class OrderEngineError(Exception):
    """Base class for all engine errors."""

    reason = "ENGINE_ERROR"

    def __init__(self, message: str = "", reason: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message
        if reason is not None:
            self.reason = reason

    def __str__(self):
        return f"[{self.reason}] {self.message}" if self.message else self.reason


# Validation

class ValidationError(OrderEngineError):
    reason = "VALIDATION_ERROR"


class InvalidAmount(ValidationError):
    reason = "INVALID_AMOUNT"


class InvalidAsset(ValidationError):
    reason = "INVALID_ASSET"


class InvalidCondition(ValidationError):
    reason = "INVALID_CONDITION"


class UnsupportedOperator(ValidationError):
    reason = "UNSUPPORTED_OPERATOR"


# Authorization

class AuthorizationError(OrderEngineError):
    reason = "AUTHORIZATION_ERROR"


class NotAuthorized(AuthorizationError):
    reason = "NOT_AUTHORIZED"


# Consistency

class ConsistencyError(OrderEngineError):
    reason = "CONSISTENCY_ERROR"


class SaltExtensionMismatch(ConsistencyError):
    reason = "SALT_EXTENSION_MISMATCH"


class DomainMismatch(ConsistencyError):
    reason = "DOMAIN_MISMATCH"


class SignerMismatch(ConsistencyError):
    reason = "SIGNER_MISMATCH"


# Lookup / state

class KeyUnavailable(OrderEngineError):
    reason = "KEY_UNAVAILABLE"


class IndexNotFound(OrderEngineError):
    reason = "INDEX_NOT_FOUND"


class OrderNotFound(OrderEngineError):
    reason = "ORDER_NOT_FOUND"


class IllegalTransition(OrderEngineError):
    reason = "ILLEGAL_TRANSITION"


# Relay / network

class RelayError(OrderEngineError):
    """Failure talking to the relay or the chain.

    ``transient`` marks failures worth retrying (rate limits, timeouts,
    5xx responses). ``status`` is the HTTP status when one was received.
    """

    reason = "RELAY_ERROR"

    def __init__(
        self,
        message: str = "",
        reason: Optional[str] = None,
        transient: bool = False,
        status: Optional[int] = None,
    ):
        super().__init__(message, reason)
        self.transient = transient
        self.status = status


class SubmissionError(RelayError):
    reason = "SUBMISSION_FAILED"


class CancellationError(RelayError):
    reason = "CANCELLATION_FAILED"


class RpcError(RelayError):
    """JSON-RPC error; ``reverted`` marks a contract revert."""

    reason = "RPC_ERROR"

    def __init__(
        self,
        message: str = "",
        reason: Optional[str] = None,
        transient: bool = False,
        reverted: bool = False,
    ):
        super().__init__(message, reason, transient=transient)
        self.reverted = reverted


class RequestTimeout(RelayError):
    reason = "REQUEST_TIMEOUT"

    def __init__(self, message: str = "", reason: Optional[str] = None):
        super().__init__(message, reason, transient=True)
