class CodeGraphError(Exception):
    """Base exception for the CodeGraph retrieval engine."""
    pass


class TransientError(CodeGraphError):
    """Timeout, connection reset or other failure worth retrying."""
    pass


class NotFoundError(CodeGraphError):
    """Unknown element or feedback record."""
    pass


class InvalidInputError(CodeGraphError):
    """Malformed feedback, out-of-range value or bad query."""
    pass


class CircuitOpenError(CodeGraphError):
    """Raised when circuit breaker is open."""

    def __init__(self, message: str, service: str = None):
        super().__init__(message)
        self.service = service


class RetryExhaustedError(CodeGraphError):
    """Raised when a retry policy has used up all of its attempts."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class ServiceUnavailableError(CodeGraphError):
    """No backend is usable and no cached response exists."""
    pass


class NoSignalsError(CodeGraphError):
    """Every retrieval signal failed for a query."""
    pass
