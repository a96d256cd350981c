"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Raw input (identifier, amount, frequency) is malformed"""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class CameraPermissionError(DomainException):
    """Camera access was denied; the scan path is closed for this session"""

    pass


class UnknownFeatureError(DomainException):
    """A derived feature is in its explicit "unknown" state"""

    pass


class InvalidTransitionError(DomainException):
    """Session event is not allowed in the current state"""

    pass


class ScoringError(DomainException):
    """Risk scoring could not produce an assessment"""

    kind = "scoring_error"


class NetworkError(ScoringError):
    """Scoring endpoint is unreachable"""

    kind = "network_error"


class ServiceError(ScoringError):
    """Scoring endpoint returned a non-success or malformed response"""

    kind = "service_error"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ScoringTimeoutError(ScoringError, TimeoutError):
    """Scoring did not finish within the configured bound"""

    kind = "timeout_error"
