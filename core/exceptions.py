"""Custom exception classes for the consistency core"""

from typing import List, Optional


class LookbookException(Exception):
    """Base exception for the consistency core"""

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class ReferenceValidationException(LookbookException):
    """Raised when a reference or request is malformed (missing field, bad palette)"""

    def __init__(self, message: str = "Reference validation failed", field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class ProviderException(LookbookException):
    """Raised when a generative-model call fails (network, timeout, provider rejection)"""

    def __init__(self, model_id: str, cause: Optional[BaseException] = None, message: str = None):
        if message is None:
            detail = str(cause) if cause is not None else "unknown error"
            message = f"{model_id} generation failed: {detail}"
        self.model_id = model_id
        self.cause = cause
        super().__init__(message)


class ProviderTimeoutException(ProviderException):
    """Raised when a provider call exceeds its configured timeout"""

    def __init__(self, model_id: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            model_id,
            message=f"{model_id} generation timed out after {timeout_seconds:.0f}s"
        )


class PolicyExhaustedException(LookbookException):
    """Raised when every model in an auto-selected fallback chain has failed"""

    def __init__(self, family: str, errors: Optional[List[ProviderException]] = None, message: str = None):
        self.family = family
        self.errors = list(errors or [])
        if message is None:
            if self.errors:
                message = f"All {family} models failed; last error: {self.errors[-1].message}"
            else:
                message = f"No {family} model was available to run"
        super().__init__(message)


class ScoringDegradedException(LookbookException):
    """Raised by a scoring primitive that could not produce a score"""

    def __init__(self, axis: str, cause: Optional[BaseException] = None, message: str = None):
        if message is None:
            message = f"{axis} scoring failed: {cause}" if cause is not None else f"{axis} scoring failed"
        self.axis = axis
        self.cause = cause
        super().__init__(message)


class DanglingReferenceException(LookbookException):
    """Raised when a history row points at a reference that no longer exists"""

    def __init__(self, reference_kind: str, reference_id: str, message: str = None):
        if message is None:
            message = f"{reference_kind} reference not found: {reference_id}"
        self.reference_kind = reference_kind
        self.reference_id = reference_id
        super().__init__(message)


class ImageLoadException(LookbookException):
    """Raised when an image cannot be downloaded or decoded"""

    def __init__(self, url: str, cause: Optional[BaseException] = None):
        self.url = url
        self.cause = cause
        super().__init__(f"Could not load image {url}: {cause}")


class CircuitBreakerOpenException(ProviderException):
    """Raised when a model's circuit breaker is open (model temporarily unavailable)"""

    def __init__(self, model_id: str):
        super().__init__(
            model_id,
            message=f"{model_id} is temporarily unavailable (circuit open)"
        )
