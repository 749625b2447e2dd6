"""Service error hierarchy for the order-to-generation workflow.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransientError / PermanentError: Retry classification for external calls
- Event errors: raised while handling inbound payment events
- GenerationError: Executor failures (the generation is already FAILED when raised)
- RetryRejectedError: Retry-path precondition violations (no state was mutated)
- Polling errors: client-side status polling outcomes
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Rate limit exceeded (429)
    - Service unavailable (500, 502, 503)
    """

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Authentication failures (401, 403)
    - Invalid request parameters (400)
    - Configuration errors
    """

    pass


# Inbound payment event errors
class AuthenticationError(ServiceError):
    """Event signature or checkout session could not be verified."""

    pass


class MalformedEventError(ServiceError):
    """Verified event is missing required metadata; logged and dropped."""

    pass


# Generation executor errors
class GenerationError(ServiceError):
    """Base exception for generation execution errors."""

    def __init__(self, message: str, generation_id: int | None = None):
        super().__init__(message)
        self.generation_id = generation_id


class GenerationNotFoundError(GenerationError):
    """Generation row does not exist."""

    pass


class DataIntegrityError(GenerationError):
    """Stored generation options failed re-validation."""

    pass


class ExternalServiceError(GenerationError):
    """Inference or image-hosting call failed."""

    pass


# Retry action errors
class RetryRejectedError(ServiceError):
    """Base exception for rejected retry attempts."""

    pass


class AuthorizationError(RetryRejectedError):
    """Requesting user does not own the generation."""

    pass


class StateError(RetryRejectedError):
    """Generation is not in a state that allows the requested transition."""

    pass


class LimitError(RetryRejectedError):
    """Retry budget exhausted."""

    pass


class PaymentError(RetryRejectedError):
    """No paid order exists for the generation."""

    pass


# Status polling errors (client side)
class PollingError(ServiceError):
    """Base exception for status polling outcomes."""

    pass


class PollingConnectionError(PollingError):
    """Status query failed (network, HTTP status or parse error)."""

    pass


class PollingTimeoutError(PollingError):
    """Generation stayed PROCESSING for the whole polling budget."""

    pass
