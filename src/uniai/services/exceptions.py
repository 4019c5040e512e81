"""Service error hierarchy for image generation.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- ConfigurationError / ValidationError: Rejected before a task exists,
  returned synchronously to the submitter
- ProviderError and subclasses: Generation failures recorded on the task
- RelocationError: Per-image storage failure, never fails a task
"""

from typing import Optional


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class ConfigurationError(ServiceError):
    """Missing or invalid configuration.

    Examples:
    - Provider API key not configured
    - Unknown default provider
    """

    pass


class ValidationError(ServiceError):
    """Request rejected before any task is created.

    Examples:
    - Empty prompt
    - Prompt longer than the model allows
    - Unsupported model
    - Batch count out of range
    """

    pass


class ProviderError(ServiceError):
    """Generation backend failed to produce images.

    Examples:
    - Non-2xx response (400, 500, 503)
    - Provider-reported task failure
    - Network errors and HTTP timeouts
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderAuthError(ProviderError):
    """Authentication failure (401, 403)."""

    pass


class ProviderRateLimitError(ProviderError):
    """Rate limit exceeded (429)."""

    pass


class ContentPolicyError(ProviderError):
    """Prompt or output rejected by the provider's content policy."""

    pass


class NormalizationError(ProviderError):
    """Successful response without any recognizable image field."""

    pass


class PollTimeoutError(ProviderError, TimeoutError):
    """Polling attempt budget exhausted without a terminal provider state."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class RelocationError(ServiceError):
    """Download or upload of one image to operator storage failed."""

    pass
