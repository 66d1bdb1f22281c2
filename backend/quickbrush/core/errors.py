"""Exception taxonomy for the generation core.

Fatal errors propagate unchanged from the remote clients through the pipeline
to the caller, which decides how to present them. The only non-fatal case is
the reference-image description step (ReferenceDescriptionWarning).
"""
from typing import Optional


class QuickbrushError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(QuickbrushError):
    """No viable generation strategy for the current account/credentials."""


class InvalidRequestError(QuickbrushError):
    """The request was rejected before any network call was made."""


class RemoteServiceError(QuickbrushError):
    """A remote call failed. Carries the provider message when one was sent."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TransientNetworkError(RemoteServiceError):
    """Transport failure, or a non-2xx response without a structured body."""


class AuthorizationError(RemoteServiceError):
    """The remote service rejected the credentials (401/403)."""


class ProviderError(RemoteServiceError):
    """Non-2xx response with a structured error body."""


class BrokerError(RemoteServiceError):
    """Failure reported by the Wizzlethorpe Labs backend."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message, status_code)
        self.code = code


class SubscriptionRequiredError(BrokerError):
    """The linked account's tier does not include the requested feature."""


class QuotaExceededError(BrokerError):
    """The linked account has used up its weekly generation quota."""


class EmptyDescriptionError(QuickbrushError):
    """The refinement step returned blank text."""


class MalformedResponseError(QuickbrushError):
    """An otherwise successful response is missing an expected field."""


class LinkError(QuickbrushError):
    """Account linking failed."""


class LinkExpiredError(LinkError):
    pass


class LinkTimeoutError(LinkError):
    pass


class ReferenceDescriptionWarning(UserWarning):
    """Describing the reference images failed; generation continued without them."""
