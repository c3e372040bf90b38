"""Shared translation of HTTP outcomes into step adapter error classes."""

import logging

import httpx

from app.core.exceptions import (
    ExternalAPIError,
    PermanentInputError,
    ProviderRejectedRequestError,
    RateLimitExceededError,
)

logger = logging.getLogger(__name__)

_PERMANENT_STATUSES = {400, 404, 410, 422}
_REJECTED_STATUSES = {401, 402, 403}


def raise_for_provider_status(api_name: str, response: httpx.Response) -> None:
    """Raise the error class matching a non-success provider response.

    429 and 5xx are retryable, 4xx input errors are permanent, and
    authentication failures are unexpected (configuration problem).
    """
    status = response.status_code
    if status < 400:
        return
    if status == 429:
        logger.warning("Provider rate limit hit", extra={"api_name": api_name})
        raise RateLimitExceededError(api_name)
    if status in _REJECTED_STATUSES:
        raise ProviderRejectedRequestError(api_name, status)
    if status in _PERMANENT_STATUSES:
        raise PermanentInputError(
            f"{api_name} rejected input with status {status}",
            details={"status_code": status, "body": response.text[:500]},
        )
    raise ExternalAPIError(api_name, f"HTTP {status}")


def translate_transport_error(api_name: str, exc: httpx.HTTPError) -> ExternalAPIError:
    """Map timeouts and connection failures to a retryable provider error."""
    logger.warning("Provider HTTP error", extra={"api_name": api_name, "error": str(exc)})
    return ExternalAPIError(api_name, str(exc) or type(exc).__name__)
