"""Unit tests for provider HTTP error classification."""

import httpx
import pytest

from app.core.exceptions import (
    ExternalAPIError,
    PermanentInputError,
    ProviderRejectedRequestError,
    RateLimitExceededError,
    TransientProviderError,
)
from app.integrations.http_errors import raise_for_provider_status, translate_transport_error


def _response(status: int) -> httpx.Response:
    return httpx.Response(status, text="provider says no")


def test_success_does_not_raise() -> None:
    raise_for_provider_status("Apify", _response(201))


def test_rate_limit_is_transient() -> None:
    with pytest.raises(RateLimitExceededError) as exc_info:
        raise_for_provider_status("Apify", _response(429))

    assert isinstance(exc_info.value, TransientProviderError)


@pytest.mark.parametrize("status", [500, 502, 503, 504])
def test_server_errors_are_transient(status: int) -> None:
    with pytest.raises(ExternalAPIError) as exc_info:
        raise_for_provider_status("Firecrawl", _response(status))

    assert exc_info.value.message == f"Firecrawl API error: HTTP {status}"


@pytest.mark.parametrize("status", [400, 404, 410, 422])
def test_input_errors_are_permanent(status: int) -> None:
    with pytest.raises(PermanentInputError) as exc_info:
        raise_for_provider_status("Firecrawl", _response(status))

    assert exc_info.value.details["status_code"] == status
    assert exc_info.value.details["body"] == "provider says no"


@pytest.mark.parametrize("status", [401, 402, 403])
def test_auth_errors_are_not_step_errors(status: int) -> None:
    with pytest.raises(ProviderRejectedRequestError) as exc_info:
        raise_for_provider_status("Apify", _response(status))

    assert not isinstance(exc_info.value, TransientProviderError)
    assert exc_info.value.status_code == status


def test_transport_errors_become_transient() -> None:
    error = translate_transport_error("Apify", httpx.ReadTimeout("timed out"))

    assert isinstance(error, TransientProviderError)
    assert error.api_name == "Apify"
    assert "timed out" in error.message
