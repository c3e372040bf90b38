"""Custom exception classes for the application."""

from typing import Any


class DirectoryError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# Entity Errors
class EntityNotFoundError(DirectoryError):
    """Catalog entity not found."""

    def __init__(self, entity_id: str) -> None:
        super().__init__(f"Entity not found: {entity_id}")


class DuplicateEntityError(DirectoryError):
    """An entity with the same provider key already exists."""

    def __init__(self, entity_type: str, place_id: str, existing_id: str) -> None:
        self.existing_id = existing_id
        super().__init__(
            f"{entity_type} with place id {place_id} already exists",
            details={"existing_id": existing_id},
        )


class UnknownEntityTypeError(DirectoryError):
    """No pipeline definition registered for the entity type."""

    def __init__(self, entity_type: str) -> None:
        super().__init__(f"Unknown entity type: {entity_type}")


# Extraction Errors
class ExtractionError(DirectoryError):
    """Base class for extraction engine errors."""

    pass


class AlreadyRunningError(ExtractionError):
    """An extraction run is already active for this entity."""

    def __init__(self, entity_id: str) -> None:
        self.entity_id = entity_id
        super().__init__(f"Extraction already running for entity: {entity_id}")


class InvalidPipelineDefinitionError(ExtractionError):
    """Pipeline definition is malformed (duplicate or empty step names)."""

    pass


# Step Adapter Errors
class StepAdapterError(DirectoryError):
    """Base class for errors raised by step adapters."""

    pass


class TransientProviderError(StepAdapterError):
    """Provider failure that is expected to succeed on retry (rate limit, timeout)."""

    pass


class PermanentInputError(StepAdapterError):
    """The step cannot succeed without new input (e.g. no website to scrape)."""

    pass


# External API Errors
class ExternalAPIError(TransientProviderError):
    """Error calling external API."""

    def __init__(self, api_name: str, message: str) -> None:
        self.api_name = api_name
        super().__init__(f"{api_name} API error: {message}")


class RateLimitExceededError(ExternalAPIError):
    """Rate limit exceeded for external API."""

    def __init__(self, api_name: str) -> None:
        super().__init__(api_name, "Rate limit exceeded")


class APIKeyMissingError(DirectoryError):
    """API key not configured."""

    def __init__(self, api_name: str) -> None:
        super().__init__(f"{api_name} API error: API key not configured")


class ProviderRejectedRequestError(DirectoryError):
    """Provider refused the request (authentication or authorization)."""

    def __init__(self, api_name: str, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"{api_name} API error: request rejected with status {status_code}")
