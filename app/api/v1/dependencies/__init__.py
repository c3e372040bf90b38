"""Reusable API dependencies shared across v1 routes."""

from typing import Annotated

from fastapi import Depends

from app.services.extraction_service import ExtractionService, get_extraction_service

ExtractionServiceDep = Annotated[ExtractionService, Depends(get_extraction_service)]

__all__ = ["ExtractionServiceDep", "get_extraction_service"]
