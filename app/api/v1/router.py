"""API v1 router aggregator."""

from fastapi import APIRouter

from app.api.v1.extraction import routes as extraction

api_router = APIRouter()

api_router.include_router(extraction.router, prefix="/extraction", tags=["Extraction"])
