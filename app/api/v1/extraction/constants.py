"""Constants for extraction routes."""

DEFAULT_ENTITY_LIMIT = 50
MAX_ENTITY_LIMIT = 200

EXTRACTION_ALREADY_RUNNING_DETAIL = "Extraction is already running for this entity"
EXTRACTION_QUEUE_FULL_DETAIL = "Extraction queue is full, try again shortly"
ENTITY_NOT_FOUND_DETAIL = "Entity not found"
RETRY_QUEUED_DETAIL = "Resumption queued"
RETRY_NOT_NEEDED_DETAIL = "Extraction already completed; use rerun to refresh it"
RERUN_QUEUED_DETAIL = "Full re-run queued"
