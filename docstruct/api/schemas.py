"""Pydantic request/response schemas for the FastAPI endpoints.

Envelope schemas are camelCase on the wire (``runId``, ``fileId``); the
extraction result they carry keeps its snake_case schema.
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from docstruct.models import ExtractionResult, RunStatus


class ExportFormat(StrEnum):
    """Supported export formats."""

    CSV = "csv"
    JSON = "json"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadResponse(_CamelModel):
    """IDs of a stored upload and its queued run."""

    file_id: str
    run_id: str


class RunResponse(_CamelModel):
    """Status of a run with its result or error."""

    status: RunStatus
    result: ExtractionResult | None = None
    error: str | None = None


class ExportRequest(_CamelModel):
    """Export request for a run's extraction."""

    run_id: str
    format: ExportFormat = ExportFormat.JSON

    @field_validator("format", mode="before")
    @classmethod
    def _lowercase_format(cls, value: object) -> object:
        return value.lower() if isinstance(value, str) else value


class ExtractionSummary(_CamelModel):
    """One row of the extraction listing."""

    run_id: str
    document_type: str | None = None
    avg_confidence: float | None = None
    created_at: datetime | None = None


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
    llm_configured: bool
