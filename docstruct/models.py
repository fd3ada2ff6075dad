"""Typed extraction result and run status shared across the service.

The result models double as the wire schema: they are what the LLM is asked
to produce, what is persisted, and what the API returns. Keys are matched
case-insensitively and in either snake_case or camelCase, and unknown keys
are ignored so that model drift does not break decoding.
"""

import re
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

DEFAULT_DOCUMENT_TYPE = "generic_form"

Scalar = bool | int | float | str | None
CellValue = Scalar | dict[str, Scalar]

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def to_snake_key(key: str) -> str:
    """Normalize ``fileId``, ``FileID``, ``FILE_ID`` or ``file-id`` to ``file_id``."""
    key = _CAMEL_BOUNDARY.sub("_", key.strip())
    return re.sub(r"[\s\-]+", "_", key).lower()


class RunStatus(StrEnum):
    """Lifecycle states of a run."""

    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _normalize_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        normalized: dict[str, Any] = {}
        for key, value in data.items():
            if isinstance(key, str):
                normalized.setdefault(to_snake_key(key), value)
        return normalized


class Field(_WireModel):
    """A single named value read off a page."""

    name: str = ""
    value: Scalar = None
    confidence: float | None = None
    bbox: tuple[float, float, float, float] | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _null_name(cls, value: Any) -> Any:
        return "" if value is None else value


class Table(_WireModel):
    """A table of string-keyed rows read off a page."""

    name: str = ""
    rows: list[dict[str, CellValue]] = []
    confidence: float | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _null_name(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("rows", mode="before")
    @classmethod
    def _null_rows(cls, value: Any) -> Any:
        return [] if value is None else value


class Page(_WireModel):
    """Fields and tables for one 1-based page."""

    page: int = 1
    fields: list[Field] = []
    tables: list[Table] = []

    @field_validator("page", mode="before")
    @classmethod
    def _null_page(cls, value: Any) -> Any:
        return 1 if value is None else value

    @field_validator("fields", "tables", mode="before")
    @classmethod
    def _null_lists(cls, value: Any) -> Any:
        return [] if value is None else value


class ExtractionResult(_WireModel):
    """Structured output of one run.

    ``pages`` is the only required key; a payload without it is not
    considered an extraction result at all. An explicit null for any other
    list, name or page number reads as its default.
    """

    file_id: str | None = None
    run_id: str | None = None
    document_type: str | None = None
    pages: list[Page]
    warnings: list[str] = []
    processing_time_ms: int = 0

    # Overwritten by the orchestrator, so only their shape is loosened here.
    @field_validator("file_id", "run_id", "document_type", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("warnings", mode="before")
    @classmethod
    def _null_warnings(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("processing_time_ms", mode="before")
    @classmethod
    def _coerce_duration(cls, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int | float):
            return 0
        return int(value)

    def to_json(self) -> str:
        """Serialize to the snake_case wire form."""
        return self.model_dump_json()
