"""Decode sanitized model output into an ``ExtractionResult``.

Bad input is an expected outcome here, so it is returned as a value
instead of raised.
"""

from dataclasses import dataclass

from pydantic import ValidationError

from docstruct.errors import MalformedModelOutput
from docstruct.models import ExtractionResult
from docstruct.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ParseOutcome:
    """Result of a parse attempt: exactly one of ``result`` or ``error`` is set."""

    result: ExtractionResult | None = None
    error: MalformedModelOutput | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None


def parse_result(text: str) -> ParseOutcome:
    """Parse sanitized JSON text into an extraction result.

    Args:
        text: Output of :func:`~docstruct.pipeline.sanitizer.sanitize_response`.

    Returns:
        A successful outcome, or one carrying ``MalformedModelOutput`` when
        the text is not JSON, not an object, lacks ``pages``, or holds values
        that do not fit the schema.
    """
    try:
        result = ExtractionResult.model_validate_json(text)
    except ValidationError as exc:
        logger.warning("Model output rejected: %d schema error(s)", exc.error_count())
        logger.debug("Schema errors: %s", exc.errors(include_url=False))
        return ParseOutcome(error=MalformedModelOutput(_summarize(exc)))
    return ParseOutcome(result=result)


def _summarize(exc: ValidationError) -> str:
    first = exc.errors(include_url=False)[0]
    location = ".".join(str(part) for part in first["loc"]) or "<root>"
    return f"{location}: {first['msg']}"
