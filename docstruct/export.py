"""CSV and JSON renderings of an extraction result."""

import json

from docstruct.models import ExtractionResult, Scalar

CSV_HEADER = "page,field,value,confidence"


def _text(value: Scalar) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def to_csv(result: ExtractionResult) -> str:
    """Render one row per field per page.

    ``field`` and ``value`` are always double-quoted with embedded quotes
    doubled; ``confidence`` is left empty when absent.
    """
    lines = [CSV_HEADER]
    for page in result.pages:
        for field in page.fields:
            lines.append(
                ",".join(
                    (
                        str(page.page),
                        _quote(field.name),
                        _quote(_text(field.value)),
                        _text(field.confidence),
                    )
                )
            )
    return "\n".join(lines) + "\n"


def to_json(result: ExtractionResult, indent: int | None = None) -> str:
    """Render the snake_case wire form."""
    return json.dumps(result.model_dump(mode="json"), indent=indent, ensure_ascii=False)
