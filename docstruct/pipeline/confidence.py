"""Aggregate confidence of an extraction result."""

from docstruct.models import ExtractionResult


def aggregate_confidence(result: ExtractionResult | None) -> float:
    """Mean of every non-null field confidence across all pages.

    Absent confidences are skipped rather than counted as zero. Returns
    ``0.0`` when the result is ``None`` or carries no confidences.
    """
    if result is None:
        return 0.0

    confidences = [
        f.confidence
        for page in result.pages
        for f in page.fields
        if f.confidence is not None
    ]
    if not confidences:
        return 0.0
    return sum(confidences) / len(confidences)
