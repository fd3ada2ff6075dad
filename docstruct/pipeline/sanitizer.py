"""Best-effort recovery of a JSON object from raw model output.

Only the first ``{`` and the last ``}`` are located; bracket balance is
not checked, so braces inside string values must balance on their own.
"""

EMPTY_OBJECT = "{}"


def sanitize_response(raw: str | None) -> str:
    """Strip code fences and surrounding prose from an LLM response.

    Args:
        raw: Model output, possibly ``None``.

    Returns:
        The outermost ``{...}`` substring, or ``"{}"`` when there is none.
    """
    if raw is None:
        return EMPTY_OBJECT

    text = raw.strip()
    if text.startswith("```"):
        text = text.replace("```json", "").replace("```", "").strip()

    start = text.find("{")
    end = text.rfind("}")
    if start >= 0 and end > start:
        return text[start : end + 1]
    return EMPTY_OBJECT
