"""Prompt payload for the LLM structuring step."""

import json
from collections.abc import Sequence

from docstruct.ocr.extractor import PageResult

SYSTEM_PROMPT = """\
You are a strict information extraction engine.
Convert OCR text into structured JSON ONLY.

RULES:
- Output ONLY VALID JSON.
- No explanations.
- Follow EXACT schema:

{
  "file_id": string,
  "run_id": string,
  "document_type": string,
  "pages": [ {
    "page": number,
    "fields": [
      {"name": string, "value": string, "confidence": number}
    ],
    "tables": []
  } ],
  "warnings": [string],
  "processing_time_ms": number
}
"""

USER_PREFIX = "OCR_DATA:\n"


def build_user_payload(pages: Sequence[PageResult]) -> str:
    """Serialize OCR pages into the user message.

    Args:
        pages: OCR output in page order.

    Returns:
        ``OCR_DATA:`` followed by ``{"pages": [...]}`` as JSON.
    """
    payload = {"pages": [page.to_dict() for page in pages]}
    return USER_PREFIX + json.dumps(payload, ensure_ascii=False)
