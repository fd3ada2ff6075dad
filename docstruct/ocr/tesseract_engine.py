"""Tesseract OCR engine wrapper producing line-level tokens.

Word boxes from ``image_to_data`` are grouped into text lines so the
structuring prompt stays compact while keeping positions and confidences.
"""

from collections import defaultdict
from dataclasses import dataclass

import numpy as np
import pytesseract
from PIL import Image

from docstruct.errors import OcrFailure
from docstruct.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Token:
    """A run of OCR text with its bounding box and 0..1 confidence."""

    text: str
    x: float
    y: float
    w: float
    h: float
    confidence: float | None = None


class TesseractEngine:
    """Wrapper around Tesseract for line-level text extraction.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        default_lang: Default OCR language code, ``+``-joined for several.
    """

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        default_lang: str = "eng",
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.default_lang = default_lang

    def ensure_language(self, lang: str | None = None) -> None:
        """Check that traineddata for every requested language is installed.

        Raises:
            OcrFailure: If Tesseract is missing or a language is not installed.
        """
        lang = lang or self.default_lang
        try:
            installed = set(pytesseract.get_languages(config=""))
        except pytesseract.TesseractNotFoundError as exc:
            raise OcrFailure(f"Tesseract executable not found: {exc}") from exc

        missing = [code for code in lang.split("+") if code not in installed]
        if missing:
            raise OcrFailure(
                "Tesseract traineddata not found for: "
                f"{', '.join(missing)}. Install the language packs or set TESSDATA_PREFIX."
            )

    def read_lines(
        self,
        image: np.ndarray,
        lang: str | None = None,
        psm: int = 3,
    ) -> list[Token]:
        """Extract text lines with bounding boxes from an image.

        Args:
            image: Input image as a numpy array.
            lang: OCR language code. Defaults to the engine default.
            psm: Tesseract page segmentation mode.

        Returns:
            Line tokens in reading order.
        """
        lang = lang or self.default_lang
        data = pytesseract.image_to_data(
            Image.fromarray(image),
            lang=lang,
            config=f"--psm {psm}",
            output_type=pytesseract.Output.DICT,
        )

        lines: dict[tuple[int, int, int], list[int]] = defaultdict(list)
        for i, raw_text in enumerate(data["text"]):
            if float(data["conf"][i]) < 0 or not raw_text.strip():
                continue
            key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
            lines[key].append(i)

        tokens = [self._merge_line(data, indices) for _, indices in sorted(lines.items())]
        logger.debug("OCR grouped %d words into %d lines", sum(map(len, lines.values())), len(tokens))
        return tokens

    @staticmethod
    def _merge_line(data: dict, indices: list[int]) -> Token:
        left = min(data["left"][i] for i in indices)
        top = min(data["top"][i] for i in indices)
        right = max(data["left"][i] + data["width"][i] for i in indices)
        bottom = max(data["top"][i] + data["height"][i] for i in indices)
        confs = [float(data["conf"][i]) for i in indices]
        return Token(
            text=" ".join(data["text"][i].strip() for i in indices),
            x=float(left),
            y=float(top),
            w=float(right - left),
            h=float(bottom - top),
            confidence=round(sum(confs) / len(confs) / 100.0, 4),
        )
