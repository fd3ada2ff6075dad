"""OCR extractor: document file in, page-level tokens out.

Combines page loading, clean-up and Tesseract into the single
``extract`` operation the run orchestrator depends on. Every failure
surfaces as ``OcrFailure``; there is no retry and no partial result.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Protocol

from docstruct.errors import OcrFailure
from docstruct.utils.config import OCRConfig
from docstruct.utils.logger import get_logger

from .pdf_handler import PDFHandler
from .preprocess import clean_page
from .tesseract_engine import TesseractEngine, Token

logger = get_logger(__name__)


@dataclass
class PageResult:
    """OCR output for one page."""

    page: int
    tokens: list[Token]
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class OcrTool(Protocol):
    """Anything that can turn a document file into OCR pages."""

    def extract(self, path: Path) -> list[PageResult]: ...


class OcrExtractor:
    """Tesseract-backed implementation of :class:`OcrTool`.

    Args:
        config: OCR configuration (language, PSM, DPI, clean-up).
    """

    def __init__(self, config: OCRConfig) -> None:
        self.config = config
        self.pdf_handler = PDFHandler(dpi=config.pdf_dpi)
        self.engine = TesseractEngine(
            tesseract_cmd=config.tesseract_cmd,
            default_lang=config.default_lang,
        )

    def extract(self, path: Path) -> list[PageResult]:
        """Run OCR over every page of a document.

        Args:
            path: Path to a PDF or image file.

        Returns:
            One ``PageResult`` per page, numbered from 1.

        Raises:
            OcrFailure: If the file is missing or unreadable, language data
                is not installed, or Tesseract fails.
        """
        try:
            self.engine.ensure_language()
            images = self.pdf_handler.load_pages(Path(path))
            pages = []
            for number, image in enumerate(images, 1):
                cleaned = clean_page(
                    image,
                    binarize=self.config.binarize,
                    method=self.config.binarize_method,
                )
                tokens = self.engine.read_lines(cleaned, psm=self.config.psm)
                pages.append(
                    PageResult(
                        page=number,
                        tokens=tokens,
                        metadata={
                            "language": self.config.default_lang,
                            "width": int(image.shape[1]),
                            "height": int(image.shape[0]),
                            "mean_confidence": _mean_confidence(tokens),
                        },
                    )
                )
        except OcrFailure:
            raise
        except Exception as exc:
            raise OcrFailure(f"Tesseract OCR failed: {exc}") from exc

        logger.info(
            "OCR extracted %d page(s), %d line(s) from %s",
            len(pages),
            sum(len(p.tokens) for p in pages),
            Path(path).name,
        )
        return pages


def _mean_confidence(tokens: list[Token]) -> float:
    confs = [t.confidence for t in tokens if t.confidence is not None]
    return round(sum(confs) / len(confs), 4) if confs else 0.0
