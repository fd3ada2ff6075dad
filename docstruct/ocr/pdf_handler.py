"""Page image loading for PDFs and raster documents.

PDFs are rasterized with pdf2image; multi-frame images such as TIFF
scans yield one page per frame.
"""

from pathlib import Path

import numpy as np
from pdf2image import convert_from_path
from PIL import Image, ImageSequence

from docstruct.utils.logger import get_logger

logger = get_logger(__name__)


class PDFHandler:
    """Loads every page of a document as an RGB numpy array.

    Args:
        dpi: Resolution for PDF rendering. Higher values produce
            better OCR results but use more memory.
    """

    def __init__(self, dpi: int = 300) -> None:
        self.dpi = dpi

    def load_pages(self, path: Path) -> list[np.ndarray]:
        """Load all pages of a PDF or image file.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Document not found: {path}")

        if path.suffix.lower() == ".pdf":
            pages = [np.array(img.convert("RGB")) for img in convert_from_path(str(path), dpi=self.dpi)]
            logger.info("Converted PDF %s to %d images at %d DPI", path.name, len(pages), self.dpi)
            return pages

        with Image.open(path) as img:
            pages = [np.array(frame.convert("RGB")) for frame in ImageSequence.Iterator(img)]
        logger.debug("Loaded %d frame(s) from %s", len(pages), path.name)
        return pages
