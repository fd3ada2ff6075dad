"""Page clean-up applied before OCR."""

import cv2
import numpy as np

from docstruct.utils.logger import get_logger

logger = get_logger(__name__)


def to_gray(image: np.ndarray) -> np.ndarray:
    """Convert an RGB or RGBA page to grayscale; grayscale passes through."""
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)


def clean_page(
    image: np.ndarray,
    binarize: bool = True,
    method: str = "adaptive",
) -> np.ndarray:
    """Grayscale a page and optionally binarize it.

    Args:
        image: Page image as loaded from the document.
        binarize: Whether to threshold the page to black and white.
        method: ``"adaptive"`` (Gaussian, 31px neighbourhood) or ``"otsu"``.

    Returns:
        Single-channel page image.
    """
    gray = to_gray(image)
    if not binarize:
        return gray

    if method == "otsu":
        _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    else:
        binary = cv2.adaptiveThreshold(
            gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 31, 10
        )
    logger.debug("Binarized page with %s thresholding", method)
    return binary
