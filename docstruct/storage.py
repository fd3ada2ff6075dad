"""Local disk storage for uploaded documents."""

from pathlib import Path

from docstruct.utils.logger import get_logger

logger = get_logger(__name__)


class FileStorage:
    """Writes uploads under a base directory as ``<file_id>_<name>``.

    Args:
        base_dir: Directory for stored uploads; created if missing.
    """

    def __init__(self, base_dir: Path | str) -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def save(self, content: bytes, file_id: str, filename: str) -> Path:
        """Store upload bytes and return the absolute path written."""
        # Client-supplied names may carry directories.
        safe_name = Path(filename).name or "document"
        path = (self.base_dir / f"{file_id}_{safe_name}").resolve()
        path.write_bytes(content)
        logger.info("Stored %s (%d bytes) at %s", safe_name, len(content), path)
        return path
