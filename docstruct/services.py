"""Wiring of the pipeline collaborators shared by the API and the CLI."""

import uuid
from dataclasses import dataclass
from pathlib import Path

from docstruct.db.models import FileRecord
from docstruct.db.session import create_session_factory
from docstruct.db.stores import ExtractionStore, FileStore, RunStore
from docstruct.llm.client import CompletionOptions, OpenAIChatClient
from docstruct.models import RunStatus
from docstruct.ocr.extractor import OcrExtractor
from docstruct.pipeline.orchestrator import RunOrchestrator, RunService
from docstruct.storage import FileStorage
from docstruct.utils.config import AppConfig
from docstruct.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Components:
    """Stores, storage, and run service for one configuration."""

    storage: FileStorage
    files: FileStore
    runs: RunStore
    extractions: ExtractionStore
    run_service: RunService

    def register_upload(
        self, content: bytes, filename: str, mime_type: str | None = None
    ) -> tuple[str, str]:
        """Store an upload, record it, and queue a run for it.

        Returns:
            ``(file_id, run_id)`` of the new file and QUEUED run.
        """
        file_id = str(uuid.uuid4())
        path = self.storage.save(content, file_id, filename)
        self.files.save(
            FileRecord(
                file_id=file_id,
                name=Path(filename).name,
                mime_type=mime_type,
                size=len(content),
                storage_uri=str(path),
            )
        )
        run = self.runs.create(file_id)
        logger.info("Queued run %s for file %s (%s)", run.run_id, file_id, filename)
        return file_id, run.run_id


def build_components(config: AppConfig) -> Components:
    """Build the collaborators described by ``config``."""
    session_factory = create_session_factory(config.database)
    files = FileStore(session_factory)
    runs = RunStore(session_factory)
    extractions = ExtractionStore(session_factory)
    orchestrator = RunOrchestrator(
        ocr=OcrExtractor(config.ocr),
        llm=OpenAIChatClient(config.llm),
        runs=runs,
        extractions=extractions,
        options=CompletionOptions(
            temperature=config.llm.temperature,
            max_tokens=config.llm.max_tokens,
        ),
        fallback_status=RunStatus(config.pipeline.fallback_status),
        default_document_type=config.pipeline.default_document_type,
    )
    return Components(
        storage=FileStorage(config.storage.local_dir),
        files=files,
        runs=runs,
        extractions=extractions,
        run_service=RunService(orchestrator, files),
    )
