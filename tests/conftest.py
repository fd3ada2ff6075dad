"""Shared test fixtures for the document structuring test suite."""

import json
from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest
from sqlalchemy.orm import Session, sessionmaker

from docstruct.db.session import create_session_factory
from docstruct.db.stores import ExtractionStore, FileStore, RunStore
from docstruct.llm.client import LLMCompletion
from docstruct.ocr.extractor import PageResult
from docstruct.ocr.tesseract_engine import Token
from docstruct.pipeline.orchestrator import RunOrchestrator, RunService
from docstruct.services import Components
from docstruct.storage import FileStorage
from docstruct.utils.config import DatabaseConfig


def _model_output() -> str:
    """Build a well-formed model response with two confident fields."""
    payload = {
        "file_id": "model-file",
        "run_id": "model-run",
        "document_type": "invoice",
        "pages": [
            {
                "page": 1,
                "fields": [
                    {"name": "invoice_number", "value": "INV-001", "confidence": 0.9},
                    {"name": "total", "value": 500.0, "confidence": 0.8},
                    {"name": "paid", "value": True},
                ],
                "tables": [],
            }
        ],
        "warnings": [],
        "processing_time_ms": 12,
    }
    return json.dumps(payload)


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic RGB page."""
    image = np.full((200, 300, 3), 255, dtype=np.uint8)
    image[80:120, 50:250] = 0
    return image


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"


@pytest.fixture
def ocr_pages() -> list[PageResult]:
    """OCR output for a one-page invoice."""
    return [
        PageResult(
            page=1,
            tokens=[
                Token("Invoice INV-001", 10.0, 10.0, 140.0, 20.0, 0.95),
                Token("Total: $500.00", 10.0, 40.0, 120.0, 20.0, 0.88),
            ],
            metadata={"language": "eng", "mean_confidence": 0.915},
        )
    ]


@pytest.fixture
def session_factory(tmp_path: Path) -> sessionmaker[Session]:
    """SQLite database in a temporary directory."""
    return create_session_factory(DatabaseConfig(url=f"sqlite:///{tmp_path / 'test.db'}"))


@pytest.fixture
def run_store(session_factory: sessionmaker[Session]) -> RunStore:
    return RunStore(session_factory)


@pytest.fixture
def extraction_store(session_factory: sessionmaker[Session]) -> ExtractionStore:
    return ExtractionStore(session_factory)


@pytest.fixture
def file_store(session_factory: sessionmaker[Session]) -> FileStore:
    return FileStore(session_factory)


@pytest.fixture
def fake_ocr(ocr_pages: list[PageResult]) -> MagicMock:
    """OCR tool returning ``ocr_pages``."""
    ocr = MagicMock()
    ocr.extract.return_value = ocr_pages
    return ocr


@pytest.fixture
def fake_llm() -> MagicMock:
    """LLM client returning a well-formed response."""
    llm = MagicMock()
    llm.complete.return_value = LLMCompletion(text=_model_output())
    return llm


@pytest.fixture
def orchestrator(
    fake_ocr: MagicMock,
    fake_llm: MagicMock,
    run_store: RunStore,
    extraction_store: ExtractionStore,
) -> RunOrchestrator:
    return RunOrchestrator(fake_ocr, fake_llm, run_store, extraction_store)


@pytest.fixture
def components(
    tmp_path: Path,
    orchestrator: RunOrchestrator,
    file_store: FileStore,
    run_store: RunStore,
    extraction_store: ExtractionStore,
) -> Components:
    """Fully wired components backed by fake OCR and LLM collaborators."""
    return Components(
        storage=FileStorage(tmp_path / "uploads"),
        files=file_store,
        runs=run_store,
        extractions=extraction_store,
        run_service=RunService(orchestrator, file_store),
    )
