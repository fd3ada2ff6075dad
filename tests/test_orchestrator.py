"""Tests for the run orchestrator and run service."""

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from docstruct.db.models import ExtractionRecord, FileRecord
from docstruct.db.stores import ExtractionStore, FileStore, RunStore
from docstruct.errors import (
    OcrFailure,
    PersistenceFailure,
    RunNotFound,
    RunStateError,
    UnexpectedFailure,
)
from docstruct.llm.client import CompletionOptions, LLMCompletion
from docstruct.models import RunStatus
from docstruct.ocr.extractor import PageResult
from docstruct.pipeline.orchestrator import (
    EMPTY_RESPONSE_WARNING,
    INVALID_JSON_WARNING,
    RunOrchestrator,
    RunService,
)
from docstruct.pipeline.prompts import SYSTEM_PROMPT, USER_PREFIX

DOC = Path("doc.pdf")


@pytest.fixture
def run_id(run_store: RunStore) -> str:
    return run_store.create("file-1").run_id


class TestRunOrchestratorSuccess:
    """Tests for a run that structures cleanly."""

    def test_result_identity_overwritten(self, orchestrator: RunOrchestrator, run_id: str) -> None:
        result = orchestrator.run("file-1", run_id, DOC)

        assert result.file_id == "file-1"
        assert result.run_id == run_id
        assert result.document_type == "invoice"
        assert result.processing_time_ms >= 0
        assert len(result.pages[0].fields) == 3

    def test_run_completed_and_persisted(
        self,
        orchestrator: RunOrchestrator,
        run_store: RunStore,
        extraction_store: ExtractionStore,
        run_id: str,
    ) -> None:
        orchestrator.run("file-1", run_id, DOC)

        run = run_store.get(run_id)
        assert run.status == RunStatus.COMPLETED
        assert run.started_at is not None
        assert run.completed_at is not None
        assert run.error is None

        record = extraction_store.get_by_run(run_id)
        assert record.avg_confidence == pytest.approx(0.85)
        assert record.document_type == "invoice"
        assert json.loads(record.result_json)["run_id"] == run_id

    def test_llm_request(
        self,
        orchestrator: RunOrchestrator,
        fake_ocr: MagicMock,
        fake_llm: MagicMock,
        run_id: str,
    ) -> None:
        orchestrator.run("file-1", run_id, DOC)

        fake_ocr.extract.assert_called_once_with(DOC)
        system, payload, options = fake_llm.complete.call_args.args
        assert system == SYSTEM_PROMPT
        assert payload.startswith(USER_PREFIX)
        assert "Invoice INV-001" in payload
        assert options == CompletionOptions(temperature=0.0, max_tokens=3000)

    def test_default_document_type(
        self, orchestrator: RunOrchestrator, fake_llm: MagicMock, run_id: str
    ) -> None:
        fake_llm.complete.return_value = LLMCompletion(text='{"pages": [{"page": 1}]}')
        assert orchestrator.run("file-1", run_id, DOC).document_type == "generic_form"

    def test_null_optional_lists_accepted(
        self,
        orchestrator: RunOrchestrator,
        fake_llm: MagicMock,
        run_store: RunStore,
        run_id: str,
    ) -> None:
        fake_llm.complete.return_value = LLMCompletion(
            text='{"pages": [{"page": 1, "fields": [{"name": "total", "value": 5, '
            '"confidence": 0.5}], "tables": null}], "warnings": null}'
        )

        result = orchestrator.run("file-1", run_id, DOC)

        assert result.warnings == []
        assert result.pages[0].tables == []
        assert result.pages[0].fields[0].value == 5
        assert run_store.get(run_id).status == RunStatus.COMPLETED

    def test_fenced_output_parsed(
        self, orchestrator: RunOrchestrator, fake_llm: MagicMock, run_id: str
    ) -> None:
        fake_llm.complete.return_value = LLMCompletion(
            text='```json\n{"document_type": "receipt", "pages": []}\n```'
        )
        result = orchestrator.run("file-1", run_id, DOC)
        assert result.document_type == "receipt"
        assert result.warnings == []


class TestRunOrchestratorFallback:
    """Tests for runs that end on a fallback result."""

    @pytest.mark.parametrize(
        "completion",
        [
            LLMCompletion(text=None),
            LLMCompletion(text=""),
            LLMCompletion(text="  \n "),
        ],
    )
    def test_empty_response(
        self,
        orchestrator: RunOrchestrator,
        fake_llm: MagicMock,
        run_store: RunStore,
        extraction_store: ExtractionStore,
        run_id: str,
        completion: LLMCompletion,
    ) -> None:
        fake_llm.complete.return_value = completion

        result = orchestrator.run("file-1", run_id, DOC)

        assert result.pages == []
        assert result.warnings == [EMPTY_RESPONSE_WARNING]
        assert result.document_type == "generic_form"
        assert run_store.get(run_id).status == RunStatus.COMPLETED
        assert extraction_store.get_by_run(run_id).avg_confidence == 0.0

    def test_llm_exception_is_empty_response(
        self, orchestrator: RunOrchestrator, fake_llm: MagicMock, run_id: str
    ) -> None:
        fake_llm.complete.side_effect = TimeoutError("read timed out")
        result = orchestrator.run("file-1", run_id, DOC)
        assert result.warnings == [EMPTY_RESPONSE_WARNING]

    @pytest.mark.parametrize(
        "text",
        [
            "I could not read this document.",
            '{"pages": [{"page": 1, "fields": [',
            '{"result": "ok"}',
        ],
    )
    def test_invalid_json(
        self,
        orchestrator: RunOrchestrator,
        fake_llm: MagicMock,
        run_store: RunStore,
        run_id: str,
        text: str,
    ) -> None:
        fake_llm.complete.return_value = LLMCompletion(text=text)

        result = orchestrator.run("file-1", run_id, DOC)

        assert result.pages == []
        assert result.warnings == [INVALID_JSON_WARNING]
        assert result.file_id == "file-1"
        assert result.run_id == run_id
        assert run_store.get(run_id).status == RunStatus.COMPLETED

    def test_fallback_status_failed(
        self,
        fake_ocr: MagicMock,
        fake_llm: MagicMock,
        run_store: RunStore,
        extraction_store: ExtractionStore,
        run_id: str,
    ) -> None:
        fake_llm.complete.return_value = LLMCompletion(text="nope")
        orchestrator = RunOrchestrator(
            fake_ocr, fake_llm, run_store, extraction_store, fallback_status=RunStatus.FAILED
        )

        orchestrator.run("file-1", run_id, DOC)

        run = run_store.get(run_id)
        assert run.status == RunStatus.FAILED
        assert run.error == INVALID_JSON_WARNING
        assert extraction_store.get_by_run(run_id) is not None

    def test_fallback_status_must_be_terminal(
        self, fake_ocr: MagicMock, fake_llm: MagicMock, run_store: RunStore, extraction_store: ExtractionStore
    ) -> None:
        with pytest.raises(ValueError):
            RunOrchestrator(
                fake_ocr, fake_llm, run_store, extraction_store, fallback_status=RunStatus.QUEUED
            )


class TestRunOrchestratorFailure:
    """Tests for runs that end as FAILED."""

    def test_ocr_failure(
        self,
        orchestrator: RunOrchestrator,
        fake_ocr: MagicMock,
        fake_llm: MagicMock,
        run_store: RunStore,
        extraction_store: ExtractionStore,
        run_id: str,
    ) -> None:
        fake_ocr.extract.side_effect = OcrFailure("Tesseract traineddata not found for: eng")

        with pytest.raises(OcrFailure):
            orchestrator.run("file-1", run_id, DOC)

        run = run_store.get(run_id)
        assert run.status == RunStatus.FAILED
        assert "traineddata" in run.error
        assert run.completed_at is not None
        assert extraction_store.get_by_run(run_id) is None
        fake_llm.complete.assert_not_called()

    def test_unclassified_ocr_error_is_ocr_failure(
        self, orchestrator: RunOrchestrator, fake_ocr: MagicMock, run_id: str
    ) -> None:
        fake_ocr.extract.side_effect = OSError("cannot identify image file")
        with pytest.raises(OcrFailure, match="cannot identify"):
            orchestrator.run("file-1", run_id, DOC)

    def test_persistence_failure(
        self, fake_ocr: MagicMock, fake_llm: MagicMock, run_store: RunStore, run_id: str
    ) -> None:
        extractions = MagicMock()
        extractions.save.side_effect = PersistenceFailure("disk full")
        orchestrator = RunOrchestrator(fake_ocr, fake_llm, run_store, extractions)

        with pytest.raises(PersistenceFailure):
            orchestrator.run("file-1", run_id, DOC)

        run = run_store.get(run_id)
        assert run.status == RunStatus.FAILED
        assert run.error == "disk full"

    def test_unexpected_error(
        self, fake_ocr: MagicMock, fake_llm: MagicMock, run_store: RunStore, run_id: str
    ) -> None:
        extractions = MagicMock()
        extractions.save.side_effect = ValueError("bad state")
        orchestrator = RunOrchestrator(fake_ocr, fake_llm, run_store, extractions)

        with pytest.raises(UnexpectedFailure, match="bad state"):
            orchestrator.run("file-1", run_id, DOC)
        assert run_store.get(run_id).status == RunStatus.FAILED

    def test_unserializable_ocr_output_fails_run(
        self,
        orchestrator: RunOrchestrator,
        fake_ocr: MagicMock,
        fake_llm: MagicMock,
        run_store: RunStore,
        extraction_store: ExtractionStore,
        run_id: str,
    ) -> None:
        fake_ocr.extract.return_value = [PageResult(page=1, tokens=[], metadata={"raw": object()})]

        with pytest.raises(UnexpectedFailure, match="not JSON serializable"):
            orchestrator.run("file-1", run_id, DOC)

        run = run_store.get(run_id)
        assert run.status == RunStatus.FAILED
        assert "not JSON serializable" in run.error
        assert extraction_store.get_by_run(run_id) is None
        fake_llm.complete.assert_not_called()


class TestRunOrchestratorAtMostOnce:
    """A run is processed at most once."""

    def test_second_run_rejected(
        self,
        orchestrator: RunOrchestrator,
        fake_ocr: MagicMock,
        fake_llm: MagicMock,
        run_store: RunStore,
        run_id: str,
    ) -> None:
        orchestrator.run("file-1", run_id, DOC)

        with pytest.raises(RunStateError):
            orchestrator.run("file-1", run_id, DOC)

        assert fake_ocr.extract.call_count == 1
        assert fake_llm.complete.call_count == 1
        assert run_store.get(run_id).status == RunStatus.COMPLETED

    def test_failed_run_not_retried(
        self, orchestrator: RunOrchestrator, fake_ocr: MagicMock, run_id: str
    ) -> None:
        fake_ocr.extract.side_effect = OcrFailure("bad scan")
        with pytest.raises(OcrFailure):
            orchestrator.run("file-1", run_id, DOC)
        with pytest.raises(RunStateError):
            orchestrator.run("file-1", run_id, DOC)
        assert fake_ocr.extract.call_count == 1

    def test_unknown_run(self, orchestrator: RunOrchestrator, fake_ocr: MagicMock) -> None:
        with pytest.raises(RunNotFound):
            orchestrator.run("file-1", "missing", DOC)
        fake_ocr.extract.assert_not_called()


class TestRunService:
    """Tests for RunService."""

    @pytest.fixture
    def service(self, orchestrator: RunOrchestrator, file_store: FileStore) -> RunService:
        return RunService(orchestrator, file_store)

    @pytest.fixture
    def queued(self, file_store: FileStore, run_store: RunStore, tmp_path: Path) -> str:
        path = tmp_path / "doc.pdf"
        path.write_bytes(b"%PDF-1.4")
        file_store.save(FileRecord(file_id="file-1", name="doc.pdf", storage_uri=str(path)))
        return run_store.create("file-1").run_id

    def test_queued_run_processed(
        self, service: RunService, fake_ocr: MagicMock, queued: str, tmp_path: Path
    ) -> None:
        outcome = service.resolve(queued)

        assert outcome.status == RunStatus.COMPLETED
        assert outcome.result.run_id == queued
        assert outcome.error is None
        fake_ocr.extract.assert_called_once_with(tmp_path / "doc.pdf")

    def test_completed_run_replayed(
        self, service: RunService, fake_ocr: MagicMock, fake_llm: MagicMock, queued: str
    ) -> None:
        first = service.resolve(queued)
        second = service.resolve(queued)

        assert second.status == RunStatus.COMPLETED
        assert second.result == first.result
        assert fake_ocr.extract.call_count == 1
        assert fake_llm.complete.call_count == 1

    def test_failed_run(self, service: RunService, fake_ocr: MagicMock, queued: str) -> None:
        fake_ocr.extract.side_effect = OcrFailure("bad scan")

        outcome = service.resolve(queued)
        assert outcome.status == RunStatus.FAILED
        assert outcome.error == "bad scan"
        assert outcome.result is None

        replayed = service.resolve(queued)
        assert replayed.status == RunStatus.FAILED
        assert replayed.error == "bad scan"
        assert fake_ocr.extract.call_count == 1

    def test_processing_run_not_touched(
        self, service: RunService, run_store: RunStore, fake_ocr: MagicMock, queued: str
    ) -> None:
        run_store.transition(queued, RunStatus.QUEUED, RunStatus.PROCESSING)

        outcome = service.resolve(queued)

        assert outcome.status == RunStatus.PROCESSING
        assert outcome.result is None
        fake_ocr.extract.assert_not_called()

    def test_unknown_run(self, service: RunService) -> None:
        with pytest.raises(RunNotFound):
            service.resolve("missing")

    def test_missing_file(self, service: RunService, run_store: RunStore, fake_ocr: MagicMock) -> None:
        run_id = run_store.create("ghost").run_id

        outcome = service.resolve(run_id)

        assert outcome.status == RunStatus.FAILED
        assert outcome.error == "File ghost not found"
        assert run_store.get(run_id).status == RunStatus.FAILED
        fake_ocr.extract.assert_not_called()

    def test_corrupt_stored_result(
        self,
        service: RunService,
        run_store: RunStore,
        extraction_store: ExtractionStore,
        queued: str,
    ) -> None:
        run_store.transition(queued, RunStatus.QUEUED, RunStatus.COMPLETED)
        extraction_store.save(ExtractionRecord(run_id=queued, result_json="not json"))

        outcome = service.replay(queued)

        assert outcome.status == RunStatus.COMPLETED
        assert outcome.result is None
        assert outcome.error.startswith("Failed to deserialize result")
