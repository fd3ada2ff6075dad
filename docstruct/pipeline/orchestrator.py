"""Run orchestrator: drives a run from QUEUED to COMPLETED or FAILED.

Stages run in a single sequence: OCR, prompt, LLM, sanitize, parse,
aggregate, persist. OCR failure and any unexpected error end the run as
FAILED and propagate. A missing or unparseable model response is not a
failure: the run receives an empty fallback result carrying a warning,
and its status is set by ``FALLBACK_RUN_STATUS``.

Execution is at most once per run ID: the QUEUED -> PROCESSING move is a
conditional update, and a run that cannot be claimed is never processed.
"""

import time
from dataclasses import dataclass
from pathlib import Path

from docstruct.db.models import ExtractionRecord, utcnow
from docstruct.db.stores import ExtractionStore, FileStore, RunStore
from docstruct.errors import (
    DocstructError,
    OcrFailure,
    RunNotFound,
    RunStateError,
    UnexpectedFailure,
)
from docstruct.llm.client import CompletionOptions, LLMClient, LLMCompletion
from docstruct.models import DEFAULT_DOCUMENT_TYPE, ExtractionResult, RunStatus
from docstruct.ocr.extractor import OcrTool, PageResult
from docstruct.utils.logger import get_logger

from .confidence import aggregate_confidence
from .parser import parse_result
from .prompts import SYSTEM_PROMPT, build_user_payload
from .sanitizer import sanitize_response

logger = get_logger(__name__)

# Degraded structuring completes the run; set to FAILED to surface it as an error.
FALLBACK_RUN_STATUS = RunStatus.COMPLETED

EMPTY_RESPONSE_WARNING = "LLM returned null or empty response"
INVALID_JSON_WARNING = "LLM returned invalid JSON"


class RunOrchestrator:
    """Executes the structuring pipeline for one run at a time.

    Args:
        ocr: OCR extractor.
        llm: Chat-completion client.
        runs: Run state store.
        extractions: Extraction result store.
        options: Sampling settings for the LLM call.
        fallback_status: Terminal status for runs that end on a fallback result.
        default_document_type: Used when the model gives no document type.
    """

    def __init__(
        self,
        ocr: OcrTool,
        llm: LLMClient,
        runs: RunStore,
        extractions: ExtractionStore,
        options: CompletionOptions | None = None,
        fallback_status: RunStatus = FALLBACK_RUN_STATUS,
        default_document_type: str = DEFAULT_DOCUMENT_TYPE,
    ) -> None:
        if not fallback_status.is_terminal:
            raise ValueError(f"Fallback status must be terminal, got {fallback_status}")
        self.ocr = ocr
        self.llm = llm
        self.runs = runs
        self.extractions = extractions
        self.options = options or CompletionOptions()
        self.fallback_status = fallback_status
        self.default_document_type = default_document_type

    def run(self, file_id: str, run_id: str, file_path: Path) -> ExtractionResult:
        """Process a QUEUED run end to end.

        Args:
            file_id: ID of the uploaded file.
            run_id: ID of the run to process.
            file_path: Local path of the uploaded document.

        Returns:
            The persisted extraction result (possibly a fallback result).

        Raises:
            RunNotFound: If the run does not exist.
            RunStateError: If the run is not QUEUED; nothing is executed.
            OcrFailure: If OCR fails. The run is FAILED, nothing is persisted.
            PersistenceFailure: If a record cannot be written. The run is FAILED.
            UnexpectedFailure: For any other error. The run is FAILED.
        """
        self._claim(run_id)
        started = time.monotonic()
        logger.info("Run %s started for file %s", run_id, file_id)

        try:
            pages = self._extract(file_path)
            completion = self._complete(build_user_payload(pages))

            if completion.is_blank:
                return self._finish_fallback(file_id, run_id, started, EMPTY_RESPONSE_WARNING)

            logger.debug("LLM raw output for run %s: %s", run_id, completion.text)
            outcome = parse_result(sanitize_response(completion.text))
            if not outcome.ok:
                logger.warning("Run %s: invalid model output (%s)", run_id, outcome.error)
                return self._finish_fallback(file_id, run_id, started, INVALID_JSON_WARNING)

            result = outcome.result.model_copy(
                update={
                    "file_id": file_id,
                    "run_id": run_id,
                    "document_type": outcome.result.document_type or self.default_document_type,
                    "processing_time_ms": _elapsed_ms(started),
                }
            )
            confidence = aggregate_confidence(result)
            self._persist(run_id, result, confidence)
            self._finish(run_id, RunStatus.COMPLETED)
            logger.info(
                "Run %s completed: %d page(s), avg confidence %.2f, %d ms",
                run_id,
                len(result.pages),
                confidence,
                result.processing_time_ms,
            )
            return result

        except Exception as exc:
            self._record_failure(run_id, exc)
            if isinstance(exc, DocstructError):
                raise
            raise UnexpectedFailure(str(exc)) from exc

    def _claim(self, run_id: str) -> None:
        if self.runs.transition(
            run_id, RunStatus.QUEUED, RunStatus.PROCESSING, started_at=utcnow()
        ):
            return
        run = self.runs.get(run_id)
        if run is None:
            raise RunNotFound(f"Run {run_id} not found")
        raise RunStateError(f"Run {run_id} is {run.status}, expected {RunStatus.QUEUED}")

    def _extract(self, file_path: Path) -> list[PageResult]:
        try:
            return self.ocr.extract(file_path)
        except OcrFailure:
            raise
        except Exception as exc:
            raise OcrFailure(str(exc)) from exc

    def _complete(self, user_payload: str) -> LLMCompletion:
        try:
            completion = self.llm.complete(SYSTEM_PROMPT, user_payload, self.options)
        except Exception as exc:
            # Every LLM-side failure counts as absent output.
            logger.warning("LLM call raised %s: %s", type(exc).__name__, exc)
            return LLMCompletion()
        if completion.error is not None:
            logger.warning("LLM unavailable: %s", completion.error)
        return completion

    def _finish_fallback(
        self, file_id: str, run_id: str, started: float, warning: str
    ) -> ExtractionResult:
        result = ExtractionResult(
            file_id=file_id,
            run_id=run_id,
            document_type=self.default_document_type,
            pages=[],
            warnings=[warning],
            processing_time_ms=_elapsed_ms(started),
        )
        self._persist(run_id, result, 0.0)
        error = warning if self.fallback_status is RunStatus.FAILED else None
        self._finish(run_id, self.fallback_status, error=error)
        logger.warning("Run %s ended on fallback result: %s", run_id, warning)
        return result

    def _persist(self, run_id: str, result: ExtractionResult, confidence: float) -> None:
        self.extractions.save(
            ExtractionRecord(
                run_id=run_id,
                document_type=result.document_type,
                result_json=result.to_json(),
                avg_confidence=confidence,
            )
        )

    def _finish(self, run_id: str, status: RunStatus, error: str | None = None) -> None:
        if not self.runs.transition(
            run_id, RunStatus.PROCESSING, status, completed_at=utcnow(), error=error
        ):
            raise RunStateError(f"Run {run_id} left PROCESSING while it was being processed")

    def _record_failure(self, run_id: str, exc: Exception) -> None:
        logger.error("Run %s failed: %s", run_id, exc)
        try:
            self.runs.transition(
                run_id,
                RunStatus.PROCESSING,
                RunStatus.FAILED,
                completed_at=utcnow(),
                error=str(exc)[:4000],
            )
        except DocstructError as record_exc:
            logger.error("Could not record failure of run %s: %s", run_id, record_exc)


@dataclass
class RunOutcome:
    """What a caller sees for a run: status plus result or error."""

    status: RunStatus
    result: ExtractionResult | None = None
    error: str | None = None


class RunService:
    """Resolves a run ID to its outcome, processing QUEUED runs on demand.

    Terminal runs are replayed from storage without touching OCR or the LLM.

    Args:
        orchestrator: Pipeline used for QUEUED runs.
        files: File metadata store, for locating the upload.
    """

    def __init__(self, orchestrator: RunOrchestrator, files: FileStore) -> None:
        self.orchestrator = orchestrator
        self.files = files
        self.runs = orchestrator.runs
        self.extractions = orchestrator.extractions

    def resolve(self, run_id: str) -> RunOutcome:
        """Return the outcome of a run, running the pipeline if it is QUEUED.

        Raises:
            RunNotFound: If the run does not exist.
        """
        run = self.runs.get(run_id)
        if run is None:
            raise RunNotFound(f"Run {run_id} not found")

        if run.status != RunStatus.QUEUED:
            return self.replay(run_id)

        file = self.files.get(run.file_id)
        if file is None or not file.storage_uri:
            error = f"File {run.file_id} not found"
            self.runs.transition(
                run_id, RunStatus.QUEUED, RunStatus.FAILED, completed_at=utcnow(), error=error
            )
            return self.replay(run_id)

        try:
            result = self.orchestrator.run(file.file_id, run_id, Path(file.storage_uri))
        except RunStateError:
            logger.info("Run %s was claimed concurrently, replaying", run_id)
            return self.replay(run_id)
        except DocstructError as exc:
            return RunOutcome(status=RunStatus.FAILED, error=str(exc))

        final = self.runs.get(run_id)
        return RunOutcome(status=RunStatus(final.status), result=result, error=final.error)

    def replay(self, run_id: str) -> RunOutcome:
        """Return the persisted outcome of a run without processing it."""
        run = self.runs.get(run_id)
        if run is None:
            raise RunNotFound(f"Run {run_id} not found")

        status = RunStatus(run.status)
        if not status.is_terminal:
            return RunOutcome(status=status)

        record = self.extractions.get_by_run(run_id)
        if record is None:
            return RunOutcome(status=status, error=run.error)
        try:
            result = ExtractionResult.model_validate_json(record.result_json)
        except ValueError as exc:
            logger.error("Stored result for run %s is unreadable: %s", run_id, exc)
            return RunOutcome(status=status, error=f"Failed to deserialize result: {exc}")
        return RunOutcome(status=status, result=result, error=run.error)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
