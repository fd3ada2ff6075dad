"""FastAPI application for the document structuring service.

Provides upload, run polling/triggering, export, and extraction CRUD
endpoints. Runs are processed synchronously when first polled.
"""

import shutil
from functools import lru_cache
from typing import Annotated

from fastapi import FastAPI, File, HTTPException, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docstruct.errors import PersistenceFailure, RunNotFound
from docstruct.export import to_csv
from docstruct.models import ExtractionResult
from docstruct.pipeline.confidence import aggregate_confidence
from docstruct.services import Components, build_components
from docstruct.utils.config import load_config
from docstruct.utils.logger import get_logger

from .schemas import (
    ExportFormat,
    ExportRequest,
    ExtractionSummary,
    HealthResponse,
    RunResponse,
    UploadResponse,
)

logger = get_logger(__name__)

VERSION = "1.0.0"
DELETED_EXTRACTION_NOTE = "Extraction manually deleted"

app = FastAPI(
    title="Document Structuring API",
    description="OCR and LLM structuring of uploaded documents into fields and tables",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ALLOWED_CONTENT_TYPES = {
    "image/png",
    "image/jpeg",
    "image/tiff",
    "application/pdf",
    "application/octet-stream",
}


@lru_cache(maxsize=1)
def _get_components() -> Components:
    """Build the shared stores and run service once per process."""
    return build_components(load_config())


@app.exception_handler(PersistenceFailure)
async def _persistence_failure(request: Request, exc: PersistenceFailure) -> JSONResponse:
    logger.error("Persistence failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return service health status."""
    return HealthResponse(
        status="healthy",
        version=VERSION,
        tesseract_available=shutil.which("tesseract") is not None,
        llm_configured=load_config().llm.api_key() is not None,
    )


@app.post("/v1/uploads", response_model=UploadResponse)
async def upload(file: Annotated[UploadFile, File(...)]) -> UploadResponse:
    """Store an uploaded document and queue a run for it."""
    if file.content_type and file.content_type not in _ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {file.content_type}",
        )

    content = await file.read()
    file_id, run_id = _get_components().register_upload(
        content, file.filename or "document", file.content_type
    )
    return UploadResponse(file_id=file_id, run_id=run_id)


def _resolve_run(run_id: str) -> RunResponse:
    try:
        outcome = _get_components().run_service.resolve(run_id)
    except RunNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return RunResponse(status=outcome.status, result=outcome.result, error=outcome.error)


@app.get("/v1/runs/{run_id}", response_model=RunResponse)
def get_run(run_id: str) -> RunResponse:
    """Return a run's outcome, processing it first if it is still queued."""
    return _resolve_run(run_id)


@app.post("/v1/runs/{run_id}", response_model=RunResponse)
def post_run(run_id: str) -> RunResponse:
    """Trigger processing of a queued run; same response as GET."""
    return _resolve_run(run_id)


@app.post("/v1/exports")
def export(request: ExportRequest) -> Response:
    """Download a run's extraction as CSV or JSON."""
    record = _get_components().extractions.get_by_run(request.run_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Extraction not found")

    if request.format is ExportFormat.CSV:
        result = ExtractionResult.model_validate_json(record.result_json)
        return Response(
            content=to_csv(result),
            media_type="text/csv",
            headers={"Content-Disposition": "attachment; filename=extraction.csv"},
        )
    return Response(
        content=record.result_json,
        media_type="application/json",
        headers={"Content-Disposition": "attachment; filename=extraction.json"},
    )


@app.get("/v1/extractions", response_model=list[ExtractionSummary])
def list_extractions() -> list[ExtractionSummary]:
    """List stored extractions, newest first."""
    return [
        ExtractionSummary(
            run_id=r.run_id,
            document_type=r.document_type,
            avg_confidence=r.avg_confidence,
            created_at=r.created_at,
        )
        for r in _get_components().extractions.list_all()
    ]


@app.get("/v1/extractions/{run_id}", response_model=ExtractionResult)
def get_extraction(run_id: str) -> ExtractionResult:
    """Return the stored extraction result of a run."""
    record = _get_components().extractions.get_by_run(run_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Extraction not found")
    return ExtractionResult.model_validate_json(record.result_json)


@app.put("/v1/extractions/{run_id}", response_model=ExtractionResult)
def update_extraction(run_id: str, updated: ExtractionResult) -> ExtractionResult:
    """Replace a run's extraction result with a corrected version."""
    components = _get_components()
    record = components.extractions.get_by_run(run_id)
    if record is None or components.runs.get(run_id) is None:
        raise HTTPException(status_code=404, detail="Extraction not found")

    record.result_json = updated.to_json()
    record.avg_confidence = aggregate_confidence(updated)
    record.document_type = updated.document_type
    components.extractions.save(record)
    logger.info("Extraction for run %s updated", run_id)
    return updated


@app.delete("/v1/extractions/{run_id}")
def delete_extraction(run_id: str) -> Response:
    """Delete a run's extraction and note the deletion on the run."""
    components = _get_components()
    record = components.extractions.get_by_run(run_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Extraction not found")

    components.extractions.delete(record)
    run = components.runs.get(run_id)
    if run is not None:
        run.error = DELETED_EXTRACTION_NOTE
        components.runs.save(run)
    logger.info("Extraction for run %s deleted", run_id)
    return Response(status_code=200)
