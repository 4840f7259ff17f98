"""FastAPI application - main entry point."""
from fastapi import FastAPI, Depends, HTTPException, Query
from typing import Optional
import logging

from catalog import SqlCatalogStore
from config import settings
from errors import (
    IngestionError, InvalidJob, JobConflict, JobNotFound, NoSourceAvailable,
    UnsupportedSource, WorkNotFound,
)
from ingestion_queue import IngestionQueue
from job_store import JobStore
from jobs import JobService
from orchestrator import IngestionOrchestrator, build_orchestrator
from schemas import (
    CheckResponse, EnqueueResponse, ImportedChapterSchema, JobCreate,
    JobListResponse, JobResponse, JobUpdate, PreviewRequest, PreviewResponse,
    SourceFamily, SourceListResponse, WorkImportRequest, WorkImportResponse,
)
from sources import SourceRegistry

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Manga Ingestion API",
    description="Management API for scheduled manga chapter ingestion",
    version="1.0.0",
)

_orchestrator: Optional[IngestionOrchestrator] = None


# ============================================================================
# Dependencies
# ============================================================================

def get_orchestrator() -> IngestionOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
    return _orchestrator


def get_registry(orchestrator: IngestionOrchestrator = Depends(get_orchestrator)) -> SourceRegistry:
    return orchestrator.registry


def get_job_service(registry: SourceRegistry = Depends(get_registry)) -> JobService:
    return JobService(JobStore(), SqlCatalogStore(), registry)


def get_queue() -> IngestionQueue:
    return IngestionQueue()


def _http_error(e: IngestionError) -> HTTPException:
    if isinstance(e, (JobNotFound, WorkNotFound)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, JobConflict):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, NoSourceAvailable):
        return HTTPException(status_code=400, detail={"message": e.message, "errors": e.errors})
    return HTTPException(status_code=400, detail=str(e))


# ============================================================================
# Job Endpoints
# ============================================================================

@app.post("/jobs", response_model=JobResponse, status_code=201, tags=["Jobs"])
def create_job(request: JobCreate, service: JobService = Depends(get_job_service)):
    """
    Register an ingestion job for a work.

    The schedule hour is derived from the work and job ids unless given.
    """
    try:
        job = service.create(
            work_id=request.work_id,
            sources=request.sources,
            url=request.url,
            frequency=request.frequency,
            enabled=request.enabled,
            schedule_hour=request.schedule_hour,
        )
    except (WorkNotFound, JobConflict, InvalidJob) as e:
        raise _http_error(e)
    return JobResponse.model_validate(job)


@app.get("/jobs", response_model=JobListResponse, tags=["Jobs"])
def list_jobs(
    enabled: Optional[bool] = Query(None),
    service: JobService = Depends(get_job_service)
):
    """List ingestion jobs, optionally only enabled or disabled ones."""
    jobs = service.list(enabled=enabled)
    return JobListResponse(items=[JobResponse.model_validate(j) for j in jobs], total=len(jobs))


@app.get("/jobs/{job_id}", response_model=JobResponse, tags=["Jobs"])
def get_job(job_id: int, service: JobService = Depends(get_job_service)):
    try:
        return JobResponse.model_validate(service.get(job_id))
    except JobNotFound as e:
        raise _http_error(e)


@app.patch("/jobs/{job_id}", response_model=JobResponse, tags=["Jobs"])
def update_job(job_id: int, request: JobUpdate, service: JobService = Depends(get_job_service)):
    """Update a job. Supplying ``sources`` clears the deprecated ``url``."""
    try:
        job = service.update(job_id, request.model_dump(exclude_unset=True))
    except (JobNotFound, InvalidJob) as e:
        raise _http_error(e)
    return JobResponse.model_validate(job)


@app.delete("/jobs/{job_id}", status_code=204, tags=["Jobs"])
def delete_job(job_id: int, service: JobService = Depends(get_job_service)):
    try:
        service.remove(job_id)
    except JobNotFound as e:
        raise _http_error(e)


@app.post("/jobs/{job_id}/check", response_model=CheckResponse, tags=["Jobs"])
def check_job(job_id: int, orchestrator: IngestionOrchestrator = Depends(get_orchestrator)):
    """
    Run a job now and wait for the result.

    When every source fails the response is 400 with the per-source errors.
    """
    try:
        result = orchestrator.run_job(job_id)
    except IngestionError as e:
        raise _http_error(e)

    if result is None:
        return CheckResponse(job_id=job_id, skipped=True)

    return CheckResponse(
        job_id=job_id,
        imported=[ImportedChapterSchema.model_validate(c) for c in result.imported],
        used_source_index=result.used_source_index,
        used_source_url=result.used_source_locator,
        errors=result.errors,
    )


@app.post("/jobs/{job_id}/enqueue", response_model=EnqueueResponse, status_code=202, tags=["Jobs"])
def enqueue_job(job_id: int, queue: IngestionQueue = Depends(get_queue)):
    """Queue a job run for the RQ worker. Returns immediately."""
    try:
        queue_job_id = queue.enqueue_job(job_id)
    except JobNotFound as e:
        raise _http_error(e)
    return EnqueueResponse(job_id=job_id, queue_job_id=queue_job_id, message="Job run queued")


# ============================================================================
# Source Endpoints
# ============================================================================

@app.get("/sources", response_model=SourceListResponse, tags=["Sources"])
def list_sources(registry: SourceRegistry = Depends(get_registry)):
    """Supported source families and their hosts."""
    items = [SourceFamily(**site) for site in registry.supported_sites()]
    return SourceListResponse(items=items, total=len(items))


@app.post("/sources/preview", response_model=PreviewResponse, tags=["Sources"])
def preview_source(request: PreviewRequest, orchestrator: IngestionOrchestrator = Depends(get_orchestrator)):
    """Parse a work page and list its chapters without importing anything."""
    try:
        parsed = orchestrator.preview(request.url, request.chapters or None)
    except UnsupportedSource as e:
        raise HTTPException(status_code=400, detail=str(e))
    except IngestionError as e:
        raise _http_error(e)
    except ValueError as e:
        # Malformed chapter selection
        raise HTTPException(status_code=422, detail=str(e))
    return PreviewResponse.model_validate(parsed.model_dump())


# ============================================================================
# Work Endpoints
# ============================================================================

@app.post("/works/import", response_model=WorkImportResponse, status_code=201, tags=["Works"])
def import_work(request: WorkImportRequest, orchestrator: IngestionOrchestrator = Depends(get_orchestrator)):
    """
    Create a work from a source page and import the selected chapters.

    Title, description, genres and type may be overridden; a cover that
    cannot be downloaded is skipped.
    """
    try:
        result = orchestrator.import_work(request.url, request.chapters or None, request.overrides())
    except IngestionError as e:
        raise _http_error(e)
    except ValueError as e:
        # Malformed chapter selection
        raise HTTPException(status_code=422, detail=str(e))

    return WorkImportResponse(
        work_id=result.work.id,
        title=result.work.title,
        cover_url=result.cover_url,
        imported=[ImportedChapterSchema.model_validate(c) for c in result.imported],
        total_chapters=len(result.imported),
    )


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health", tags=["System"])
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "manga-ingestion"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
