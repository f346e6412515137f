from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse

from app.core.config import Settings
from app.dependencies import get_app_settings, get_batch_manager, get_generation_manager
from app.models import BatchJob
from app.schemas import (
    BatchCreatedResponse,
    BatchStatusResponse,
    ErrorResponse,
    GenerateRequest,
    JobCreatedResponse,
    StopResponse,
)
from app.services.csv_rows import CsvValidationError, parse_batch_csv
from app.services.generation_jobs import GenerationJobManager
from app.services.job_manager import BatchJobManager, InvalidJobStateError, JobNotFoundError
from generation import UnknownModelError

logger = logging.getLogger(__name__)

api_router = APIRouter(prefix="/api", tags=["batches"])

STOP_MESSAGE = (
    "Job has been marked for stopping. It will finish current image and then create a ZIP with partial results."
)


def _error(status_code: int, message: str, details: Optional[Any] = None) -> JSONResponse:
    body = ErrorResponse(error=message, details=details).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


def _batch_status(job: BatchJob) -> BatchStatusResponse:
    return BatchStatusResponse(
        total=job.total,
        done=job.done,
        failed=job.failed,
        percent=job.percent,
        status=job.status.value,
        zip_url=job.zip_url,
    )


@api_router.post(
    "/car-batch",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=BatchCreatedResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    name="create_car_batch",
)
async def create_car_batch(
    file: Optional[UploadFile] = File(None),
    manager: BatchJobManager = Depends(get_batch_manager),
    settings: Settings = Depends(get_app_settings),
):
    logger.info("Received batch request: %s", file.filename if file else "no file")

    if not manager.processor.client.configured:
        logger.error("Batch request rejected: REPLICATE_API_TOKEN not set")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "REPLICATE_API_TOKEN not set")
    if file is None:
        return _error(status.HTTP_400_BAD_REQUEST, "CSV file is required")

    raw = await file.read()
    await file.close()
    if not raw:
        return _error(status.HTTP_400_BAD_REQUEST, "CSV file is required")
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        return _error(status.HTTP_400_BAD_REQUEST, "CSV file must be UTF-8 encoded")

    try:
        rows = parse_batch_csv(text, max_rows=settings.max_batch_rows)
    except CsvValidationError as exc:
        logger.warning("Rejected CSV upload: %s", exc.message)
        return _error(status.HTTP_400_BAD_REQUEST, exc.message, exc.details)

    job = manager.create_job(rows)
    return BatchCreatedResponse(job_id=job.id)


@api_router.get("/batch/debug/{job_id}", name="get_batch_debug")
async def get_batch_debug(job_id: str, manager: BatchJobManager = Depends(get_batch_manager)) -> Dict[str, Any]:
    try:
        job = manager.get_job(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return job.to_dict()


@api_router.get("/batch/{job_id}", response_model=BatchStatusResponse, name="get_batch_status")
async def get_batch_status(job_id: str, manager: BatchJobManager = Depends(get_batch_manager)) -> BatchStatusResponse:
    try:
        job = manager.get_job(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return _batch_status(job)


@api_router.post("/batch/{job_id}/stop", response_model=StopResponse, name="stop_batch")
async def stop_batch(job_id: str, manager: BatchJobManager = Depends(get_batch_manager)) -> StopResponse:
    try:
        job = manager.stop_job(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    except InvalidJobStateError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)

    return StopResponse(
        total=job.total,
        done=job.done,
        failed=job.failed,
        percent=job.percent,
        status=job.status.value,
        message=STOP_MESSAGE,
    )


@api_router.post(
    "/generate",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=JobCreatedResponse,
    name="create_generation_job",
)
async def create_generation_job(
    request: GenerateRequest,
    manager: GenerationJobManager = Depends(get_generation_manager),
    settings: Settings = Depends(get_app_settings),
) -> JobCreatedResponse:
    model_key = request.model_key or settings.default_model_key
    try:
        job = manager.create_job(model_key, request.prompt, aspect_ratio=request.aspect_ratio, seed=request.seed)
    except UnknownModelError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return JobCreatedResponse(job_id=job.id)


@api_router.get("/job/{job_id}", name="get_generation_job")
async def get_generation_job(
    job_id: str, manager: GenerationJobManager = Depends(get_generation_manager)
) -> Dict[str, Any]:
    try:
        job = manager.get_job(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return job.to_dict()
