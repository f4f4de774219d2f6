"""
Endpoints for bulk asset-hierarchy imports.

A submitted file is recorded as an 'uploading' job and processed by a
background task; clients poll the job until it is completed or failed.
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, UploadFile

from asset_atlas.api.dependencies import UploadContext, get_upload_context, read_upload, resolve_file_type
from asset_atlas.api.schemas.shared import (
    AssetImportHistoryResponse,
    AssetImportJobResponse,
    AssetImportSubmitResponse,
    FileHeadersResponse,
    job_info_from_record,
)
from asset_atlas.core.config import settings
from asset_atlas.domain.imports.errors import FileFormatError, UnsupportedFileType
from asset_atlas.domain.imports.jobs import create_import_job, get_import_job, list_import_jobs
from asset_atlas.domain.imports.mapper import required_mapping_errors
from asset_atlas.domain.imports.orchestrator import execute_asset_import
from asset_atlas.domain.imports.processors.file_processor import detect_file_type, extract_headers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/asset-imports", tags=["asset-imports"])


def _parse_column_mappings(raw: str) -> dict:
    try:
        mappings = json.loads(raw)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid column_mappings: must be a JSON object")
    if not isinstance(mappings, dict):
        raise HTTPException(status_code=400, detail="Invalid column_mappings: must be a JSON object")

    errors = required_mapping_errors(mappings)
    if errors:
        raise HTTPException(status_code=400, detail="; ".join(errors))
    return mappings


@router.post("", response_model=AssetImportSubmitResponse, status_code=202)
async def submit_asset_import(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    column_mappings: str = Form(...),
    context: UploadContext = Depends(get_upload_context),
):
    """
    Queue an asset hierarchy file for import.

    Parameters:
    - file: CSV or Excel file, first row is the header
    - column_mappings: JSON object of canonical field -> file column; must map "id" and "name"
    """
    if not context.user_id:
        raise HTTPException(status_code=400, detail="User context required. Provide X-User-Id header.")

    mappings = _parse_column_mappings(column_mappings)
    content = await read_upload(file)
    file_name = file.filename or "upload"

    # Unsupported types still get a job; the pipeline records the failure.
    try:
        file_type = detect_file_type(file.content_type, file_name)
    except UnsupportedFileType:
        file_type = None

    job = create_import_job(
        company_id=context.company_id,
        uploader_id=context.user_id,
        uploader_name=context.user_name,
        file_name=file_name,
        file_type=file_type,
        file_size=len(content),
    )

    background_tasks.add_task(
        execute_asset_import,
        job_id=job["id"],
        file_content=content,
        file_name=file_name,
        content_type=file.content_type,
        column_mappings=mappings,
        company_id=context.company_id,
        uploader_id=context.user_id,
    )
    logger.info("Queued asset import job %s (%s, %d bytes)", job["id"], file_name, len(content))

    return AssetImportSubmitResponse(
        success=True,
        job_id=job["id"],
        file_name=file_name,
        status=job["status"],
        message="File uploaded and queued for processing",
    )


@router.post("/headers", response_model=FileHeadersResponse)
async def preview_file_headers(
    file: UploadFile = File(...),
    context: UploadContext = Depends(get_upload_context),
):
    """Return the header row of a file so the client can build column mappings."""
    resolve_file_type(file)
    content = await read_upload(file)
    try:
        headers = extract_headers(content, file.content_type, file.filename)
    except FileFormatError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    return FileHeadersResponse(success=True, file_name=file.filename or "upload", headers=headers)


@router.get("/{job_id}", response_model=AssetImportJobResponse)
async def get_asset_import(job_id: str, context: UploadContext = Depends(get_upload_context)):
    job = get_import_job(job_id, company_id=context.company_id)
    if not job:
        raise HTTPException(status_code=404, detail="Upload job not found")
    return AssetImportJobResponse(success=True, job=job_info_from_record(job))


@router.get("", response_model=AssetImportHistoryResponse)
async def list_asset_imports(
    limit: Optional[int] = Query(None, ge=1, le=100),
    context: UploadContext = Depends(get_upload_context),
):
    """Recent imports for the caller's company, newest first."""
    limit = limit or settings.import_history_limit
    jobs = list_import_jobs(context.company_id, limit=limit)
    return AssetImportHistoryResponse(
        success=True,
        jobs=[job_info_from_record(job) for job in jobs],
        limit=limit,
    )
