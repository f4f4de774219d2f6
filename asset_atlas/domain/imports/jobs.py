"""
Persistent tracking for asset import jobs.

Lifecycle: uploading -> processing -> completed | error. A job that fails
before processing starts may go straight from uploading to error. Terminal
states never change again.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from asset_atlas.core.config import settings
from asset_atlas.db.models import ImportJob
from asset_atlas.db.session import get_session_local
from asset_atlas.domain.imports.errors import InvalidJobTransition

logger = logging.getLogger(__name__)

STATUS_UPLOADING = "uploading"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_ERROR = "error"

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_ERROR})

ALLOWED_TRANSITIONS = {
    STATUS_UPLOADING: frozenset({STATUS_PROCESSING, STATUS_ERROR}),
    STATUS_PROCESSING: frozenset({STATUS_COMPLETED, STATUS_ERROR}),
    STATUS_COMPLETED: frozenset(),
    STATUS_ERROR: frozenset(),
}

_VALIDATION_HEADLINE = re.compile(r"Validation failed: (\d+) error\(s\) found in (\d+) rows")
ERROR_SUMMARY_MAX_LENGTH = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def summarize_error(error_message: Optional[str]) -> Optional[str]:
    """Short one-line summary of a stored error message, for lists and badges."""
    if not error_message:
        return None
    first_line = error_message.split("\n")[0]
    match = _VALIDATION_HEADLINE.search(first_line)
    if match:
        return f"{match.group(1)} validation error(s) in {match.group(2)} rows"
    if len(first_line) > ERROR_SUMMARY_MAX_LENGTH:
        return first_line[:ERROR_SUMMARY_MAX_LENGTH] + "..."
    return first_line


def _row_to_job(job: ImportJob) -> Dict[str, Any]:
    return {
        "id": job.id,
        "company_id": job.company_id,
        "uploader_id": job.uploader_id,
        "uploaded_by": job.uploader_name or job.uploader_id,
        "file_name": job.file_name,
        "file_type": job.file_type,
        "file_size": job.file_size,
        "status": job.status,
        "error_message": job.error_message,
        "error_summary": summarize_error(job.error_message),
        "errors": job.errors,
        "result_summary": job.result_summary,
        "created_at": job.created_at,
        "updated_at": job.updated_at,
        "completed_at": job.completed_at,
    }


def create_import_job(
    *,
    company_id: int,
    uploader_id: str,
    file_name: str,
    uploader_name: Optional[str] = None,
    file_type: Optional[str] = None,
    file_size: Optional[int] = None,
) -> Dict[str, Any]:
    """Persist a new job in the 'uploading' state."""
    SessionLocal = get_session_local()
    with SessionLocal() as session:
        job = ImportJob(
            company_id=company_id,
            uploader_id=str(uploader_id),
            uploader_name=uploader_name,
            file_name=file_name,
            file_type=file_type,
            file_size=file_size,
            status=STATUS_UPLOADING,
        )
        session.add(job)
        session.commit()
        session.refresh(job)
        logger.info("Created asset import job %s for company %s (%s)", job.id, company_id, file_name)
        return _row_to_job(job)


def _transition(job_id: str, new_status: str, **fields: Any) -> Dict[str, Any]:
    SessionLocal = get_session_local()
    with SessionLocal() as session:
        job = session.execute(
            select(ImportJob).where(ImportJob.id == job_id).with_for_update()
        ).scalar_one_or_none()
        if job is None:
            raise LookupError(f"Import job {job_id} not found")

        if new_status not in ALLOWED_TRANSITIONS.get(job.status, frozenset()):
            raise InvalidJobTransition(job_id, job.status, new_status)

        job.status = new_status
        for name, value in fields.items():
            setattr(job, name, value)
        if new_status in TERMINAL_STATUSES:
            job.completed_at = _utcnow()

        session.commit()
        session.refresh(job)
        logger.info("Import job %s -> %s", job_id, new_status)
        return _row_to_job(job)


def mark_job_processing(job_id: str) -> Dict[str, Any]:
    return _transition(job_id, STATUS_PROCESSING)


def complete_import_job(job_id: str, result_summary: Dict[str, Any]) -> Dict[str, Any]:
    """Mark the job completed and store the reconciliation summary."""
    return _transition(job_id, STATUS_COMPLETED, result_summary=result_summary, error_message=None, errors=None)


def fail_import_job(job_id: str, error_message: str, errors: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """Mark the job failed with one user-facing message (and structured row errors, if any)."""
    return _transition(job_id, STATUS_ERROR, error_message=error_message, errors=errors)


def get_import_job(job_id: str, company_id: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """Fetch one job; when company_id is given the job must belong to it."""
    SessionLocal = get_session_local()
    with SessionLocal() as session:
        query = select(ImportJob).where(ImportJob.id == job_id)
        if company_id is not None:
            query = query.where(ImportJob.company_id == company_id)
        job = session.execute(query).scalar_one_or_none()
        return _row_to_job(job) if job else None


def list_import_jobs(company_id: int, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Most recent jobs for a company, newest first."""
    limit = limit or settings.import_history_limit
    SessionLocal = get_session_local()
    with SessionLocal() as session:
        jobs = session.execute(
            select(ImportJob)
            .where(ImportJob.company_id == company_id)
            .order_by(ImportJob.created_at.desc(), ImportJob.id.desc())
            .limit(limit)
        ).scalars().all()
        return [_row_to_job(job) for job in jobs]
