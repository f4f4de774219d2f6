"""
Asset import pipeline.

Runs Decoder -> Mapper -> Loader -> Validator -> Reconciler for one job,
updating the job record at each phase boundary and notifying the uploader on
failure or on slow completion.
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from asset_atlas.core.config import settings
from asset_atlas.db.session import get_session_local
from asset_atlas.domain.imports.errors import (
    AssetValidationError,
    MappingValidationError,
    classify_failure,
)
from asset_atlas.domain.imports.existing_state import load_existing_state
from asset_atlas.domain.imports.jobs import (
    complete_import_job,
    fail_import_job,
    mark_job_processing,
)
from asset_atlas.domain.imports.mapper import apply_mapping, required_mapping_errors, validate_mapping
from asset_atlas.domain.imports.notifications import (
    OUTCOME_ERROR,
    OUTCOME_SUCCESS,
    Notifier,
    OutboxNotifier,
    send_notification,
)
from asset_atlas.domain.imports.processors.file_processor import decode_upload
from asset_atlas.domain.imports.reconciler import reconcile
from asset_atlas.domain.imports.validators import render_error_report, validate_rows

logger = logging.getLogger(__name__)


def _fail_job(
    job_id: str,
    uploader_id: str,
    file_name: str,
    notifier: Notifier,
    error_message: str,
    errors: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    job = fail_import_job(job_id, error_message, errors=errors)
    send_notification(notifier, uploader_id, OUTCOME_ERROR, file_name, {
        "job_id": job_id,
        "error_summary": error_message.split("\n")[0],
    })
    return job


def execute_asset_import(
    *,
    job_id: str,
    file_content: bytes,
    file_name: str,
    content_type: Optional[str],
    column_mappings: Dict[str, str],
    company_id: int,
    uploader_id: str,
    notifier: Optional[Notifier] = None,
    session_factory: Optional[Callable] = None,
) -> Dict[str, Any]:
    """
    Run the whole pipeline for one job and return the final job record.

    Every pipeline failure ends in the 'error' state with one user-facing
    message; the exception is not re-raised. Validation failures keep the full
    per-row report. A failure to record completion after the assets are
    committed is logged and re-raised, leaving the job in 'processing'.
    """
    notifier = notifier or OutboxNotifier()
    start_time = time.monotonic()

    # An already-terminal job raises here and is never re-run.
    mark_job_processing(job_id)

    try:
        # The mapping's own shape is checked before a single byte is decoded.
        mapping_errors = required_mapping_errors(column_mappings)
        if mapping_errors:
            raise MappingValidationError(mapping_errors)

        decoded = decode_upload(file_content, content_type, file_name)
        logger.info(
            "Job %s: parsed %d rows from %s (%d blank skipped)",
            job_id, len(decoded.rows), file_name, decoded.blank_rows_skipped,
        )
        for warning in decoded.warnings:
            logger.warning("Job %s: %s", job_id, warning)

        mapping_errors = validate_mapping(column_mappings, decoded.headers)
        if mapping_errors:
            raise MappingValidationError(mapping_errors)

        rows = apply_mapping(decoded.rows, column_mappings)

        SessionLocal = session_factory or get_session_local()
        with SessionLocal() as session:
            existing = load_existing_state(session, company_id)

            validation = validate_rows(rows, existing)
            if not validation.valid:
                report = render_error_report(
                    validation.errors,
                    validation.summary["total_rows"],
                    max_lines=settings.error_report_max_lines,
                )
                raise AssetValidationError(report, validation.errors, validation.summary)

            result = reconcile(session, rows, company_id, existing)

    except AssetValidationError as exc:
        logger.info("Job %s: validation failed with %d error(s)", job_id, len(exc.errors))
        return _fail_job(
            job_id, uploader_id, file_name, notifier,
            exc.message,
            errors=[error.to_dict() for error in exc.errors],
        )
    except Exception as exc:
        logger.exception("Job %s: asset import failed", job_id)
        return _fail_job(job_id, uploader_id, file_name, notifier, classify_failure(exc))

    # The assets are committed at this point; a failed status write must not
    # turn the job into an error.
    summary = result.to_summary()
    summary["elapsed_seconds"] = round(time.monotonic() - start_time, 3)
    try:
        job = complete_import_job(job_id, summary)
    except Exception:
        logger.exception("Job %s: assets committed but the completed status could not be recorded", job_id)
        raise

    elapsed = time.monotonic() - start_time
    logger.info(
        "Job %s completed: %d created, %d updated, %d unchanged in %.1fs",
        job_id, result.created_count, result.updated_count, result.unchanged_count, elapsed,
    )

    if elapsed > settings.notify_threshold_seconds:
        send_notification(notifier, uploader_id, OUTCOME_SUCCESS, file_name, {"job_id": job_id, **summary})

    return job
