from datetime import datetime, timedelta, timezone

import pytest

from asset_atlas.db.models import ImportJob
from asset_atlas.db.session import get_session_local
from asset_atlas.domain.imports.errors import (
    CorruptFile,
    DuplicateColumnHeaders,
    EmptyFile,
    InvalidJobTransition,
    MappingValidationError,
    StorageConstraintError,
    UnsupportedFileType,
    UNCLASSIFIED_MESSAGE,
    classify_failure,
)
from asset_atlas.domain.imports.jobs import (
    complete_import_job,
    create_import_job,
    fail_import_job,
    get_import_job,
    list_import_jobs,
    mark_job_processing,
    summarize_error,
)


def _new_job(company_id=1, file_name="assets.csv"):
    return create_import_job(company_id=company_id, uploader_id="u-1", uploader_name="Dana", file_name=file_name)


def test_job_moves_through_its_lifecycle():
    job = _new_job()
    assert job["status"] == "uploading"
    assert job["uploaded_by"] == "Dana"

    assert mark_job_processing(job["id"])["status"] == "processing"

    completed = complete_import_job(job["id"], {"created_count": 2})
    assert completed["status"] == "completed"
    assert completed["result_summary"] == {"created_count": 2}
    assert completed["completed_at"] is not None


def test_job_may_fail_before_processing_starts():
    job = _new_job()

    failed = fail_import_job(job["id"], "File is empty or contains no data rows.")

    assert failed["status"] == "error"
    assert failed["error_summary"] == "File is empty or contains no data rows."


def test_terminal_jobs_cannot_change():
    job = _new_job()
    mark_job_processing(job["id"])
    complete_import_job(job["id"], {})

    with pytest.raises(InvalidJobTransition):
        fail_import_job(job["id"], "late failure")
    with pytest.raises(InvalidJobTransition):
        mark_job_processing(job["id"])

    assert get_import_job(job["id"])["status"] == "completed"


def test_uploading_job_cannot_complete_directly():
    job = _new_job()

    with pytest.raises(InvalidJobTransition):
        complete_import_job(job["id"], {})


def test_unknown_job_transition_raises_lookup_error():
    with pytest.raises(LookupError):
        mark_job_processing("missing-job")


def test_get_import_job_is_scoped_to_company():
    job = _new_job(company_id=1)

    assert get_import_job(job["id"], company_id=1)["id"] == job["id"]
    assert get_import_job(job["id"], company_id=2) is None


def test_list_import_jobs_newest_first_with_limit():
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    ids = [_new_job(file_name=f"file-{n}.csv")["id"] for n in range(4)]
    _new_job(company_id=2)

    with get_session_local()() as session:
        for offset, job_id in enumerate(ids):
            session.get(ImportJob, job_id).created_at = base + timedelta(minutes=offset)
        session.commit()

    jobs = list_import_jobs(1, limit=3)

    assert [job["file_name"] for job in jobs] == ["file-3.csv", "file-2.csv", "file-1.csv"]


def test_failed_job_keeps_structured_errors():
    job = _new_job()
    mark_job_processing(job["id"])
    report = "Validation failed: 1 error(s) found in 2 rows\n\nRow 3 [parent_id] \"A99\": missing"
    errors = [{"row": 3, "field": "parent_id", "value": "A99", "message": "missing", "code": "UnresolvedParent"}]

    failed = fail_import_job(job["id"], report, errors=errors)

    assert failed["errors"] == errors
    assert failed["error_summary"] == "1 validation error(s) in 2 rows"


def test_summarize_error_truncates_long_first_lines():
    assert summarize_error(None) is None
    assert summarize_error("x" * 150) == "x" * 100 + "..."
    assert summarize_error("First line\nSecond line") == "First line"


@pytest.mark.parametrize("exc, expected_start", [
    (MappingValidationError(["Required field 'id' is not mapped to any column"]), "Column mappings invalid"),
    (UnsupportedFileType(), "Unsupported file type"),
    (CorruptFile("bad bytes at 0x3"), "File format error"),
    (EmptyFile(), "File is empty"),
    (DuplicateColumnHeaders("Duplicate column headers: ID"), "File has duplicate column headers"),
    (StorageConstraintError("FOREIGN KEY constraint failed"), "Invalid parent reference"),
    (StorageConstraintError("UNIQUE constraint failed: asset_nodes.external_id"), "Duplicate asset IDs found"),
    (TimeoutError(), "Processing timeout"),
    (MemoryError(), "File too large to process"),
    (PermissionError(), "Permission denied"),
    (RuntimeError("statement timed out"), "Processing timeout"),
    (RuntimeError("permission denied for table asset_nodes"), "Permission denied"),
])
def test_classify_failure(exc, expected_start):
    assert classify_failure(exc).startswith(expected_start)


def test_classify_failure_never_leaks_raw_text():
    message = classify_failure(RuntimeError("psycopg2 internal: password=hunter2"))

    assert message == UNCLASSIFIED_MESSAGE
    assert "hunter2" not in message
