import io
import json

import pandas as pd
from fastapi.testclient import TestClient
from sqlalchemy import select

from asset_atlas.core.config import settings
from asset_atlas.db.models import UploadNotification
from asset_atlas.db.session import get_session_local
from asset_atlas.main import app

client = TestClient(app)

HEADERS = {"X-Company-Id": "3", "X-User-Id": "u-42", "X-User-Name": "Robin"}
MAPPINGS = {"id": "Asset ID", "name": "Name", "parent_id": "Parent"}
TWO_ROWS = b"Asset ID,Name,Parent\nA1,Pump,\nA2,Motor,A1\n"


def _submit(content=TWO_ROWS, mappings=MAPPINGS, headers=HEADERS, file_name="assets.csv", media_type="text/csv"):
    return client.post(
        "/asset-imports",
        files={"file": (file_name, content, media_type)},
        data={"column_mappings": mappings if isinstance(mappings, str) else json.dumps(mappings)},
        headers=headers,
    )


def test_root_and_health():
    assert client.get("/").json() == {"message": "Asset Atlas API", "version": "1.0.0"}

    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_submit_queues_job_and_pipeline_completes():
    response = _submit()

    assert response.status_code == 202
    body = response.json()
    assert body["success"] is True
    assert body["status"] == "uploading"
    assert body["file_name"] == "assets.csv"

    # TestClient runs background tasks before returning.
    status = client.get(f"/asset-imports/{body['job_id']}", headers=HEADERS)
    assert status.status_code == 200
    job = status.json()["job"]
    assert job["status"] == "completed"
    assert job["uploaded_by"] == "Robin"
    assert job["file_type"] == "csv"
    assert job["result_summary"]["created_count"] == 2
    assert job["completed_at"] is not None


def test_submit_excel_upload():
    buffer = io.BytesIO()
    pd.DataFrame({"Asset ID": ["A1", "A2"], "Name": ["Pump", "Motor"], "Parent": ["", "A1"]}).to_excel(buffer, index=False)

    response = _submit(
        content=buffer.getvalue(),
        file_name="assets.xlsx",
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )

    job = client.get(f"/asset-imports/{response.json()['job_id']}", headers=HEADERS).json()["job"]
    assert job["status"] == "completed"
    assert job["result_summary"]["created_count"] == 2


def test_validation_failure_is_reported_with_row_errors():
    response = _submit(content=b"Asset ID,Name,Parent\nA1,Pump,\nA2,Motor,A99\n")

    job = client.get(f"/asset-imports/{response.json()['job_id']}", headers=HEADERS).json()["job"]
    assert job["status"] == "error"
    assert job["error_summary"] == "1 validation error(s) in 2 rows"
    assert job["errors"] == [{
        "row": 3,
        "field": "parent_id",
        "value": "A99",
        "message": 'Parent asset "A99" does not exist in the file or database',
        "code": "UnresolvedParent",
    }]

    with get_session_local()() as session:
        notification = session.execute(select(UploadNotification)).scalar_one()
    assert notification.user_id == "u-42"
    assert notification.title == "Asset Upload Failed"


def test_submit_rejects_unparsable_mappings():
    response = _submit(mappings="{not json")

    assert response.status_code == 400


def test_submit_rejects_mapping_without_name():
    response = _submit(mappings={"id": "Asset ID"})

    assert response.status_code == 400
    assert "Required field 'name' is not mapped to any column" in response.json()["detail"]


def test_submit_requires_company_and_user_headers():
    assert _submit(headers={"X-User-Id": "u-42"}).status_code == 400
    assert _submit(headers={"X-Company-Id": "3"}).status_code == 400


def test_submit_rejects_oversized_file(monkeypatch):
    monkeypatch.setattr(settings, "upload_max_file_size_mb", 0)

    assert _submit().status_code == 413


def test_job_status_is_scoped_to_company():
    job_id = _submit().json()["job_id"]

    other_company = {**HEADERS, "X-Company-Id": "4"}
    assert client.get(f"/asset-imports/{job_id}", headers=other_company).status_code == 404
    assert client.get("/asset-imports/does-not-exist", headers=HEADERS).status_code == 404


def test_history_lists_company_jobs_with_limit():
    for _ in range(3):
        _submit()
    _submit(headers={**HEADERS, "X-Company-Id": "4"})

    response = client.get("/asset-imports", params={"limit": 2}, headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["limit"] == 2
    assert len(body["jobs"]) == 2

    default = client.get("/asset-imports", headers=HEADERS).json()
    assert default["limit"] == 10
    assert len(default["jobs"]) == 3


def test_headers_preview():
    response = client.post(
        "/asset-imports/headers",
        files={"file": ("assets.csv", b"Asset ID, Name ,Parent\nA1,Pump,\n", "text/csv")},
        headers=HEADERS,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["headers"] == ["Asset ID", "Name", "Parent"]
    assert "id" in body["canonical_fields"]


def test_headers_preview_rejects_unsupported_files():
    response = client.post(
        "/asset-imports/headers",
        files={"file": ("notes.pdf", b"%PDF-1.4", "application/pdf")},
        headers=HEADERS,
    )

    assert response.status_code == 400


def test_submit_rejects_mapping_to_a_list():
    response = _submit(mappings={"id": ["Asset ID"], "name": "Name"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Field 'id' must map to a column name"


def test_headers_preview_rejects_repeated_headers():
    response = client.post(
        "/asset-imports/headers",
        files={"file": ("assets.csv", b"ID,Name,ID\nA1,Pump,ZZZ\n", "text/csv")},
        headers=HEADERS,
    )

    assert response.status_code == 400
    assert "ID" in response.json()["detail"]
