from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from asset_atlas.domain.imports.mapper import CANONICAL_FIELDS


class RowErrorDetail(BaseModel):
    """One row-level problem found while validating an upload."""
    row: Optional[int] = None
    field: Optional[str] = None
    value: Optional[str] = None
    message: str
    code: Optional[str] = None


class ImportResultSummary(BaseModel):
    created_count: int = 0
    updated_count: int = 0
    unchanged_count: int = 0
    level_adjusted_count: int = 0
    total_processed: int = 0
    processing_time_seconds: Optional[float] = None
    elapsed_seconds: Optional[float] = None


class AssetImportJobInfo(BaseModel):
    """Status of one asset import job."""
    id: str
    file_name: str
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    status: str
    error_message: Optional[str] = None
    error_summary: Optional[str] = None
    errors: Optional[List[RowErrorDetail]] = None
    result_summary: Optional[ImportResultSummary] = None
    uploaded_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class AssetImportSubmitResponse(BaseModel):
    success: bool
    job_id: str
    file_name: str
    status: str
    message: str


class AssetImportJobResponse(BaseModel):
    success: bool
    job: AssetImportJobInfo


class AssetImportHistoryResponse(BaseModel):
    success: bool
    jobs: List[AssetImportJobInfo]
    limit: int


class FileHeadersResponse(BaseModel):
    success: bool
    file_name: str
    headers: List[str] = Field(default_factory=list)
    canonical_fields: List[str] = Field(default_factory=lambda: list(CANONICAL_FIELDS))


def job_info_from_record(record: Dict[str, Any]) -> AssetImportJobInfo:
    return AssetImportJobInfo(**{key: record.get(key) for key in AssetImportJobInfo.model_fields})
