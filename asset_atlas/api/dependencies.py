"""
Shared dependencies for the API.

Authentication happens upstream; the gateway forwards the caller's identity in
trusted headers and every asset import is scoped to that company.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, UploadFile, status

from asset_atlas.core.config import settings
from asset_atlas.domain.imports.errors import UnsupportedFileType
from asset_atlas.domain.imports.processors.file_processor import detect_file_type


@dataclass
class UploadContext:
    company_id: int
    user_id: Optional[str] = None
    user_name: Optional[str] = None


def get_upload_context(
    x_company_id: Optional[int] = Header(None),
    x_user_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
) -> UploadContext:
    """
    Resolve the caller from the X-Company-Id / X-User-Id / X-User-Name headers.

    Raises:
    - HTTPException 400: company header missing
    """
    if x_company_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Company context required. Provide X-Company-Id header.",
        )
    return UploadContext(company_id=x_company_id, user_id=x_user_id, user_name=x_user_name)


def resolve_file_type(file: UploadFile) -> str:
    """
    Detect 'csv' or 'excel' for an uploaded file.

    Raises:
    - HTTPException 400: unsupported file type
    """
    try:
        return detect_file_type(file.content_type, file.filename or "")
    except UnsupportedFileType as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)


async def read_upload(file: UploadFile) -> bytes:
    """Read the whole upload, enforcing the configured size limit."""
    content = await file.read()
    max_bytes = settings.upload_max_file_size_mb * 1024 * 1024
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds the {settings.upload_max_file_size_mb}MB upload limit",
        )
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty")
    return content
