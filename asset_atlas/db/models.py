"""
ORM models for the asset hierarchy, import jobs and upload notifications.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from asset_atlas.db.session import Base


def _utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def new_internal_id() -> str:
    return str(uuid.uuid4())


# Descriptive columns that an upload may set and that participate in change detection.
DESCRIPTIVE_ATTRIBUTES = (
    "name",
    "description",
    "cmms_internal_id",
    "functional_location",
    "functional_location_desc",
    "functional_location_long_desc",
    "maintenance_plant",
    "cmms_system",
    "object_type",
    "system_status",
    "make",
    "manufacturer",
    "serial_number",
)


class AssetNode(Base):
    """One entity in a company's equipment/location hierarchy."""
    __tablename__ = "asset_nodes"
    # Soft-deleted rows keep their external id reserved, so the constraint spans all rows.
    __table_args__ = (
        UniqueConstraint("company_id", "external_id", name="uq_asset_nodes_company_external_id"),
    )

    internal_id = Column(String(36), primary_key=True, default=new_internal_id)
    company_id = Column(Integer, nullable=False, index=True)
    external_id = Column(String(255), nullable=False)
    parent_internal_id = Column(
        String(36),
        ForeignKey("asset_nodes.internal_id"),
        nullable=True,
        index=True,
    )
    level = Column(Integer, nullable=False, default=0)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    cmms_internal_id = Column(String(255), nullable=True)
    functional_location = Column(String(255), nullable=True)
    functional_location_desc = Column(String(255), nullable=True)
    functional_location_long_desc = Column(Text, nullable=True)
    maintenance_plant = Column(String(255), nullable=True)
    cmms_system = Column(String(255), nullable=True)
    object_type = Column(String(255), nullable=True)
    system_status = Column(String(255), nullable=True, default="Active")
    make = Column(String(255), nullable=True)
    manufacturer = Column(String(255), nullable=True)
    serial_number = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class ImportJob(Base):
    """One asynchronous execution of the asset import pipeline."""
    __tablename__ = "asset_import_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    company_id = Column(Integer, nullable=False, index=True)
    uploader_id = Column(String(255), nullable=False)
    uploader_name = Column(String(255), nullable=True)
    file_name = Column(String(500), nullable=False)
    file_type = Column(String(255), nullable=True)
    file_size = Column(Integer, nullable=True)

    status = Column(String(32), nullable=False, default="uploading", index=True)
    error_message = Column(Text, nullable=True)
    errors = Column(JSON, nullable=True)
    result_summary = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class UploadNotification(Base):
    """Outbox row consumed by the email/in-app delivery service."""
    __tablename__ = "upload_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    outcome = Column(String(32), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    file_name = Column(String(500), nullable=True)
    details = Column(JSON, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
