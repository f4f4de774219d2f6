"""
Uploader notifications for asset imports.

The pipeline only emits notification requests; delivery (email, in-app) reads
the ``upload_notifications`` outbox and is handled elsewhere.
"""
import logging
from typing import Any, Dict, Optional, Protocol

from asset_atlas.db.models import UploadNotification
from asset_atlas.db.session import get_session_local

logger = logging.getLogger(__name__)

OUTCOME_SUCCESS = "success"
OUTCOME_ERROR = "error"


class Notifier(Protocol):
    def notify(self, user_id: str, outcome: str, file_name: str, details: Optional[Dict[str, Any]] = None) -> None:
        ...


def build_notification_text(outcome: str, file_name: str, details: Optional[Dict[str, Any]] = None):
    """Return (title, message) for an upload outcome."""
    details = details or {}

    if outcome == OUTCOME_SUCCESS:
        parts = []
        if details.get("created_count"):
            parts.append(f"{details['created_count']} created")
        if details.get("updated_count"):
            parts.append(f"{details['updated_count']} updated")
        if details.get("unchanged_count"):
            parts.append(f"{details['unchanged_count']} unchanged")
        summary = ", ".join(parts) if parts else "No changes"
        return "Asset Upload Complete", f'Your file "{file_name}" was processed successfully. {summary}.'

    error_summary = details.get("error_summary") or "Please check the upload status for details."
    return "Asset Upload Failed", f'Your file "{file_name}" failed to process. {error_summary}'


class OutboxNotifier:
    """Writes one UploadNotification row per request."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    def notify(self, user_id: str, outcome: str, file_name: str, details: Optional[Dict[str, Any]] = None) -> None:
        title, message = build_notification_text(outcome, file_name, details)
        session_factory = self._session_factory or get_session_local()

        with session_factory() as session:
            session.add(UploadNotification(
                user_id=str(user_id),
                outcome=outcome,
                title=title,
                message=message,
                file_name=file_name,
                details=details or {},
            ))
            session.commit()

        logger.info("Queued '%s' notification for user %s (%s)", outcome, user_id, file_name)


def send_notification(notifier: Notifier, user_id: str, outcome: str, file_name: str, details: Optional[Dict[str, Any]] = None) -> bool:
    """Call the notifier; a delivery failure never changes the job outcome."""
    try:
        notifier.notify(user_id, outcome, file_name, details)
        return True
    except Exception:
        logger.exception("Failed to create upload notification for user %s", user_id)
        return False
