"""
Explicit soft-delete and restore cascades for asset nodes.

Callers invoke these after deciding to delete or restore an asset; nothing is
hidden in ORM lifecycle hooks.
"""
import logging
from datetime import datetime, timezone
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from asset_atlas.db.models import AssetNode

logger = logging.getLogger(__name__)


def _as_naive_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; compare everything as naive UTC.
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class AssetNotFound(LookupError):
    pass


class AssetRestoreError(ValueError):
    pass


def _get_node(session: Session, company_id: int, internal_id: str) -> AssetNode:
    node = session.execute(
        select(AssetNode).where(
            AssetNode.company_id == company_id,
            AssetNode.internal_id == internal_id,
        )
    ).scalar_one_or_none()
    if node is None:
        raise AssetNotFound(f"Asset {internal_id} not found")
    return node


def _children(session: Session, company_id: int, parent_ids: List[str]) -> List[AssetNode]:
    return session.execute(
        select(AssetNode).where(
            AssetNode.company_id == company_id,
            AssetNode.parent_internal_id.in_(parent_ids),
        )
    ).scalars().all()


def soft_delete_asset(session: Session, company_id: int, internal_id: str) -> List[str]:
    """
    Soft-delete an asset and every active descendant with one shared timestamp.

    Returns the internal ids that were deleted. Deleted external ids stay
    reserved for the company.
    """
    root = _get_node(session, company_id, internal_id)
    if root.is_deleted:
        return []

    deleted_at = datetime.now(timezone.utc)
    deleted: List[str] = []
    frontier = [root]
    while frontier:
        for node in frontier:
            node.deleted_at = deleted_at
            deleted.append(node.internal_id)
        frontier = [
            child for child in _children(session, company_id, [node.internal_id for node in frontier])
            if not child.is_deleted
        ]

    session.commit()
    logger.info("Soft-deleted asset %s and %d descendant(s)", internal_id, len(deleted) - 1)
    return deleted


def restore_asset(session: Session, company_id: int, internal_id: str) -> List[str]:
    """
    Restore a soft-deleted asset and the descendants deleted in the same cascade.

    Raises AssetRestoreError when the asset's parent is itself still deleted.
    """
    root = _get_node(session, company_id, internal_id)
    if not root.is_deleted:
        return []

    if root.parent_internal_id:
        parent = session.get(AssetNode, root.parent_internal_id)
        if parent is None or parent.is_deleted:
            raise AssetRestoreError(
                f"Asset {root.external_id} cannot be restored while its parent is deleted"
            )

    cascade_marker = _as_naive_utc(root.deleted_at)
    restored: List[str] = []
    frontier = [root]
    while frontier:
        for node in frontier:
            node.deleted_at = None
            restored.append(node.internal_id)
        frontier = [
            child for child in _children(session, company_id, [node.internal_id for node in frontier])
            if child.deleted_at is not None and _as_naive_utc(child.deleted_at) == cascade_marker
        ]

    session.commit()
    logger.info("Restored asset %s and %d descendant(s)", internal_id, len(restored) - 1)
    return restored
