"""
Snapshot of a company's stored hierarchy, used for uniqueness checks, parent
resolution and change detection.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from asset_atlas.db.models import DESCRIPTIVE_ATTRIBUTES, AssetNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExistingNode:
    internal_id: str
    external_id: str
    parent_internal_id: Optional[str]
    level: int
    attributes: Dict[str, Optional[str]]
    is_deleted: bool = False


@dataclass
class ExistingState:
    active_external_ids: Set[str] = field(default_factory=set)
    deleted_external_ids: Set[str] = field(default_factory=set)
    # Active child external id -> active parent external id
    parent_by_external_id: Dict[str, str] = field(default_factory=dict)
    # Every stored node, soft-deleted included
    node_by_external_id: Dict[str, ExistingNode] = field(default_factory=dict)
    external_id_by_internal_id: Dict[str, str] = field(default_factory=dict)

    def active_node(self, external_id: Optional[str]) -> Optional[ExistingNode]:
        node = self.node_by_external_id.get(external_id) if external_id else None
        if node is None or node.is_deleted:
            return None
        return node

    def active_nodes(self):
        return [node for node in self.node_by_external_id.values() if not node.is_deleted]


def load_existing_state(session: Session, company_id: int) -> ExistingState:
    """Read every stored node of the company, soft-deleted records included."""
    nodes = session.execute(
        select(AssetNode).where(AssetNode.company_id == company_id)
    ).scalars().all()

    state = ExistingState()
    for node in nodes:
        state.external_id_by_internal_id[node.internal_id] = node.external_id
        state.node_by_external_id[node.external_id] = ExistingNode(
            internal_id=node.internal_id,
            external_id=node.external_id,
            parent_internal_id=node.parent_internal_id,
            level=node.level,
            attributes={name: getattr(node, name) for name in DESCRIPTIVE_ATTRIBUTES},
            is_deleted=node.is_deleted,
        )
        if node.is_deleted:
            state.deleted_external_ids.add(node.external_id)
        else:
            state.active_external_ids.add(node.external_id)

    # Parent links are resolved after the full pass so row order does not matter.
    for external_id in state.active_external_ids:
        node = state.node_by_external_id[external_id]
        if not node.parent_internal_id:
            continue
        parent_external_id = state.external_id_by_internal_id.get(node.parent_internal_id)
        if parent_external_id and parent_external_id in state.active_external_ids:
            state.parent_by_external_id[external_id] = parent_external_id

    logger.info(
        "Loaded existing hierarchy for company %s: %d active, %d soft-deleted",
        company_id,
        len(state.active_external_ids),
        len(state.deleted_external_ids),
    )
    return state
