"""
Create/update/no-op reconciliation of a validated asset batch.

Internal ids are allocated for the whole batch before any parent is resolved,
so the result never depends on row order. All writes happen in one
transaction; on any failure nothing from the batch is committed.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from asset_atlas.db.models import DESCRIPTIVE_ATTRIBUTES, AssetNode, new_internal_id
from asset_atlas.domain.imports.errors import StorageConstraintError
from asset_atlas.domain.imports.existing_state import ExistingNode, ExistingState
from asset_atlas.domain.imports.mapper import NormalizedRow

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"

DEFAULT_MAINTENANCE_PLANT = "Default Plant"
DEFAULT_CMMS_SYSTEM = "Default System"
DEFAULT_OBJECT_TYPE = "Equipment"
DEFAULT_SYSTEM_STATUS = "Active"


@dataclass
class PlannedNode:
    row_number: int
    external_id: str
    internal_id: str
    parent_internal_id: Optional[str]
    level: int
    attributes: Dict[str, Optional[str]]
    action: str
    existing: Optional[ExistingNode] = None


@dataclass
class ReconcileResult:
    created_count: int
    updated_count: int
    unchanged_count: int
    level_adjusted_count: int
    total_processed: int
    processing_time_seconds: float
    internal_ids: Dict[str, str] = field(default_factory=dict)

    def to_summary(self) -> Dict[str, object]:
        return {
            "created_count": self.created_count,
            "updated_count": self.updated_count,
            "unchanged_count": self.unchanged_count,
            "level_adjusted_count": self.level_adjusted_count,
            "total_processed": self.total_processed,
            "processing_time_seconds": round(self.processing_time_seconds, 3),
        }


def build_asset_attributes(row: NormalizedRow) -> Dict[str, Optional[str]]:
    """Descriptive attributes for a row, with the defaults stored for blank columns."""
    external_id = row.external_id
    name = row.name
    get = row.attributes.get

    return {
        "name": name,
        "description": get("description"),
        "cmms_internal_id": get("cmms_internal_id") or external_id,
        "functional_location": get("functional_location") or external_id,
        "functional_location_desc": get("functional_location_desc") or name,
        "functional_location_long_desc": (
            get("functional_location_long_desc") or get("functional_location_desc") or name
        ),
        "maintenance_plant": get("maintenance_plant") or DEFAULT_MAINTENANCE_PLANT,
        "cmms_system": get("cmms_system") or DEFAULT_CMMS_SYSTEM,
        "object_type": get("object_type") or DEFAULT_OBJECT_TYPE,
        "system_status": get("system_status") or DEFAULT_SYSTEM_STATUS,
        "make": get("make"),
        "manufacturer": get("manufacturer"),
        "serial_number": get("serial_number"),
    }


def values_equal(new_value, old_value) -> bool:
    """Null and empty string are the same; strings compare trimmed."""
    normalized_new = None if new_value is None or new_value == "" else new_value
    normalized_old = None if old_value is None or old_value == "" else old_value

    if normalized_new is None and normalized_old is None:
        return True
    if normalized_new is None or normalized_old is None:
        return False
    return str(normalized_new).strip() == str(normalized_old).strip()


def has_changes(planned: PlannedNode, existing: ExistingNode) -> bool:
    if planned.parent_internal_id != existing.parent_internal_id:
        return True
    if planned.level != existing.level:
        return True
    return any(
        not values_equal(planned.attributes.get(name), existing.attributes.get(name))
        for name in DESCRIPTIVE_ATTRIBUTES
    )


def allocate_internal_ids(rows: List[NormalizedRow], existing: ExistingState) -> Dict[str, str]:
    """
    Allocation pass: external id -> internal id for every active stored node and
    every batch row. Matching rows reuse the stored internal id.
    """
    id_map = {node.external_id: node.internal_id for node in existing.active_nodes()}
    for row in rows:
        if row.external_id not in id_map:
            id_map[row.external_id] = new_internal_id()
    return id_map


def compute_levels(parent_by_internal_id: Dict[str, Optional[str]]) -> Dict[str, int]:
    """
    Depth of every node in the merged parent graph.

    A node whose parent is unknown to the graph counts as a root. The graph is
    expected to be acyclic; a cycle raises ValueError.
    """
    levels: Dict[str, int] = {}

    for start in parent_by_internal_id:
        if start in levels:
            continue
        chain = []
        on_chain = set()
        node = start
        while node is not None and node not in levels and node in parent_by_internal_id:
            if node in on_chain:
                raise ValueError(f"Cycle in parent graph at node {node}")
            chain.append(node)
            on_chain.add(node)
            node = parent_by_internal_id.get(node)

        base = levels[node] + 1 if node is not None and node in levels else 0
        for depth, member in enumerate(reversed(chain)):
            levels[member] = base + depth

    return levels


def plan_reconciliation(rows: List[NormalizedRow], existing: ExistingState):
    """
    Resolution pass over the completed id map.

    Returns (planned batch nodes, {internal_id: new level} for stored nodes outside
    the batch whose level moved, id map).
    """
    id_map = allocate_internal_ids(rows, existing)

    parent_by_internal_id: Dict[str, Optional[str]] = {
        node.internal_id: node.parent_internal_id for node in existing.active_nodes()
    }
    resolved_parents: Dict[str, Optional[str]] = {}
    for row in rows:
        parent_internal_id = id_map[row.parent_external_id] if row.parent_external_id else None
        internal_id = id_map[row.external_id]
        resolved_parents[internal_id] = parent_internal_id
        parent_by_internal_id[internal_id] = parent_internal_id

    levels = compute_levels(parent_by_internal_id)

    planned_nodes: List[PlannedNode] = []
    for row in rows:
        internal_id = id_map[row.external_id]
        existing_node = existing.active_node(row.external_id)
        planned = PlannedNode(
            row_number=row.row_number,
            external_id=row.external_id,
            internal_id=internal_id,
            parent_internal_id=resolved_parents[internal_id],
            level=levels[internal_id],
            attributes=build_asset_attributes(row),
            action=CREATED,
            existing=existing_node,
        )
        if existing_node is not None:
            planned.action = UPDATED if has_changes(planned, existing_node) else UNCHANGED
        planned_nodes.append(planned)

    batch_internal_ids = set(resolved_parents)
    level_adjustments = {
        node.internal_id: levels[node.internal_id]
        for node in existing.active_nodes()
        if node.internal_id not in batch_internal_ids and levels.get(node.internal_id, node.level) != node.level
    }

    return planned_nodes, level_adjustments, id_map


def sort_by_dependency_order(planned_nodes: List[PlannedNode]) -> List[PlannedNode]:
    """Stable ordering with every parent ahead of its children."""
    by_internal_id = {planned.internal_id: planned for planned in planned_nodes}
    ordered: List[PlannedNode] = []
    added = set()

    for planned in planned_nodes:
        lineage = []
        current = planned
        while current is not None and current.internal_id not in added:
            lineage.append(current)
            current = by_internal_id.get(current.parent_internal_id)
        for member in reversed(lineage):
            added.add(member.internal_id)
            ordered.append(member)

    return ordered


def _insert_node(session: Session, planned: PlannedNode, company_id: int) -> None:
    session.add(AssetNode(
        internal_id=planned.internal_id,
        company_id=company_id,
        external_id=planned.external_id,
        parent_internal_id=planned.parent_internal_id,
        level=planned.level,
        **planned.attributes,
    ))


def _apply_update(session: Session, planned: PlannedNode) -> None:
    node = session.get(AssetNode, planned.internal_id)
    if node is None:
        raise LookupError(f"Asset {planned.internal_id} disappeared during reconciliation")
    node.parent_internal_id = planned.parent_internal_id
    node.level = planned.level
    for name, value in planned.attributes.items():
        setattr(node, name, value)


def _apply_level_adjustment(session: Session, internal_id: str, level: int) -> None:
    node = session.get(AssetNode, internal_id)
    if node is None:
        raise LookupError(f"Asset {internal_id} disappeared during reconciliation")
    node.level = level


def reconcile(session: Session, rows: List[NormalizedRow], company_id: int, existing: ExistingState) -> ReconcileResult:
    """
    Persist a validated batch.

    Rows identical to their stored node are not written. Raises
    StorageConstraintError when the database rejects the commit; the session is
    rolled back on every failure.
    """
    start_time = time.monotonic()

    planned_nodes, level_adjustments, id_map = plan_reconciliation(rows, existing)
    creates = [planned for planned in planned_nodes if planned.action == CREATED]
    updates = [planned for planned in planned_nodes if planned.action == UPDATED]
    unchanged_count = sum(1 for planned in planned_nodes if planned.action == UNCHANGED)

    logger.info(
        "Categorized %d assets for company %s: %d new, %d changed, %d unchanged, %d level adjustments",
        len(planned_nodes), company_id, len(creates), len(updates), unchanged_count, len(level_adjustments),
    )

    try:
        # Parents first so immediate FK checks pass on every INSERT.
        for planned in sort_by_dependency_order(creates):
            _insert_node(session, planned, company_id)
        session.flush()

        for planned in updates:
            _apply_update(session, planned)
        for internal_id, level in level_adjustments.items():
            _apply_level_adjustment(session, internal_id, level)
        session.flush()

        session.commit()
    except IntegrityError as exc:
        session.rollback()
        logger.warning("Asset commit rejected by storage constraint for company %s: %s", company_id, exc.orig)
        raise StorageConstraintError(str(exc.orig)) from exc
    except Exception:
        session.rollback()
        raise

    return ReconcileResult(
        created_count=len(creates),
        updated_count=len(updates),
        unchanged_count=unchanged_count,
        level_adjusted_count=len(level_adjustments),
        total_processed=len(planned_nodes),
        processing_time_seconds=time.monotonic() - start_time,
        internal_ids={row.external_id: id_map[row.external_id] for row in rows},
    )
