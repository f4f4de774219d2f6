"""
Validation of a mapped asset batch against itself and the stored hierarchy.

Everything here is pure: no database access and no writes. Every row is
checked before a result is returned so the uploader gets one complete report.
"""
from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Set

from asset_atlas.domain.imports.existing_state import ExistingState
from asset_atlas.domain.imports.mapper import NormalizedRow

MISSING_FIELD = "MissingField"
DUPLICATE_IN_REQUEST = "DuplicateInRequest"
UNRESOLVED_PARENT = "UnresolvedParent"
CYCLE_DETECTED = "CycleDetected"
DELETED_ID_COLLISION = "DeletedIdCollision"

MAX_VALUE_LENGTH = 100
DEFAULT_MAX_REPORT_LINES = 20


@dataclass
class RowError:
    row: Optional[int]
    field: Optional[str]
    value: Optional[str]
    message: str
    code: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationResult:
    valid: bool
    rows: List[NormalizedRow]
    errors: List[RowError] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)


def create_row_error(row: Optional[int], field_name: Optional[str], value: Any, message: str, code: str) -> RowError:
    text = str(value)[:MAX_VALUE_LENGTH] if value is not None else None
    return RowError(row=row, field=field_name, value=text, message=message, code=code)


def validate_required_fields(rows: List[NormalizedRow]) -> List[RowError]:
    errors = []
    for row in rows:
        if not row.external_id:
            errors.append(create_row_error(
                row.row_number, "id", row.external_id,
                "ID is required but missing or empty", MISSING_FIELD,
            ))
        if not row.name:
            errors.append(create_row_error(
                row.row_number, "name", row.name,
                "Name is required but missing or empty", MISSING_FIELD,
            ))
    return errors


def validate_id_uniqueness(rows: List[NormalizedRow], existing: ExistingState) -> List[RowError]:
    """Flag external ids repeated inside the batch or reserved by a soft-deleted node."""
    errors = []
    occurrences: "OrderedDict[str, List[int]]" = OrderedDict()
    for row in rows:
        if row.external_id:
            occurrences.setdefault(row.external_id, []).append(row.row_number)

    for external_id, row_numbers in occurrences.items():
        if len(row_numbers) > 1:
            for row_number in row_numbers:
                others = [str(r) for r in row_numbers if r != row_number]
                plural = "s" if len(others) > 1 else ""
                errors.append(create_row_error(
                    row_number, "id", external_id,
                    f"Duplicate ID - this value also appears on row{plural} {', '.join(others)}",
                    DUPLICATE_IN_REQUEST,
                ))

        if external_id in existing.deleted_external_ids:
            for row_number in row_numbers:
                errors.append(create_row_error(
                    row_number, "id", external_id,
                    "ID belongs to a deleted asset; restore that asset or choose a new ID",
                    DELETED_ID_COLLISION,
                ))

    return errors


def validate_parent_references(rows: List[NormalizedRow], existing: ExistingState) -> List[RowError]:
    errors = []
    batch_ids = {row.external_id for row in rows if row.external_id}

    for row in rows:
        parent_id = row.parent_external_id
        if not parent_id:
            continue
        if parent_id in batch_ids or parent_id in existing.active_external_ids:
            continue

        if parent_id in existing.deleted_external_ids:
            message = f'Parent asset "{parent_id}" has been deleted'
        else:
            message = f'Parent asset "{parent_id}" does not exist in the file or database'
        errors.append(create_row_error(row.row_number, "parent_id", parent_id, message, UNRESOLVED_PARENT))

    return errors


def _build_parent_graph(rows: List[NormalizedRow], existing: ExistingState) -> Dict[str, str]:
    """Union of stored edges and batch edges; the batch wins for nodes it contains."""
    batch_ids = {row.external_id for row in rows if row.external_id}
    resolvable = batch_ids | existing.active_external_ids

    graph = dict(existing.parent_by_external_id)
    seen: Set[str] = set()
    for row in rows:
        if not row.external_id or row.external_id in seen:
            continue
        seen.add(row.external_id)
        if row.parent_external_id and row.parent_external_id in resolvable:
            graph[row.external_id] = row.parent_external_id
        else:
            graph.pop(row.external_id, None)
    return graph


def _walk_for_cycle(start: str, graph: Dict[str, str], cleared: Set[str]) -> Optional[List[str]]:
    path: List[str] = []
    position: Dict[str, int] = {}
    node: Optional[str] = start

    while node is not None and node not in cleared:
        if node in position:
            cycle = path[position[node]:] + [node]
            cleared.update(path)
            return cycle
        position[node] = len(path)
        path.append(node)
        node = graph.get(node)

    cleared.update(path)
    return None


def detect_cycles(rows: List[NormalizedRow], existing: ExistingState) -> List[RowError]:
    """Walk every batch node's ancestor chain over the merged parent graph."""
    graph = _build_parent_graph(rows, existing)
    row_by_id: Dict[str, int] = {}
    for row in rows:
        if row.external_id and row.external_id not in row_by_id:
            row_by_id[row.external_id] = row.row_number

    errors = []
    cleared: Set[str] = set()
    reported: Set[frozenset] = set()

    for external_id in row_by_id:
        cycle = _walk_for_cycle(external_id, graph, cleared)
        if not cycle:
            continue
        key = frozenset(cycle)
        if key in reported:
            continue
        reported.add(key)

        members_in_batch = [node for node in cycle[:-1] if node in row_by_id]
        offender = min(members_in_batch, key=lambda node: row_by_id[node]) if members_in_batch else cycle[0]
        errors.append(create_row_error(
            row_by_id.get(offender),
            "parent_id",
            offender,
            f"Cyclic dependency detected: {' → '.join(cycle)}",
            CYCLE_DETECTED,
        ))

    return errors


def _sort_key(error: RowError):
    return (error.row is None, error.row or 0)


def validate_rows(rows: List[NormalizedRow], existing: ExistingState) -> ValidationResult:
    """
    Run every check over the whole batch.

    Returns a ValidationResult; ``valid`` is False when any error was found, in
    which case nothing may be written.
    """
    errors: List[RowError] = []
    errors.extend(validate_required_fields(rows))
    errors.extend(validate_id_uniqueness(rows, existing))
    errors.extend(validate_parent_references(rows, existing))
    errors.extend(detect_cycles(rows, existing))

    errors.sort(key=_sort_key)

    return ValidationResult(
        valid=not errors,
        rows=rows,
        errors=errors,
        summary={"total_rows": len(rows), "error_count": len(errors)},
    )


def render_error_report(errors: List[RowError], total_rows: int, max_lines: int = DEFAULT_MAX_REPORT_LINES) -> Optional[str]:
    """Render the aggregated errors as one user-facing report."""
    if not errors:
        return None

    lines = [f"Validation failed: {len(errors)} error(s) found in {total_rows} rows", ""]

    for error in errors[:max_lines]:
        if error.row:
            line = f"Row {error.row}"
            if error.field:
                line += f" [{error.field}]"
            if error.value:
                line += f' "{error.value}"'
            lines.append(f"{line}: {error.message}")
        else:
            lines.append(f"• {error.message}")

    if len(errors) > max_lines:
        lines.append("")
        lines.append(f"... and {len(errors) - max_lines} more error(s).")

    lines.append("")
    lines.append("Please fix these issues and re-upload the file.")
    return "\n".join(lines)
