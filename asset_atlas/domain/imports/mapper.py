"""
Column mapping for asset uploads.

Callers send a mapping of canonical field name -> file header. The mapping is
checked before any row is touched, then applied to produce rows keyed by
canonical names and tagged with their original line number.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("id", "name")

OPTIONAL_FIELDS = (
    "parent_id",
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

CANONICAL_FIELDS = REQUIRED_FIELDS + OPTIONAL_FIELDS

# The file's "id" is not our primary key, so these two are renamed on the way in.
RENAMED_FIELDS = {
    "id": "external_id",
    "parent_id": "parent_external_id",
}


@dataclass
class NormalizedRow:
    """One upload row keyed by canonical field names."""
    row_number: int
    external_id: Optional[str] = None
    parent_external_id: Optional[str] = None
    attributes: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def name(self) -> Optional[str]:
        return self.attributes.get("name")

    def get(self, field_name: str) -> Optional[str]:
        if field_name == "external_id":
            return self.external_id
        if field_name == "parent_external_id":
            return self.parent_external_id
        return self.attributes.get(field_name)


def required_mapping_errors(mapping: Optional[Dict[str, Any]]) -> List[str]:
    """Header-independent checks: required fields present, canonical names known."""
    if not mapping:
        return ["Column mappings are required"]

    errors = []
    for required in REQUIRED_FIELDS:
        if not mapping.get(required):
            errors.append(f"Required field '{required}' is not mapped to any column")

    for system_field, file_column in mapping.items():
        if system_field not in CANONICAL_FIELDS:
            errors.append(f"Unknown field '{system_field}' in column mappings")
        elif file_column and not isinstance(file_column, str):
            errors.append(f"Field '{system_field}' must map to a column name")

    return errors


def validate_mapping(mapping: Optional[Dict[str, Any]], file_headers: Iterable[str]) -> List[str]:
    """
    Validate a column mapping against the file's headers.

    Returns:
        List of human-readable mapping errors (empty when the mapping is usable).
    """
    errors = required_mapping_errors(mapping)
    if not mapping:
        return errors

    header_set = set(file_headers)
    for system_field, file_column in mapping.items():
        if isinstance(file_column, str) and file_column and file_column not in header_set:
            errors.append(f"Mapped column '{file_column}' for field '{system_field}' does not exist in file")

    return errors


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def apply_mapping(rows: List[Dict[str, str]], mapping: Dict[str, str]) -> List[NormalizedRow]:
    """
    Produce canonical rows from raw decoded rows.

    Unmapped optional fields are None. ``row_number`` is 1-based and counts the
    header line, so the first data row is line 2.
    """
    normalized: List[NormalizedRow] = []

    for index, row in enumerate(rows):
        mapped = NormalizedRow(row_number=index + 2)

        for system_field in CANONICAL_FIELDS:
            file_column = mapping.get(system_field)
            value = _clean(row.get(file_column)) if file_column else None

            target = RENAMED_FIELDS.get(system_field)
            if target == "external_id":
                mapped.external_id = value
            elif target == "parent_external_id":
                mapped.parent_external_id = value
            else:
                mapped.attributes[system_field] = value

        normalized.append(mapped)

    logger.info("Applied column mapping to %d rows", len(normalized))
    return normalized
