from asset_atlas.domain.imports.mapper import apply_mapping, required_mapping_errors, validate_mapping

MAPPING = {"id": "Asset ID", "name": "Asset Name", "parent_id": "Parent ID", "make": "Make"}


def test_required_mapping_errors_flags_missing_id_and_name():
    errors = required_mapping_errors({"parent_id": "Parent"})

    assert "Required field 'id' is not mapped to any column" in errors
    assert "Required field 'name' is not mapped to any column" in errors


def test_required_mapping_errors_for_empty_mapping():
    assert required_mapping_errors({}) == ["Column mappings are required"]
    assert required_mapping_errors(None) == ["Column mappings are required"]


def test_required_mapping_errors_rejects_unknown_fields():
    errors = required_mapping_errors({"id": "A", "name": "B", "colour": "C"})

    assert errors == ["Unknown field 'colour' in column mappings"]


def test_validate_mapping_checks_columns_exist_in_file():
    errors = validate_mapping(MAPPING, ["Asset ID", "Asset Name", "Parent ID"])

    assert errors == ["Mapped column 'Make' for field 'make' does not exist in file"]


def test_validate_mapping_accepts_complete_mapping():
    assert validate_mapping(MAPPING, ["Asset ID", "Asset Name", "Parent ID", "Make", "Unused"]) == []


def test_apply_mapping_renames_and_numbers_rows():
    rows = [
        {"Asset ID": " A1 ", "Asset Name": "Pump", "Parent ID": "", "Make": "Acme", "Unused": "x"},
        {"Asset ID": "A2", "Asset Name": "Motor", "Parent ID": "A1"},
    ]

    normalized = apply_mapping(rows, MAPPING)

    first, second = normalized
    assert first.row_number == 2
    assert first.external_id == "A1"
    assert first.parent_external_id is None
    assert first.name == "Pump"
    assert first.get("make") == "Acme"
    assert first.get("serial_number") is None
    assert "Unused" not in first.attributes

    assert second.row_number == 3
    assert second.parent_external_id == "A1"
    assert second.get("make") is None


def test_required_mapping_errors_rejects_non_string_columns():
    mapping = {"id": ["Asset ID"], "name": "Name"}

    assert required_mapping_errors(mapping) == ["Field 'id' must map to a column name"]
    assert validate_mapping(mapping, ["Asset ID", "Name"]) == ["Field 'id' must map to a column name"]
