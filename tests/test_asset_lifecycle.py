from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from asset_atlas.db.models import AssetNode
from asset_atlas.domain.assets.lifecycle import (
    AssetNotFound,
    AssetRestoreError,
    restore_asset,
    soft_delete_asset,
)
from asset_atlas.domain.imports.existing_state import load_existing_state

COMPANY_ID = 5


def _add(session, external_id, parent=None, level=0):
    node = AssetNode(
        company_id=COMPANY_ID,
        external_id=external_id,
        name=external_id,
        parent_internal_id=parent.internal_id if parent else None,
        level=level,
    )
    session.add(node)
    session.flush()
    return node


@pytest.fixture
def tree(db_session):
    site = _add(db_session, "SITE")
    line = _add(db_session, "LINE", site, 1)
    pump = _add(db_session, "PUMP", line, 2)
    spare = _add(db_session, "SPARE", site, 1)
    db_session.commit()
    return {"SITE": site, "LINE": line, "PUMP": pump, "SPARE": spare}


def _deleted(session):
    nodes = session.execute(select(AssetNode).where(AssetNode.company_id == COMPANY_ID)).scalars().all()
    return {node.external_id for node in nodes if node.is_deleted}


def test_soft_delete_cascades_to_descendants(db_session, tree):
    deleted = soft_delete_asset(db_session, COMPANY_ID, tree["LINE"].internal_id)

    assert set(deleted) == {tree["LINE"].internal_id, tree["PUMP"].internal_id}
    assert _deleted(db_session) == {"LINE", "PUMP"}
    assert tree["LINE"].deleted_at == tree["PUMP"].deleted_at


def test_soft_deleted_ids_stay_reserved_in_existing_state(db_session, tree):
    soft_delete_asset(db_session, COMPANY_ID, tree["LINE"].internal_id)

    state = load_existing_state(db_session, COMPANY_ID)

    assert state.deleted_external_ids == {"LINE", "PUMP"}
    assert state.active_external_ids == {"SITE", "SPARE"}
    assert state.active_node("PUMP") is None
    assert state.parent_by_external_id == {"SPARE": "SITE"}


def test_restore_brings_back_the_same_cascade_only(db_session, tree):
    # PUMP was deleted on its own earlier; it must stay deleted.
    tree["PUMP"].deleted_at = datetime.now(timezone.utc) - timedelta(days=1)
    db_session.commit()
    soft_delete_asset(db_session, COMPANY_ID, tree["LINE"].internal_id)

    restored = restore_asset(db_session, COMPANY_ID, tree["LINE"].internal_id)

    assert restored == [tree["LINE"].internal_id]
    assert _deleted(db_session) == {"PUMP"}


def test_restore_refuses_when_parent_is_deleted(db_session, tree):
    soft_delete_asset(db_session, COMPANY_ID, tree["SITE"].internal_id)

    with pytest.raises(AssetRestoreError):
        restore_asset(db_session, COMPANY_ID, tree["LINE"].internal_id)

    restored = restore_asset(db_session, COMPANY_ID, tree["SITE"].internal_id)
    assert len(restored) == 4
    assert _deleted(db_session) == set()


def test_lifecycle_is_a_noop_for_nodes_already_in_that_state(db_session, tree):
    assert restore_asset(db_session, COMPANY_ID, tree["SITE"].internal_id) == []

    soft_delete_asset(db_session, COMPANY_ID, tree["PUMP"].internal_id)
    assert soft_delete_asset(db_session, COMPANY_ID, tree["PUMP"].internal_id) == []


def test_unknown_asset_raises(db_session):
    with pytest.raises(AssetNotFound):
        soft_delete_asset(db_session, COMPANY_ID, "missing")

    with pytest.raises(AssetNotFound):
        soft_delete_asset(db_session, COMPANY_ID + 1, "missing")
