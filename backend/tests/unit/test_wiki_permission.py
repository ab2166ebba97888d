from app.services import wiki_tree_service as tree
from app.services.wiki_permission import (
    EffectivePermissionKind,
    PermissionState,
    Viewer,
    can_access,
    evaluate_permission,
    is_unclassified,
    permission_state,
)


def test_default_folder_is_public_and_file_inherits_public(db):
    folder = tree.create_folder(db, name="공지")
    inherited = tree.create_file(db, name="open", parent_id=folder.id, is_public=True)
    private = tree.create_file(db, name="closed", parent_id=folder.id, is_public=False)

    assert folder.is_public is True
    assert evaluate_permission(db, inherited).kind == EffectivePermissionKind.PUBLIC
    assert evaluate_permission(db, private).kind == EffectivePermissionKind.ADMIN_ONLY


def test_private_file_is_admin_only_even_under_restricted_folder(db):
    folder = tree.create_folder(db, name="hr", is_public=False, permission_department_ids=["dept-1"])
    private = tree.create_file(db, name="salary", parent_id=folder.id, is_public=False)

    permission = evaluate_permission(db, private)
    assert permission.kind == EffectivePermissionKind.ADMIN_ONLY
    assert permission.source_node_id == private.id
    assert can_access(db, private, Viewer(department_ids=["dept-1"])) is False
    assert can_access(db, private, Viewer(is_admin=True)) is True


def test_nearest_restricted_ancestor_wins(db):
    outer = tree.create_folder(db, name="outer", is_public=False, permission_rank_ids=["rank-1"])
    inner = tree.create_folder(
        db, name="inner", parent_id=outer.id, is_public=False, permission_department_ids=["dept-2"]
    )
    middle = tree.create_folder(db, name="middle", parent_id=inner.id)
    doc = tree.create_file(db, name="doc", parent_id=middle.id)

    permission = evaluate_permission(db, doc)

    assert permission.kind == EffectivePermissionKind.RESTRICTED
    assert permission.source_node_id == inner.id
    assert permission.department_ids == ("dept-2",)
    assert permission.rank_ids == ()
    assert can_access(db, doc, Viewer(department_ids=["dept-2"])) is True
    assert can_access(db, doc, Viewer(rank_id="rank-1")) is False


def test_restricted_access_matches_rank_position_or_department(db):
    folder = tree.create_folder(
        db,
        name="board",
        is_public=False,
        permission_rank_ids=["rank-1"],
        permission_position_ids=["pos-1"],
        permission_department_ids=["dept-1"],
    )

    assert can_access(db, folder, Viewer(rank_id="rank-1")) is True
    assert can_access(db, folder, Viewer(position_id="pos-1")) is True
    assert can_access(db, folder, Viewer(department_ids=["dept-9", "dept-1"])) is True
    assert can_access(db, folder, Viewer(rank_id="rank-2", position_id="pos-2")) is False


def test_unclassified_and_explicitly_empty_folders_are_admin_only(db):
    unclassified = tree.create_folder(db, name="unset", is_public=False)
    nobody = tree.create_folder(
        db,
        name="nobody",
        is_public=False,
        permission_rank_ids=[],
        permission_position_ids=[],
        permission_department_ids=[],
    )

    assert permission_state(unclassified) == PermissionState.UNCLASSIFIED
    assert is_unclassified(unclassified) is True
    assert permission_state(nobody) == PermissionState.RESTRICTED
    assert is_unclassified(nobody) is False

    for folder in (unclassified, nobody):
        assert evaluate_permission(db, folder).kind == EffectivePermissionKind.ADMIN_ONLY
        assert can_access(db, folder, Viewer(rank_id="rank-1", department_ids=["dept-1"])) is False


def test_public_folder_is_never_unclassified(db):
    folder = tree.create_folder(db, name="open")
    assert permission_state(folder) == PermissionState.PUBLIC
    assert is_unclassified(folder) is False
