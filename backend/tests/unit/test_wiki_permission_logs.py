from uuid import uuid4

import pytest
from sqlalchemy import false, func, select

from app.db.models import DismissedPermissionLog, User, UserRole
from app.services import wiki_tree_service as tree
from app.services.directory_client import StaticDirectoryProvider
from app.services.wiki_errors import WikiValidationError
from app.services.wiki_permission_check_service import run_permission_check
from app.services.wiki_permission_log_service import dismiss_logs, list_permission_logs, list_unread_logs


@pytest.fixture()
def detected_logs(db):
    tree.create_folder(db, name="a", is_public=False, permission_department_ids=["dept-a"])
    tree.create_folder(db, name="b", is_public=False, permission_department_ids=["dept-b"])
    run_permission_check(db, StaticDirectoryProvider(department_ids=[]))
    return list_permission_logs(db)


def test_dismiss_twice_counts_already_dismissed(db, admin, detected_logs):
    target = detected_logs[0]

    first = dismiss_logs(db, [target.id], admin.id)
    second = dismiss_logs(db, [target.id], admin.id)

    assert (first.dismissed, first.already_dismissed, first.not_found) == (1, 0, 0)
    assert (second.dismissed, second.already_dismissed, second.not_found) == (0, 1, 0)
    assert first.success is True


def test_dismissed_log_leaves_unread_but_stays_in_audit_listing(db, admin, detected_logs):
    target = detected_logs[0]
    dismiss_logs(db, [target.id], admin.id)

    unread_ids = {log.id for log in list_unread_logs(db, admin.id)}
    all_ids = {log.id for log in list_permission_logs(db)}

    assert target.id not in unread_ids
    assert len(unread_ids) == 1
    assert target.id in all_ids


def test_dismissal_is_per_admin(db, admin, detected_logs):
    other = User(username="other-admin", password_hash="x", role=UserRole.ADMIN, is_active=True)
    db.add(other)
    db.commit()

    dismiss_logs(db, [log.id for log in detected_logs], admin.id)

    assert list_unread_logs(db, admin.id) == []
    assert len(list_unread_logs(db, other.id)) == 2


def test_unknown_ids_count_as_not_found(db, admin, detected_logs):
    result = dismiss_logs(db, [uuid4(), detected_logs[0].id], admin.id)
    assert (result.dismissed, result.already_dismissed, result.not_found) == (1, 0, 1)


def test_empty_ids_are_rejected(db, admin):
    with pytest.raises(WikiValidationError):
        dismiss_logs(db, [], admin.id)


def test_resolved_filter(db, detected_logs):
    run_permission_check(db, StaticDirectoryProvider(department_ids=["dept-a"]))

    resolved = list_permission_logs(db, resolved=True)
    unresolved = list_permission_logs(db, resolved=False)

    assert [log.invalid_id for log in resolved] == ["dept-a"]
    assert [log.invalid_id for log in unresolved] == ["dept-b"]
    assert len(list_permission_logs(db)) == 2


def test_concurrent_dismissal_counts_already_dismissed(db, admin, detected_logs, monkeypatch):
    target = detected_logs[0]
    dismiss_logs(db, [target.id], admin.id)

    real_execute = db.execute

    def execute_missing_existing_dismissal(stmt, *args, **kwargs):
        # the other request's row is committed after this check ran
        if DismissedPermissionLog.__table__ in stmt.get_final_froms():
            stmt = select(DismissedPermissionLog.id).where(false())
        return real_execute(stmt, *args, **kwargs)

    monkeypatch.setattr(db, "execute", execute_missing_existing_dismissal)
    result = dismiss_logs(db, [target.id], admin.id)
    monkeypatch.undo()

    assert (result.dismissed, result.already_dismissed, result.not_found) == (0, 1, 0)
    count = db.execute(
        select(func.count()).select_from(DismissedPermissionLog).where(
            DismissedPermissionLog.permission_log_id == target.id
        )
    ).scalar_one()
    assert count == 1
