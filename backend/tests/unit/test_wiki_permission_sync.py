import pytest
from fastapi import BackgroundTasks

from app.core.config import get_settings
from app.services import wiki_permission_sync_service as sync_service
from app.services import wiki_tree_service as tree
from app.worker.tasks_wiki_permissions import check_wiki_permissions_task


@pytest.fixture()
def revalidate_on_read(monkeypatch):
    monkeypatch.setattr(get_settings(), "wiki_permission_revalidate_on_read", True)


def test_unclassified_folder_defers_enqueue_to_background(db, revalidate_on_read, monkeypatch):
    calls = []
    monkeypatch.setattr(sync_service, "enqueue_wiki_permission_check", lambda reason: calls.append(reason))
    folder = tree.create_folder(db, name="unset", is_public=False)
    background_tasks = BackgroundTasks()

    scheduled = sync_service.revalidate_if_unclassified([folder], background_tasks, reason="folder_children")

    assert scheduled is True
    assert calls == []
    assert len(background_tasks.tasks) == 1
    assert background_tasks.tasks[0].args == ("folder_children",)


def test_restricted_or_disabled_reads_schedule_nothing(db, monkeypatch):
    restricted = tree.create_folder(db, name="hr", is_public=False, permission_department_ids=[])
    unset = tree.create_folder(db, name="unset", is_public=False)
    background_tasks = BackgroundTasks()

    monkeypatch.setattr(get_settings(), "wiki_permission_revalidate_on_read", True)
    assert sync_service.revalidate_if_unclassified([restricted], background_tasks, reason="x") is False
    monkeypatch.setattr(get_settings(), "wiki_permission_revalidate_on_read", False)
    assert sync_service.revalidate_if_unclassified([unset], background_tasks, reason="x") is False
    assert background_tasks.tasks == []


def test_enqueue_publishes_once_without_waiting_on_results(monkeypatch):
    sent = []
    monkeypatch.setattr(check_wiki_permissions_task, "apply_async", lambda **kwargs: sent.append(kwargs))

    assert sync_service.enqueue_wiki_permission_check("file_search") is True
    assert sent == [{"kwargs": {"reason": "file_search"}, "retry": False, "ignore_result": True}]


def test_enqueue_swallows_broker_errors(monkeypatch):
    def broker_down(**kwargs):
        raise ConnectionError("Error 111 connecting to redis:6379. Connection refused.")

    monkeypatch.setattr(check_wiki_permissions_task, "apply_async", broker_down)

    assert sync_service.enqueue_wiki_permission_check("folder_structure") is False
