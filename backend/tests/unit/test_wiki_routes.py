import pytest

pytest.importorskip("fastapi.testclient")

from app.core.config import get_settings
from app.services import wiki_permission_sync_service

BASE = "/api/admin/wiki"


def _create_folder(client, name, parent_id=None, **extra):
    resp = client.post(f"{BASE}/folders", json={"name": name, "parentId": parent_id, **extra})
    assert resp.status_code == 201, resp.text
    return resp.json()


def _create_empty_file(client, name, parent_id=None, **extra):
    resp = client.post(f"{BASE}/files/empty", json={"name": name, "parentId": parent_id, **extra})
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_create_folder_uses_camel_case_and_defaults(client):
    folder = _create_folder(client, "공지")

    assert folder["isPublic"] is True
    assert folder["parentId"] is None
    assert folder["depth"] == 0
    assert folder["type"] == "folder"
    assert folder["permissionDepartmentIds"] is None


def test_folder_by_path_scenario(client):
    root = _create_folder(client, "회의록")
    year = _create_folder(client, "2024년", root["id"])
    _create_empty_file(client, "minutes", year["id"])

    resp = client.get(f"{BASE}/folders/by-path", params={"path": "회의록/2024년"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == year["id"]
    assert [child["name"] for child in body["children"]] == ["minutes"]

    assert client.get(f"{BASE}/folders/by-path", params={"path": "회의록/누락"}).status_code == 404
    assert client.get(f"{BASE}/folders/by-path", params={"path": ""}).status_code == 400


def test_malformed_id_and_missing_field_are_bad_requests(client):
    assert client.get(f"{BASE}/folders/not-a-uuid").status_code == 400
    assert client.post(f"{BASE}/folders", json={}).status_code == 400


def test_missing_parent_is_not_found(client):
    resp = client.post(
        f"{BASE}/folders",
        json={"name": "orphan", "parentId": "00000000-0000-0000-0000-000000000000"},
    )
    assert resp.status_code == 404


def test_delete_only_rejects_non_empty_folder(client):
    folder = _create_folder(client, "root")
    doc = _create_empty_file(client, "doc", folder["id"])

    resp = client.delete(f"{BASE}/folders/{folder['id']}/only")
    assert resp.status_code == 400
    assert client.get(f"{BASE}/folders/{folder['id']}").status_code == 200

    assert client.delete(f"{BASE}/files/{doc['id']}").status_code == 200
    resp = client.delete(f"{BASE}/folders/{folder['id']}/only")
    assert resp.status_code == 200
    assert resp.json()["deletedIds"] == [folder["id"]]


def test_move_folder_into_descendant_is_rejected(client):
    a = _create_folder(client, "a")
    b = _create_folder(client, "b", a["id"])

    resp = client.patch(f"{BASE}/folders/{a['id']}/path", json={"parentId": b["id"]})
    assert resp.status_code == 400

    other = _create_folder(client, "other")
    resp = client.patch(f"{BASE}/folders/{b['id']}/path", json={"parentId": other["id"]})
    assert resp.status_code == 200
    assert resp.json()["depth"] == 1


def test_structure_returns_nested_tree(client):
    root = _create_folder(client, "root")
    sub = _create_folder(client, "sub", root["id"])
    _create_empty_file(client, "doc", sub["id"])

    resp = client.get(f"{BASE}/folders/structure", params={"ancestorId": root["id"]})
    assert resp.status_code == 200
    tree = resp.json()
    assert len(tree) == 1
    assert tree[0]["children"][0]["name"] == "sub"
    assert tree[0]["children"][0]["children"][0]["name"] == "doc"


def test_search_files_returns_path(client):
    root = _create_folder(client, "회의록")
    _create_empty_file(client, "weekly minutes", root["id"])

    resp = client.get(f"{BASE}/files/search", params={"query": "minutes"})
    assert resp.status_code == 200
    hits = resp.json()
    assert [hit["path"] for hit in hits] == ["/회의록/weekly minutes"]
    assert [item["name"] for item in hits[0]["breadcrumb"]] == ["회의록", "weekly minutes"]

    assert client.get(f"{BASE}/files/search").status_code == 400


def test_multipart_file_upload_and_replace(client):
    folder = _create_folder(client, "docs")

    resp = client.post(
        f"{BASE}/files",
        data={"name": "guide", "parentId": folder["id"], "title": "Guide", "isPublic": "false"},
        files=[("files", ("guide.txt", b"hello", "text/plain"))],
    )
    assert resp.status_code == 201, resp.text
    created = resp.json()
    assert created["isPublic"] is False
    assert created["attachments"][0]["fileName"] == "guide.txt"
    assert created["attachments"][0]["fileSize"] == 5
    assert "/wiki/" in created["attachments"][0]["fileUrl"]

    resp = client.put(
        f"{BASE}/files/{created['id']}",
        data={"name": "guide v2", "content": "<p>updated</p>"},
        files=[("files", ("v2.txt", b"hello again", "text/plain"))],
    )
    assert resp.status_code == 200, resp.text
    updated = resp.json()
    assert updated["name"] == "guide v2"
    assert [a["fileName"] for a in updated["attachments"]] == ["v2.txt"]


def test_multipart_file_requires_name(client):
    resp = client.post(f"{BASE}/files", data={"title": "no name"})
    assert resp.status_code == 400


def test_effective_permission_and_access_check(client):
    folder = _create_folder(client, "hr")
    client.patch(
        f"{BASE}/folders/{folder['id']}/public",
        json={"isPublic": False, "permissionDepartmentIds": ["dept-1"]},
    )
    doc = _create_empty_file(client, "policy", folder["id"])

    resp = client.get(f"{BASE}/{doc['id']}/effective-permission")
    assert resp.status_code == 200
    body = resp.json()
    assert body["kind"] == "RESTRICTED"
    assert body["departmentIds"] == ["dept-1"]
    assert body["sourceNodeId"] == folder["id"]

    allowed = client.post(f"{BASE}/{doc['id']}/access-check", json={"departmentIds": ["dept-1"]})
    denied = client.post(f"{BASE}/{doc['id']}/access-check", json={"rankId": "rank-1"})
    assert allowed.json()["allowed"] is True
    assert denied.json()["allowed"] is False

    crumbs = client.get(f"{BASE}/{doc['id']}/breadcrumb").json()
    assert [c["name"] for c in crumbs] == ["hr", "policy"]


def test_permission_drift_replace_and_dismiss_flow(client):
    folder = _create_folder(client, "restricted")
    client.patch(
        f"{BASE}/folders/{folder['id']}/public",
        json={"isPublic": False, "permissionDepartmentIds": ["dept-old"]},
    )

    run = client.post(f"{BASE}/permission-validation")
    assert run.status_code == 200
    assert run.json()["detected"] == 1

    unread = client.get(f"{BASE}/permission-logs/unread").json()
    assert len(unread) == 1
    assert unread[0]["invalidId"] == "dept-old"
    assert unread[0]["action"] == "DETECTED"

    first = client.patch(f"{BASE}/permission-logs/dismiss", json={"logIds": [unread[0]["id"]]}).json()
    second = client.patch(f"{BASE}/permission-logs/dismiss", json={"logIds": [unread[0]["id"]]}).json()
    assert first["dismissed"] == 1
    assert second["alreadyDismissed"] == 1
    assert client.get(f"{BASE}/permission-logs/unread").json() == []
    assert len(client.get(f"{BASE}/permission-logs").json()) == 1

    resp = client.patch(
        f"{BASE}/{folder['id']}/replace-permissions",
        json={"departments": [{"oldId": "dept-old", "newId": "dept-1"}], "note": "부서 변경"},
    )
    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "message": "permissions replaced",
        "replacedDepartments": 1,
        "replacedRanks": 0,
        "replacedPositions": 0,
    }

    resolved = client.get(f"{BASE}/permission-logs", params={"resolved": "true"}).json()
    assert any(log["note"] == "부서 변경" and log["resolvedBy"] for log in resolved)
    assert client.get(f"{BASE}/permission-logs", params={"resolved": "false"}).json() == []

    rerun = client.post(f"{BASE}/permission-validation").json()
    assert rerun["detected"] == 0


def test_replace_permissions_on_missing_node_is_not_found(client):
    resp = client.patch(
        f"{BASE}/00000000-0000-0000-0000-000000000000/replace-permissions",
        json={"departments": [{"oldId": "a", "newId": "b"}]},
    )
    assert resp.status_code == 404
    assert client.get(f"{BASE}/permission-logs").json() == []


def test_dismiss_rejects_empty_or_malformed_ids(client):
    assert client.patch(f"{BASE}/permission-logs/dismiss", json={"logIds": []}).status_code == 400
    assert client.patch(f"{BASE}/permission-logs/dismiss", json={"logIds": ["nope"]}).status_code == 400
    assert client.patch(f"{BASE}/permission-logs/dismiss", json={}).status_code == 400


def test_unclassified_folder_on_read_path_queues_revalidation(client, monkeypatch):
    reasons = []
    monkeypatch.setattr(get_settings(), "wiki_permission_revalidate_on_read", True)
    monkeypatch.setattr(
        wiki_permission_sync_service,
        "enqueue_wiki_permission_check",
        lambda reason: reasons.append(reason) or True,
    )

    root = _create_folder(client, "root")
    _create_folder(client, "explicitly-empty", root["id"], isPublic=False, permissionDepartmentIds=[])
    resp = client.get(f"{BASE}/folders/{root['id']}/children")
    assert resp.status_code == 200
    assert reasons == []

    _create_folder(client, "unset", root["id"], isPublic=False)
    resp = client.get(f"{BASE}/folders/{root['id']}/children")
    assert resp.status_code == 200
    assert reasons == ["folder_children"]


def test_read_path_survives_unreachable_broker(client, monkeypatch):
    from app.worker.tasks_wiki_permissions import check_wiki_permissions_task

    sent = []

    def broker_down(**kwargs):
        sent.append(kwargs)
        raise ConnectionError("Error 111 connecting to redis:6379. Connection refused.")

    monkeypatch.setattr(get_settings(), "wiki_permission_revalidate_on_read", True)
    monkeypatch.setattr(check_wiki_permissions_task, "apply_async", broker_down)

    root = _create_folder(client, "root")
    _create_folder(client, "unset", root["id"], isPublic=False)

    resp = client.get(f"{BASE}/folders/{root['id']}/children")
    assert resp.status_code == 200
    assert [child["name"] for child in resp.json()] == ["unset"]
    assert sent == [{"kwargs": {"reason": "folder_children"}, "retry": False, "ignore_result": True}]


def test_unique_constraint_race_is_a_conflict(client, monkeypatch):
    from sqlalchemy.exc import IntegrityError

    from app.services import wiki_tree_service

    def duplicate(*args, **kwargs):
        raise IntegrityError("INSERT INTO wiki_file_systems", {}, Exception("duplicate key"))

    monkeypatch.setattr(wiki_tree_service, "create_folder", duplicate)

    resp = client.post(f"{BASE}/folders", json={"name": "dup"})
    assert resp.status_code == 409
    assert resp.json() == {"detail": "conflicting change, please retry"}
