"""数据室 HTTP 接口的集成测试：从建目录、上传到分享访问的完整流程。"""

from urllib.parse import quote

import pytest
from fastapi.testclient import TestClient

API = "/api/v1"


@pytest.fixture()
def owner(client: TestClient, auth_headers):
    headers = auth_headers()
    response = client.post(f"{API}/datarooms", json={"name": "Deal Room"}, headers=headers)
    assert response.status_code == 200
    return headers, response.json()["data"]["id"]


def _folder(client, headers, room, name, parent_id=None) -> str:
    response = client.post(
        f"{API}/folders",
        json={"name": name, "dataroomId": room, "parentId": parent_id},
        headers=headers,
    )
    assert response.status_code == 200, response.text
    return response.json()["data"]["id"]


def _upload(client, headers, room, files, parent_id=None):
    data = {"dataroomId": room}
    if parent_id:
        data["parentId"] = parent_id
    multipart = [("files", (name, content, "text/plain")) for name, content in files]
    return client.post(f"{API}/files/upload", data=data, files=multipart, headers=headers)


def test_list_datarooms_includes_created_room(client: TestClient, owner):
    headers, room = owner
    response = client.get(f"{API}/datarooms", headers=headers)
    assert response.status_code == 200
    assert room in {item["id"] for item in response.json()["data"]}


def test_folder_conflict_returns_409(client: TestClient, owner):
    headers, room = owner
    _folder(client, headers, room, "Contracts")
    response = client.post(
        f"{API}/folders", json={"name": "CONTRACTS", "dataroomId": room, "parentId": "root"}, headers=headers
    )
    assert response.status_code == 409
    assert response.json()["code"] == 409


def test_other_users_cannot_see_dataroom(client: TestClient, owner, auth_headers):
    _, room = owner
    intruder = auth_headers("intruder")
    assert client.get(f"{API}/datarooms/{room}", headers=intruder).status_code == 404
    response = client.post(f"{API}/folders", json={"name": "x", "dataroomId": room}, headers=intruder)
    assert response.status_code == 404


def test_upload_view_and_download(client: TestClient, owner):
    headers, room = owner
    fin = _folder(client, headers, room, "Finance Team")
    response = _upload(client, headers, room, [("q1.txt", b"quarter one"), ("q2.txt", b"quarter two")], fin)
    assert response.status_code == 200
    body = response.json()
    assert body["msg"] == "上传成功"
    assert [row["name"] for row in body["data"]["uploaded"]] == ["q1.txt", "q2.txt"]
    assert body["data"]["conflicts"] == []
    q1 = body["data"]["uploaded"][0]
    assert q1["parentId"] == fin
    assert q1["size"] == len(b"quarter one")

    view = client.get(f"{API}/datarooms/{room}", params={"path": "/Finance%20Team"}, headers=headers).json()["data"]
    assert view["currentFolderId"] == fin
    assert view["pathResolved"] is True
    assert {node["id"] for node in view["nodes"]} >= {fin, q1["id"]}

    download = client.get(f"{API}/files/{q1['id']}/download", headers=headers)
    assert download.status_code == 200
    assert download.content == b"quarter one"
    assert download.headers["content-disposition"] == "attachment; filename*=UTF-8''q1.txt"

    preview = client.get(f"{API}/files/{q1['id']}/preview", headers=headers)
    assert preview.headers["content-disposition"].startswith("inline")

    assert client.get(f"{API}/files/{q1['id']}/download").status_code == 401


def test_upload_partial_conflicts(client: TestClient, owner):
    headers, room = owner
    _upload(client, headers, room, [("memo.txt", b"v1")])
    response = _upload(client, headers, room, [("Memo.txt", b"v2"), ("new.txt", b"n")])
    assert response.status_code == 200
    body = response.json()
    assert body["msg"] == "上传完成，1 个文件未上传"
    assert [row["name"] for row in body["data"]["uploaded"]] == ["new.txt"]
    conflict = body["data"]["conflicts"][0]
    assert conflict["type"] == "name"
    assert conflict["suggestedName"] == "Memo (1).txt"


def test_oversized_upload_is_reported_without_storing(client: TestClient, owner, local_storage):
    headers, room = owner
    response = _upload(client, headers, room, [("big.bin", b"x" * 6_000_000), ("small.txt", b"ok")])
    assert response.status_code == 200
    body = response.json()["data"]
    assert [row["name"] for row in body["uploaded"]] == ["small.txt"]
    conflict = body["conflicts"][0]
    assert (conflict["name"], conflict["type"], conflict["code"]) == ("big.bin", "size", 413)
    assert conflict["size"] == 6_000_000
    assert "5MB" in conflict["reason"]
    assert len(list(local_storage.root.rglob("*.*"))) == 1


def test_rename_and_delete_folder(client: TestClient, owner, local_storage):
    headers, room = owner
    folder = _folder(client, headers, room, "Drafts")
    file_id = _upload(client, headers, room, [("a.txt", b"a")], folder).json()["data"]["uploaded"][0]["id"]

    renamed = client.patch(f"{API}/nodes/{folder}", json={"name": "Final"}, headers=headers)
    assert renamed.status_code == 200
    assert renamed.json()["data"]["name"] == "Final"

    deleted = client.delete(f"{API}/nodes/{folder}", headers=headers)
    assert deleted.status_code == 200
    assert deleted.json()["data"]["id"] == folder
    assert client.get(f"{API}/files/{file_id}/download", headers=headers).status_code == 404
    assert client.delete(f"{API}/nodes/{folder}", headers=headers).status_code == 404
    assert list(local_storage.root.rglob("*.txt")) == []


def test_bulk_delete_accepts_delete_and_post(client: TestClient, owner):
    headers, room = owner
    a = _folder(client, headers, room, "A")
    b = _folder(client, headers, room, "B")
    c = _folder(client, headers, room, "C")

    response = client.request("DELETE", f"{API}/nodes/bulk-delete", json={"nodeIds": [a, b]}, headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["deletedCount"] == 2

    missing = client.post(f"{API}/nodes/bulk-delete", json={"nodeIds": [c, "nope"]}, headers=headers)
    assert missing.status_code == 404
    view = client.get(f"{API}/datarooms/{room}", headers=headers).json()["data"]
    assert [node["id"] for node in view["nodes"]] == [c]


def test_share_flow_scopes_nodes_and_downloads(client: TestClient, owner):
    headers, room = owner
    fin = _folder(client, headers, room, "Finance")
    legal = _folder(client, headers, room, "Legal")
    inside = _upload(client, headers, room, [("in.txt", b"inside")], fin).json()["data"]["uploaded"][0]["id"]
    outside = _upload(client, headers, room, [("out.txt", b"outside")], legal).json()["data"]["uploaded"][0]["id"]

    created = client.post(f"{API}/shares", json={"dataroomId": room, "folderId": fin}, headers=headers)
    assert created.status_code == 200
    link = created.json()["data"]
    token = link["token"]
    assert link["shareUrl"].endswith(f"/share/{token}")

    shared = client.get(f"{API}/shares/{token}")
    assert shared.status_code == 200
    data = shared.json()["data"]
    assert {node["id"] for node in data["nodes"]} == {fin, inside}
    assert data["anchorId"] == fin

    assert client.get(f"{API}/shares/{token}", params={"path": "/Legal"}).status_code == 404
    assert client.get(f"{API}/files/{inside}/download", params={"token": token}).content == b"inside"
    assert client.get(f"{API}/files/{outside}/download", params={"token": token}).status_code == 404

    listed = client.get(f"{API}/shares", params={"dataroomId": room}, headers=headers).json()["data"]
    assert [item["token"] for item in listed] == [token]

    assert client.delete(f"{API}/shares/{quote(token)}", headers=headers).status_code == 200
    assert client.get(f"{API}/shares/{token}").status_code == 404


def test_unknown_share_token_is_404(client: TestClient):
    response = client.get(f"{API}/shares/unknown-token")
    assert response.status_code == 404
    assert response.json()["msg"] == "分享链接不存在"


def test_request_id_is_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.status_code == 200
    assert response.headers["x-request-id"] == "req-123"
    assert response.json()["data"] == {"status": "healthy"}
    assert client.get("/health").headers["x-request-id"]


def test_validation_error_uses_envelope(client: TestClient, auth_headers):
    response = client.post(f"{API}/nodes/bulk-delete", json={"nodeIds": []}, headers=auth_headers())
    assert response.status_code == 422
    assert response.json()["code"] == 422
