"""节点变更服务测试：直接调用服务层，使用内存 blob 存储观察副作用。"""

import pytest
from sqlalchemy.exc import OperationalError

from app.packages.dataroom.core.exceptions import (
    InvalidNameError,
    NameConflictError,
    NotFoundError,
    PartialAccessDeniedError,
)
from app.packages.dataroom.crud.nodes import node_crud
from app.packages.dataroom.services.node_service import UploadItem, node_service


def _dataroom(db, user) -> str:
    return node_service.create_dataroom(db, user=user, name="Deal Room")["data"]["id"]


def _folder(db, user, dataroom_id, name, parent_id=None) -> str:
    resp = node_service.create_folder(db, user=user, dataroom_id=dataroom_id, name=name, parent_id=parent_id)
    return resp["data"]["id"]


def _upload(db, user, storage, dataroom_id, *names, parent_id=None, size=16):
    items = [UploadItem(filename=name, content=b"x" * size, content_type="text/plain") for name in names]
    return node_service.upload_files(
        db, user=user, storage=storage, dataroom_id=dataroom_id, files=items, parent_id=parent_id
    )["data"]


def test_list_datarooms_creates_default(db, make_user):
    user = make_user()
    first = node_service.list_datarooms(db, user=user)["data"]
    assert [room["name"] for room in first] == ["Data Room"]
    second = node_service.list_datarooms(db, user=user)["data"]
    assert [room["id"] for room in second] == [first[0]["id"]]


def test_create_folder_rejects_case_insensitive_duplicate(db, make_user):
    user = make_user()
    room = _dataroom(db, user)
    _folder(db, user, room, "Contracts")
    with pytest.raises(NameConflictError):
        _folder(db, user, room, "  contracts ")


def test_create_folder_rejects_non_ascii_case_variant(db, make_user):
    user = make_user()
    room = _dataroom(db, user)
    _folder(db, user, room, "Été")
    with pytest.raises(NameConflictError):
        _folder(db, user, room, "été")
    with pytest.raises(NameConflictError):
        _folder(db, user, room, "ÉTÉ")


def test_same_name_allowed_under_different_parents(db, make_user):
    user = make_user()
    room = _dataroom(db, user)
    a = _folder(db, user, room, "A")
    b = _folder(db, user, room, "B")
    assert _folder(db, user, room, "Docs", parent_id=a) != _folder(db, user, room, "Docs", parent_id=b)


def test_create_folder_validates_name_and_parent(db, make_user, memory_storage):
    user = make_user()
    room = _dataroom(db, user)
    with pytest.raises(InvalidNameError):
        _folder(db, user, room, "   ")
    with pytest.raises(InvalidNameError):
        _folder(db, user, room, "a/b")
    file_id = _upload(db, user, memory_storage, room, "note.txt")["uploaded"][0]["id"]
    with pytest.raises(NotFoundError):
        _folder(db, user, room, "Inside file", parent_id=file_id)


def test_folder_in_foreign_dataroom_is_not_found(db, make_user):
    owner = make_user("owner")
    intruder = make_user("intruder")
    room = _dataroom(db, owner)
    with pytest.raises(NotFoundError):
        _folder(db, intruder, room, "Sneaky")


def test_upload_batch_partial_success_on_size(db, make_user, memory_storage):
    user = make_user()
    room = _dataroom(db, user)
    items = [
        UploadItem(filename="file1.txt", content=b"a" * 1024),
        UploadItem(filename="file2.bin", content=b"b" * 6_000_000),
        UploadItem(filename="file3.txt", content=b"c" * 2048),
    ]
    data = node_service.upload_files(db, user=user, storage=memory_storage, dataroom_id=room, files=items)["data"]

    assert [row["name"] for row in data["uploaded"]] == ["file1.txt", "file3.txt"]
    assert len(data["conflicts"]) == 1
    conflict = data["conflicts"][0]
    assert conflict["name"] == "file2.bin"
    assert conflict["type"] == "size"
    assert "5MB" in conflict["reason"]
    assert conflict["code"] == 413
    assert len(memory_storage.blobs) == 2


def test_upload_name_conflict_suggests_free_name(db, make_user, memory_storage):
    user = make_user()
    room = _dataroom(db, user)
    _upload(db, user, memory_storage, room, "report.pdf", "report (1).pdf")
    data = _upload(db, user, memory_storage, room, "REPORT.pdf", "other.pdf")

    assert [row["name"] for row in data["uploaded"]] == ["other.pdf"]
    conflict = data["conflicts"][0]
    assert conflict["type"] == "name"
    assert conflict["existing"] is True
    assert conflict["suggestedName"] == "REPORT (2).pdf"
    assert conflict["code"] == 409


def test_upload_same_name_twice_in_one_batch(db, make_user, memory_storage):
    user = make_user()
    room = _dataroom(db, user)
    data = _upload(db, user, memory_storage, room, "dup.txt", "dup.txt")

    assert [row["name"] for row in data["uploaded"]] == ["dup.txt"]
    assert [c["name"] for c in data["conflicts"]] == ["dup.txt"]
    assert data["conflicts"][0]["type"] == "name"
    # 第二个文件的 blob 已写入，随后被清理，不留孤儿
    assert len(memory_storage.blobs) == 1
    assert len(memory_storage.deleted) == 1


def test_upload_non_ascii_case_variants_in_one_batch(db, make_user, memory_storage):
    user = make_user()
    room = _dataroom(db, user)
    data = _upload(db, user, memory_storage, room, "Straße.txt", "STRASSE.txt", "Ünïcode.txt")

    assert [row["name"] for row in data["uploaded"]] == ["Straße.txt", "Ünïcode.txt"]
    assert [c["name"] for c in data["conflicts"]] == ["STRASSE.txt"]
    assert data["conflicts"][0]["type"] == "name"
    assert len(memory_storage.blobs) == 2

    again = _upload(db, user, memory_storage, room, "ünïcode.TXT")
    assert again["uploaded"] == []
    assert again["conflicts"][0]["existing"] is True


def test_upload_database_failure_discards_blob_and_continues(db, make_user, memory_storage, monkeypatch):
    user = make_user()
    room = _dataroom(db, user)
    original_create = node_crud.create

    def flaky_create(session, obj_in, **kwargs):
        if obj_in["name"] == "b.txt":
            raise OperationalError("INSERT INTO dataroom_nodes", {}, Exception("database is locked"))
        return original_create(session, obj_in, **kwargs)

    monkeypatch.setattr(node_crud, "create", flaky_create)
    data = _upload(db, user, memory_storage, room, "a.txt", "b.txt", "c.txt")

    assert [row["name"] for row in data["uploaded"]] == ["a.txt", "c.txt"]
    assert [(c["name"], c["type"], c["reason"]) for c in data["conflicts"]] == [("b.txt", "storage", "上传失败")]
    assert len(memory_storage.deleted) == 1
    assert len(memory_storage.blobs) == 2


def test_upload_storage_failure_creates_no_node(db, make_user, storage_factory):
    user = make_user()
    room = _dataroom(db, user)
    failing = storage_factory(fail_save=True)
    data = _upload(db, user, failing, room, "a.txt")
    assert data["uploaded"] == []
    assert data["conflicts"][0]["type"] == "storage"
    assert data["conflicts"][0]["reason"] == "上传失败"
    assert node_crud.list_by_dataroom(db, dataroom_id=room) == []


def test_rename_to_own_name_is_allowed(db, make_user):
    user = make_user()
    room = _dataroom(db, user)
    folder_id = _folder(db, user, room, "Board")
    renamed = node_service.rename_node(db, user=user, node_id=folder_id, name="Board")["data"]
    assert renamed["name"] == "Board"
    # 只改大小写也不算冲突
    assert node_service.rename_node(db, user=user, node_id=folder_id, name="BOARD")["data"]["name"] == "BOARD"


def test_rename_conflicts_with_sibling(db, make_user):
    user = make_user()
    room = _dataroom(db, user)
    _folder(db, user, room, "Alpha")
    beta = _folder(db, user, room, "Beta")
    with pytest.raises(NameConflictError):
        node_service.rename_node(db, user=user, node_id=beta, name="alpha")


def test_rename_rejects_non_ascii_case_variant(db, make_user):
    user = make_user()
    room = _dataroom(db, user)
    _folder(db, user, room, "Äpfel")
    other = _folder(db, user, room, "Birnen")
    with pytest.raises(NameConflictError):
        node_service.rename_node(db, user=user, node_id=other, name="äpfel")
    assert node_crud.get(db, other).name == "Birnen"


def test_rename_requires_ownership(db, make_user):
    owner = make_user("owner")
    other = make_user("other")
    folder_id = _folder(db, owner, _dataroom(db, owner), "Private")
    with pytest.raises(NotFoundError):
        node_service.rename_node(db, user=other, node_id=folder_id, name="Mine")
    with pytest.raises(NotFoundError):
        node_service.rename_node(db, user=owner, node_id="missing", name="x")


def test_delete_folder_cascades_and_removes_every_blob(db, make_user, memory_storage):
    user = make_user()
    room = _dataroom(db, user)
    top = _folder(db, user, room, "Top")
    mid = _folder(db, user, room, "Mid", parent_id=top)
    deep = _folder(db, user, room, "Deep", parent_id=mid)
    files = []
    for parent in (top, mid, deep):
        files += _upload(db, user, memory_storage, room, f"{parent}.txt", parent_id=parent)["uploaded"]
    keep = _upload(db, user, memory_storage, room, "keep.txt")["uploaded"][0]

    assert len(memory_storage.blobs) == 4

    node_service.delete_node(db, user=user, storage=memory_storage, node_id=top)

    remaining = {node.id for node in node_crud.list_by_dataroom(db, dataroom_id=room)}
    assert remaining == {keep["id"]}
    for node_id in [top, mid, deep] + [row["id"] for row in files]:
        assert node_crud.get(db, node_id) is None
    assert len(memory_storage.deleted) == 3
    assert len(memory_storage.blobs) == 1


def test_blob_delete_failure_does_not_block_metadata_delete(db, make_user, storage_factory):
    user = make_user()
    room = _dataroom(db, user)
    storage = storage_factory()
    folder = _folder(db, user, room, "Docs")
    _upload(db, user, storage, room, "a.txt", "b.txt", parent_id=folder)

    storage.fail_delete = True
    node_service.delete_node(db, user=user, storage=storage, node_id=folder)

    assert node_crud.list_by_dataroom(db, dataroom_id=room) == []
    assert len(storage.deleted) == 2


def test_bulk_delete_with_missing_id_deletes_nothing(db, make_user, memory_storage):
    user = make_user()
    room = _dataroom(db, user)
    a = _folder(db, user, room, "a")
    with pytest.raises(PartialAccessDeniedError):
        node_service.bulk_delete(db, user=user, storage=memory_storage, node_ids=[a, "missing-id"])
    assert node_crud.get(db, a) is not None
    assert memory_storage.deleted == []


def test_bulk_delete_rejects_foreign_nodes(db, make_user, memory_storage):
    owner = make_user("owner")
    other = make_user("other")
    mine = _folder(db, owner, _dataroom(db, owner), "Mine")
    theirs = _folder(db, other, _dataroom(db, other), "Theirs")
    with pytest.raises(PartialAccessDeniedError):
        node_service.bulk_delete(db, user=owner, storage=memory_storage, node_ids=[mine, theirs])
    assert node_crud.get(db, theirs) is not None


def test_bulk_delete_unions_overlapping_subtrees(db, make_user, memory_storage):
    user = make_user()
    room = _dataroom(db, user)
    parent = _folder(db, user, room, "Parent")
    child = _folder(db, user, room, "Child", parent_id=parent)
    _upload(db, user, memory_storage, room, "deep.txt", parent_id=child)
    loose = _upload(db, user, memory_storage, room, "loose.txt")["uploaded"][0]["id"]

    data = node_service.bulk_delete(
        db, user=user, storage=memory_storage, node_ids=[parent, child, loose, loose]
    )["data"]

    assert data["deletedCount"] == 3
    assert node_crud.list_by_dataroom(db, dataroom_id=room) == []
    # 重叠子树中的文件只删除一次
    assert len(memory_storage.deleted) == 2
    assert memory_storage.blobs == {}


def test_get_dataroom_view_resolves_path_and_falls_back(db, make_user):
    user = make_user(email="owner@example.com")
    room = _dataroom(db, user)
    fin = _folder(db, user, room, "Finance Team")
    _folder(db, user, room, "2024", parent_id=fin)

    view = node_service.get_dataroom_view(db, user=user, dataroom_id=room, path="/finance%20team/2024")["data"]
    assert view["pathResolved"] is True
    assert [c["name"] for c in view["breadcrumbs"]] == ["Data Room (owner@example.com)", "Finance Team", "2024"]
    assert view["breadcrumbs"][-1]["path"] == "/Finance%20Team/2024"

    fallback = node_service.get_dataroom_view(db, user=user, dataroom_id=room, path="nope")["data"]
    assert fallback["currentFolderId"] == "root"
    assert fallback["pathResolved"] is False


def test_read_file_returns_blob(db, make_user, memory_storage):
    user = make_user()
    room = _dataroom(db, user)
    node_id = _upload(db, user, memory_storage, room, "hello.txt", size=5)["uploaded"][0]["id"]
    payload = node_service.read_file(db, user=user, storage=memory_storage, node_id=node_id)
    assert payload.content == b"xxxxx"
    assert payload.mime_type == "text/plain"
