"""Blob 存储后端测试：本地磁盘实现与按配置构建。"""

import pytest

from app.packages.dataroom.core.exceptions import StorageFailureError
from app.packages.dataroom.services.storage_backends import LocalBackend, build_backend


def test_local_backend_save_read_delete(local_storage: LocalBackend):
    handle = local_storage.save(b"hello", owner_id=7, dataroom_id="room", filename="Note.TXT")
    assert handle.startswith("7/room/")
    assert handle.endswith(".txt")
    assert local_storage.read(handle) == b"hello"

    local_storage.delete(handle)
    with pytest.raises(StorageFailureError):
        local_storage.read(handle)


def test_local_backend_handles_are_unique(local_storage: LocalBackend):
    first = local_storage.save(b"1", owner_id=1, dataroom_id="r", filename="same.pdf")
    second = local_storage.save(b"2", owner_id=1, dataroom_id="r", filename="same.pdf")
    assert first != second
    assert local_storage.read(first) == b"1"


def test_local_backend_delete_is_idempotent(local_storage: LocalBackend):
    handle = local_storage.save(b"x", owner_id=1, dataroom_id="r", filename="x.bin")
    local_storage.delete(handle)
    local_storage.delete(handle)


def test_local_backend_rejects_traversal(local_storage: LocalBackend):
    with pytest.raises(StorageFailureError):
        local_storage.read("../../etc/passwd")


def test_build_backend_local(tmp_path):
    backend = build_backend(type="local", local_root_path=tmp_path / "store")
    assert isinstance(backend, LocalBackend)
    assert (tmp_path / "store").is_dir()


def test_build_backend_rejects_incomplete_config(tmp_path):
    with pytest.raises(StorageFailureError):
        build_backend(type="LOCAL")
    with pytest.raises(StorageFailureError):
        build_backend(type="S3", bucket_name="b")
    with pytest.raises(StorageFailureError):
        build_backend(type="FTP", local_root_path=tmp_path)
