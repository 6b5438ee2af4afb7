"""测试夹具：为 pytest 提供数据库、blob 存储与客户端的共享配置。"""

import os
import shutil
import tempfile
import uuid
from typing import Callable, Generator, Optional

TEST_ROOT = tempfile.mkdtemp(prefix="dataroom_tests_")
TEST_DB_PATH = os.path.join(TEST_ROOT, "test.db")
TEST_DATABASE_URL = f"sqlite:///{TEST_DB_PATH}"

# 必须在导入应用之前设置，Settings 在首次导入时即被缓存
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["SESSION_BACKEND"] = "memory"
os.environ["LOG_DIR"] = os.path.join(TEST_ROOT, "log")
os.environ["UPLOAD_DIR"] = os.path.join(TEST_ROOT, "uploads")
os.environ["STORAGE_TYPE"] = "LOCAL"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from app.main import app  # noqa: E402
from app.packages.dataroom.core.dependencies import get_db, get_storage  # noqa: E402
from app.packages.dataroom.core.exceptions import StorageFailureError  # noqa: E402
from app.packages.dataroom.core.security import get_password_hash  # noqa: E402
from app.packages.dataroom.db import session as db_session  # noqa: E402
from app.packages.dataroom.db.init_db import init_db  # noqa: E402
from app.packages.dataroom.models.base import Base  # noqa: E402
from app.packages.dataroom.models.user import User  # noqa: E402
from app.packages.dataroom.services.storage_backends import LocalBackend, StorageBackend  # noqa: E402


class MemoryStorage(StorageBackend):
    """内存 blob 存储：记录每次删除调用，可按需让写入或删除失败。"""

    def __init__(self, *, fail_save: bool = False, fail_delete: bool = False) -> None:
        self.blobs: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_save = fail_save
        self.fail_delete = fail_delete

    def save(self, content, *, owner_id, dataroom_id, filename, content_type=None) -> str:
        if self.fail_save:
            raise StorageFailureError("文件写入失败")
        handle = f"{owner_id}/{dataroom_id}/{uuid.uuid4().hex}"
        self.blobs[handle] = content
        return handle

    def read(self, handle: str) -> bytes:
        try:
            return self.blobs[handle]
        except KeyError as exc:
            raise StorageFailureError("文件读取失败") from exc

    def delete(self, handle: str) -> None:
        self.deleted.append(handle)
        if self.fail_delete:
            raise StorageFailureError("文件删除失败")
        self.blobs.pop(handle, None)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database() -> Generator[None, None, None]:
    """创建隔离的 SQLite 测试数据库，并在会话结束后清理。"""
    engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db_session.engine = engine
    db_session.SessionLocal = TestingSessionLocal

    Base.metadata.create_all(bind=engine)
    init_db()
    yield

    engine.dispose()
    shutil.rmtree(TEST_ROOT, ignore_errors=True)


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    """提供给测试用例使用的数据库会话。"""
    session = db_session.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_user(db: Session) -> Callable[..., User]:
    """创建用户名唯一的测试用户，避免会话级数据库中的用例互相干扰。"""

    def _make(prefix: str = "user", email: Optional[str] = None) -> User:
        username = f"{prefix}_{uuid.uuid4().hex[:8]}"
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            hashed_password=get_password_hash("secret123"),
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture()
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture()
def local_storage(tmp_path) -> LocalBackend:
    return LocalBackend(tmp_path / "blobs")


@pytest.fixture()
def client(local_storage: LocalBackend) -> Generator[TestClient, None, None]:
    """构建 FastAPI TestClient，并注入测试专用的数据库与存储依赖。"""

    def override_get_db() -> Generator[Session, None, None]:
        session = db_session.SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: local_storage

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers(client: TestClient) -> Callable[..., dict[str, str]]:
    """注册一个新账号并登录，返回带 Bearer 令牌的请求头。"""

    def _login(prefix: str = "owner") -> dict[str, str]:
        username = f"{prefix}_{uuid.uuid4().hex[:8]}"
        register = client.post(
            "/api/v1/auth/register",
            json={"username": username, "password": "secret123", "email": f"{username}@example.com"},
        )
        assert register.status_code == 200
        login = client.post("/api/v1/auth/login", json={"username": username, "password": "secret123"})
        assert login.status_code == 200
        return {"Authorization": f"Bearer {login.json()['data']['access_token']}"}

    return _login


@pytest.fixture()
def storage_factory() -> Callable[..., MemoryStorage]:
    """按需构造可注入故障的内存存储。"""
    return MemoryStorage
