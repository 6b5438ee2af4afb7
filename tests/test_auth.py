"""认证接口的集成测试用例。"""

import uuid

from fastapi.testclient import TestClient


def _username(prefix: str = "tester") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


def test_register_user_success(client: TestClient):
    """注册流程：应成功创建新用户并返回基础信息。"""
    username = _username()
    response = client.post(
        "/api/v1/auth/register",
        json={"username": username, "password": "tester123", "email": f"{username}@example.com"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["code"] == 200
    assert payload["msg"] == "注册成功"
    assert payload["data"]["username"] == username
    assert payload["data"]["email"] == f"{username}@example.com"


def test_register_user_duplicate_username(client: TestClient):
    """注册流程：重复用户名时应返回 409 冲突。"""
    username = _username("duplicate")
    client.post("/api/v1/auth/register", json={"username": username, "password": "tester123"})
    response = client.post("/api/v1/auth/register", json={"username": username, "password": "tester123"})

    assert response.status_code == 409
    payload = response.json()
    assert payload["code"] == 409
    assert payload["msg"] == "用户名已存在"


def test_login_success(client: TestClient):
    """登录流程：正确凭证应返回访问令牌，并同时写入响应头。"""
    response = client.post(
        "/api/v1/auth/login",
        json={"username": "admin", "password": "admin123"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["code"] == 200
    assert payload["data"]["token_type"] == "bearer"
    assert payload["data"]["access_token"]
    assert response.headers["X-Access-Token"] == payload["data"]["access_token"]


def test_login_invalid_credentials(client: TestClient):
    """登录流程：错误密码应提示认证失败。"""
    response = client.post(
        "/api/v1/auth/login",
        json={"username": "admin", "password": "wrongpassword"},
    )
    assert response.status_code == 401
    payload = response.json()
    assert payload["code"] == 401
    assert payload["msg"] == "用户名或密码错误"


def test_me_refreshes_token(client: TestClient, auth_headers):
    """已认证请求：返回当前用户，并在 meta 与响应头中下发续期令牌。"""
    response = client.get("/api/v1/auth/me", headers=auth_headers())

    assert response.status_code == 200
    payload = response.json()
    assert payload["data"]["username"].startswith("owner_")
    refreshed = payload["meta"]["access_token"]
    assert refreshed
    assert response.headers["X-Access-Token"] == refreshed


def test_protected_route_requires_token(client: TestClient):
    response = client.get("/api/v1/datarooms")
    assert response.status_code == 401
    assert response.json()["msg"] == "缺少认证信息"

    response = client.get("/api/v1/datarooms", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_logout_invalidates_session(client: TestClient, auth_headers):
    headers = auth_headers()
    assert client.post("/api/v1/auth/logout", headers=headers).status_code == 200
    assert client.get("/api/v1/auth/me", headers=headers).status_code == 401
