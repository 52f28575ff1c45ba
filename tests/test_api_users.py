import pytest

from models.user import UserStatus
from models.user_role import Role
from tests.conftest import PASSWORD

API = "/api/v1"


@pytest.fixture
def bearer(services, make_user):
    """Create a user with the given roles and return its Authorization header."""

    def _bearer(email="member@x.com", roles=(Role.USER,)):
        make_user(email=email, roles=roles)
        result = services.sessions.login(email, PASSWORD)
        return {"Authorization": f"Bearer {result.access_token}"}

    return _bearer


@pytest.fixture
def admin(bearer):
    return bearer("admin@x.com", roles=(Role.USER, Role.ADMIN))


def test_me_requires_token(client):
    resp = client.get(f"{API}/users/me")
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "UNAUTHORIZED"


def test_me_rejects_garbage_token(client):
    resp = client.get(f"{API}/users/me", headers={"Authorization": "Bearer not.a.jwt"})
    assert resp.status_code == 401


def test_me(client, bearer):
    resp = client.get(f"{API}/users/me", headers=bearer())
    assert resp.status_code == 200
    assert resp.get_json()["data"]["email"] == "member@x.com"


def test_update_me(client, bearer):
    headers = bearer()
    resp = client.patch(f"{API}/users/me", json={"first_name": "Grace", "bio": "Admiral"}, headers=headers)
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert (data["first_name"], data["bio"]) == ("Grace", "Admiral")


def test_update_me_rejects_invalid_avatar_url(client, bearer):
    resp = client.patch(f"{API}/users/me", json={"avatar_url": "not a url"}, headers=bearer())
    assert resp.status_code == 422


def test_change_password(client, bearer):
    headers = bearer()
    resp = client.post(
        f"{API}/users/me/password",
        json={"current_password": PASSWORD, "new_password": "another-password"},
        headers=headers,
    )
    assert resp.status_code == 204

    resp = client.post(
        f"{API}/users/me/password",
        json={"current_password": PASSWORD, "new_password": "third-password"},
        headers=headers,
    )
    assert resp.status_code == 401


def test_list_users_requires_admin_or_manager(client, bearer):
    assert client.get(f"{API}/users", headers=bearer()).status_code == 403
    manager = bearer("manager@x.com", roles=(Role.MANAGER,))
    assert client.get(f"{API}/users", headers=manager).status_code == 200


def test_list_users_filters_and_meta(client, admin, make_user):
    make_user(email="pending@x.com", status=UserStatus.INACTIVE, email_verified=False)
    resp = client.get(f"{API}/users", query_string={"status": "inactive", "limit": 500}, headers=admin)
    assert resp.status_code == 200
    body = resp.get_json()
    assert [u["email"] for u in body["data"]] == ["pending@x.com"]
    assert body["meta"] == {"page": 1, "limit": 100, "total": 1}


def test_list_users_bad_params(client, admin):
    assert client.get(f"{API}/users", query_string={"page": "x"}, headers=admin).status_code == 400
    assert client.get(f"{API}/users", query_string={"status": "zombie"}, headers=admin).status_code == 400
    assert client.get(f"{API}/users", query_string={"sort": "password_hash"}, headers=admin).status_code == 422


def test_admin_get_and_update_user(client, admin, make_user):
    user = make_user(email="target@x.com")
    resp = client.get(f"{API}/users/{user.id}", headers=admin)
    assert resp.status_code == 200

    resp = client.patch(f"{API}/users/{user.id}", json={"last_name": "Lovelace"}, headers=admin)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["full_name"] == "Test Lovelace"

    assert client.get(f"{API}/users/missing", headers=admin).status_code == 404


def test_manager_cannot_manage_roles(client, bearer, make_user):
    manager = bearer("manager@x.com", roles=(Role.MANAGER,))
    user = make_user(email="target@x.com")
    resp = client.post(f"{API}/users/{user.id}/roles", json={"role": "ADMIN"}, headers=manager)
    assert resp.status_code == 403


def test_role_management(client, admin, make_user):
    user = make_user(email="target@x.com")

    resp = client.post(f"{API}/users/{user.id}/roles", json={"role": "manager"}, headers=admin)
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["roles"] == ["MANAGER", "USER"]
    assert data["primary_role"] == "MANAGER"

    resp = client.post(f"{API}/users/{user.id}/roles", json={"role": "MANAGER"}, headers=admin)
    assert resp.status_code == 409

    resp = client.put(f"{API}/users/{user.id}/roles", json={"roles": ["EMPLOYEE"]}, headers=admin)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["roles"] == ["EMPLOYEE"]

    resp = client.delete(f"{API}/users/{user.id}/roles/EMPLOYEE", headers=admin)
    assert resp.status_code == 409

    resp = client.put(f"{API}/users/{user.id}/roles", json={"roles": []}, headers=admin)
    assert resp.status_code == 422


def test_ban_blocks_existing_access_token(client, admin, services, make_user):
    make_user(email="target@x.com")
    login = services.sessions.login("target@x.com", PASSWORD)
    headers = {"Authorization": f"Bearer {login.access_token}"}
    assert client.get(f"{API}/users/me", headers=headers).status_code == 200

    resp = client.patch(f"{API}/users/{login.user.id}/status", json={"status": "BANNED"}, headers=admin)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["status"] == "BANNED"

    assert client.get(f"{API}/users/me", headers=headers).status_code == 401
    resp = client.post(f"{API}/auth/refresh", json={"refresh_token": login.refresh_token})
    assert resp.status_code == 401


def test_delete_user(client, admin, make_user):
    user = make_user(email="target@x.com")
    assert client.delete(f"{API}/users/{user.id}", headers=admin).status_code == 204
    assert client.get(f"{API}/users/{user.id}", headers=admin).status_code == 404
    assert client.delete(f"{API}/users/{user.id}", headers=admin).status_code == 404
