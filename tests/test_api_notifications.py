import pytest

from models.user_role import Role
from tests.conftest import PASSWORD

API = "/api/v1/notifications"


@pytest.fixture
def login_as(services, make_user):
    """Create a user and return (user, Authorization header)."""

    def _login_as(email="member@x.com", roles=(Role.USER,)):
        user = make_user(email=email, roles=roles)
        result = services.sessions.login(email, PASSWORD)
        return user, {"Authorization": f"Bearer {result.access_token}"}

    return _login_as


def test_notifications_require_token(client):
    assert client.get(API).status_code == 401
    assert client.post(f"{API}/devices", json={"fcm_token": "t"}).status_code == 401


def test_test_notification_then_inbox_flow(client, login_as):
    _, headers = login_as()
    resp = client.post(f"{API}/test", headers=headers)
    assert resp.status_code == 201
    notification_id = resp.get_json()["data"]["id"]

    body = client.get(API, headers=headers).get_json()
    assert body["meta"] == {"page": 1, "limit": 20, "total": 1}
    assert body["data"][0]["status"] == "UNREAD"

    assert client.get(f"{API}/stats", headers=headers).get_json()["data"] == {"unread": 1, "read": 0, "total": 1}

    resp = client.patch(f"{API}/{notification_id}/read", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["status"] == "READ"
    assert client.get(API, query_string={"status": "unread"}, headers=headers).get_json()["meta"]["total"] == 0

    assert client.delete(f"{API}/{notification_id}", headers=headers).status_code == 204
    assert client.get(f"{API}/stats", headers=headers).get_json()["data"]["total"] == 0


def test_list_rejects_unknown_status(client, login_as):
    _, headers = login_as()
    assert client.get(API, query_string={"status": "ARCHIVED"}, headers=headers).status_code == 400


def test_other_users_notification_is_forbidden(client, services, login_as):
    owner, _ = login_as("owner@x.com")
    _, headers = login_as("other@x.com")
    notification = services.notifications.send_to_user(owner.id, "t", "b")

    resp = client.patch(f"{API}/{notification.id}/read", headers=headers)
    assert resp.status_code == 403
    assert client.delete(f"{API}/{notification.id}", headers=headers).status_code == 403
    assert client.delete(f"{API}/missing", headers=headers).status_code == 404


def test_read_all_and_delete_all(client, services, login_as):
    user, headers = login_as()
    for _ in range(2):
        services.notifications.send_to_user(user.id, "t", "b")

    resp = client.patch(f"{API}/read-all", headers=headers)
    assert resp.get_json()["data"]["updated"] == 2
    assert client.delete(API, headers=headers).status_code == 204
    assert client.get(f"{API}/stats", headers=headers).get_json()["data"]["total"] == 0


def test_device_registration_and_removal(client, services, login_as):
    user, headers = login_as()
    resp = client.post(f"{API}/devices", json={"fcm_token": "tok-1", "device_type": "ios"}, headers=headers)
    assert resp.status_code == 204
    client.post(f"{API}/devices", json={"fcm_token": "tok-2"}, headers=headers)

    assert client.delete(f"{API}/devices", json={"fcm_token": "tok-1"}, headers=headers).status_code == 204
    assert client.delete(f"{API}/devices/all", headers=headers).status_code == 204
    assert services.notifications.remove_all_device_tokens(user.id) == 0


def test_device_registration_requires_token(client, login_as):
    _, headers = login_as()
    resp = client.post(f"{API}/devices", json={"device_type": "ios"}, headers=headers)
    assert resp.status_code == 422
    assert "fcm_token" in resp.get_json()["details"]


def test_settings_roundtrip(client, login_as):
    _, headers = login_as()
    data = client.get(f"{API}/settings", headers=headers).get_json()["data"]
    assert data["push_enabled"] is True

    resp = client.patch(f"{API}/settings", json={"push_enabled": False}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["push_enabled"] is False
    assert resp.get_json()["data"]["email_enabled"] is True

    assert client.patch(f"{API}/settings", json={"sms": True}, headers=headers).status_code == 422


def test_send_and_broadcast_are_admin_only(client, login_as):
    member, member_headers = login_as()
    _, admin_headers = login_as("admin@x.com", roles=(Role.USER, Role.ADMIN))
    payload = {"user_id": member.id, "title": "Hi", "body": "There", "type": "WARNING", "data": {"k": "v"}}

    assert client.post(f"{API}/send", json=payload, headers=member_headers).status_code == 403
    resp = client.post(f"{API}/send", json=payload, headers=admin_headers)
    assert resp.status_code == 201
    assert resp.get_json()["data"]["type"] == "WARNING"
    assert resp.get_json()["data"]["data"] == {"k": "v"}

    assert client.post(f"{API}/broadcast", json={"title": "All", "body": "Hands"}, headers=member_headers).status_code == 403
    resp = client.post(f"{API}/broadcast", json={"title": "All", "body": "Hands"}, headers=admin_headers)
    assert resp.status_code == 202
    assert resp.get_json()["data"]["recipients"] == 2


def test_send_to_unknown_user_is_404(client, login_as):
    _, admin_headers = login_as("admin@x.com", roles=(Role.USER, Role.ADMIN))
    resp = client.post(f"{API}/send", json={"user_id": "missing", "title": "t", "body": "b"}, headers=admin_headers)
    assert resp.status_code == 404
