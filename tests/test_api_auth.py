import re
from urllib.parse import urlsplit

from api import create_app
from api.config import TestingConfig
from models.audit_log import AuditAction
from services.email_service import EmailService
from tests.conftest import PASSWORD

API = "/api/v1"


class _Capture:
    """Dispatcher that keeps submitted (fn, *args) instead of running them."""

    def __init__(self, sink):
        self.sink = sink

    def submit(self, fn, *args, **kwargs):
        self.sink.append(args)
        return True


def _register(client, email="a@x.com", password=PASSWORD):
    return client.post(
        f"{API}/auth/register",
        json={"email": email, "password": password, "first_name": "Ada", "last_name": "Byron"},
    )


def _verified(client, mailer, email="a@x.com"):
    _register(client, email)
    client.get(f"{API}/auth/verify-email", query_string={"token": mailer.last_token("verification")})


def _login(client, email="a@x.com", password=PASSWORD, **kwargs):
    return client.post(f"{API}/auth/login", json={"email": email, "password": password}, **kwargs)


def test_root_and_health(client):
    assert client.get("/").status_code == 200
    resp = client.get(f"{API}/health")
    assert resp.status_code == 200
    assert resp.get_json()["database"] == "ok"


def test_register(client):
    resp = _register(client, email="New@X.com")
    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["email"] == "new@x.com"
    assert data["status"] == "INACTIVE"
    assert data["email_verified"] is False
    assert data["roles"] == ["USER"]
    assert data["primary_role"] == "USER"
    assert "password" not in data and "password_hash" not in data


def test_register_duplicate_is_409(client):
    _register(client)
    resp = _register(client, email="A@x.com")
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "CONFLICT"


def test_register_validation_errors(client):
    resp = client.post(f"{API}/auth/register", json={"email": "not-an-email", "password": "short"})
    assert resp.status_code == 422
    body = resp.get_json()
    assert body["error"] == "VALIDATION_ERROR"
    assert set(body["details"]) >= {"email", "password", "first_name"}


def test_verify_email_via_get_and_post(client, mailer):
    _register(client)
    token = mailer.last_token("verification")

    resp = client.get(f"{API}/auth/verify-email", query_string={"token": token})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["status"] == "ACTIVE"

    resp = client.post(f"{API}/auth/verify-email", json={"token": token})
    assert resp.status_code == 404


def test_verify_email_missing_token_is_422(client):
    assert client.get(f"{API}/auth/verify-email").status_code == 422


def test_resend_verification(client, mailer):
    _register(client)
    resp = client.post(f"{API}/auth/resend-verification", json={"email": "a@x.com"})
    assert resp.status_code == 202
    assert len(mailer.of_kind("verification")) == 2


def test_login_before_verification_is_403(client):
    _register(client)
    resp = _login(client)
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "FORBIDDEN"


def test_login_bad_credentials_is_401(client, mailer):
    _verified(client, mailer)
    resp = _login(client, password="wrong-password")
    assert resp.status_code == 401
    assert resp.get_json()["message"] == "Invalid email or password"


def test_login_records_client_ip(client, mailer, audit_rows):
    _verified(client, mailer)
    resp = _login(client, headers={"User-Agent": "pytest-client"})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == 900
    assert body["access_token"] and body["refresh_token"]
    assert body["user"]["email"] == "a@x.com"

    row = audit_rows(AuditAction.LOGIN)[0]
    assert (row.ip_address, row.user_agent) == ("127.0.0.1", "pytest-client")


def test_forwarded_for_ignored_without_trusted_proxy(client, mailer, audit_rows):
    _verified(client, mailer)
    assert _login(client, headers={"X-Forwarded-For": "203.0.113.7"}).status_code == 200
    assert audit_rows(AuditAction.LOGIN)[0].ip_address == "127.0.0.1"


def test_forwarded_for_honoured_behind_trusted_proxy(monkeypatch, services, mailer, audit_rows):
    monkeypatch.setattr(TestingConfig, "TRUSTED_PROXIES", 1)
    client = create_app("testing", services=services).test_client()
    _verified(client, mailer)

    # only the hop appended by the trusted proxy counts; the client-supplied prefix is ignored
    resp = _login(client, headers={"X-Forwarded-For": "198.51.100.9, 203.0.113.7"})
    assert resp.status_code == 200
    assert audit_rows(AuditAction.LOGIN)[0].ip_address == "203.0.113.7"


def test_auth_routes_are_mounted_under_auth_prefix(app):
    rules = {rule.rule for rule in app.url_map.iter_rules()}
    for path in ("register", "verify-email", "login", "refresh", "logout", "forgot-password", "reset-password"):
        assert f"{API}/auth/{path}" in rules
        assert f"{API}/{path}" not in rules


def test_verification_email_link_reaches_verify_endpoint(client, mailer):
    _register(client)
    token = mailer.last_token("verification")

    sent = []
    link_mailer = EmailService(_Capture(sent), api_url="http://localhost")
    link_mailer.send_verification_email("a@x.com", token, "Ada")
    url = re.search(r'href="([^"]+)"', sent[0][2]).group(1)
    parts = urlsplit(url)

    resp = client.get(parts.path, query_string=parts.query)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["status"] == "ACTIVE"


def test_refresh_logout_flow(client, mailer):
    _verified(client, mailer)
    tokens = _login(client).get_json()

    resp = client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 200
    assert resp.get_json()["user"]["id"] == tokens["user"]["id"]

    assert client.post(f"{API}/auth/logout", json={"refresh_token": tokens["refresh_token"]}).status_code == 204
    assert client.post(f"{API}/auth/logout", json={"refresh_token": tokens["refresh_token"]}).status_code == 204

    resp = client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 401


def test_second_login_invalidates_first_refresh_token(client, mailer):
    _verified(client, mailer)
    first = _login(client).get_json()
    _login(client)
    resp = client.post(f"{API}/auth/refresh", json={"refresh_token": first["refresh_token"]})
    assert resp.status_code == 401


def test_forgot_and_reset_password(client, mailer):
    _verified(client, mailer)
    old = _login(client).get_json()

    assert client.post(f"{API}/auth/forgot-password", json={"email": "a@x.com"}).status_code == 202
    token = mailer.last_token("reset")

    resp = client.post(f"{API}/auth/reset-password", json={"token": token, "new_password": "brand-new-password"})
    assert resp.status_code == 200
    assert client.post(f"{API}/auth/refresh", json={"refresh_token": old["refresh_token"]}).status_code == 401
    assert _login(client, password="brand-new-password").status_code == 200


def test_forgot_password_unknown_email_is_404(client):
    resp = client.post(f"{API}/auth/forgot-password", json={"email": "ghost@x.com"})
    assert resp.status_code == 404


def test_reset_password_short_password_is_422(client):
    resp = client.post(f"{API}/auth/reset-password", json={"token": "t", "new_password": "short"})
    assert resp.status_code == 422
    assert "new_password" in resp.get_json()["details"]
