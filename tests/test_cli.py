from datetime import timedelta

from models.base_model import utcnow
from models.notification import DeviceToken, Notification
from models.refresh_token import RefreshToken
from models.user import UserStatus
from models.user_role import Role
from tests.conftest import PASSWORD


def test_cleanup_tokens(app, services, storage, make_user):
    user = make_user()
    with storage.transaction() as session:
        rt = services.tokens.create_refresh_token(session, user.id)
        rt.expires_at = utcnow() - timedelta(minutes=1)

    result = app.test_cli_runner().invoke(args=["cleanup-tokens"])

    assert result.exit_code == 0, result.output
    assert "Deleted 1 expired refresh tokens" in result.output
    storage.close()
    assert storage.get_session().query(RefreshToken).count() == 0


def test_create_admin_creates_active_admin(app, services):
    result = app.test_cli_runner().invoke(
        args=["create-admin", "--email", "Root@X.com", "--password", "root-password"]
    )
    assert result.exit_code == 0, result.output
    assert "Admin created: root@x.com" in result.output

    login = services.sessions.login("root@x.com", "root-password")
    assert login.user.role_set == {Role.USER, Role.ADMIN}
    assert login.user.status == UserStatus.ACTIVE


def test_create_admin_promotes_existing_user(app, services, make_user):
    make_user(email="boss@x.com", status=UserStatus.INACTIVE, email_verified=False)
    runner = app.test_cli_runner()

    result = runner.invoke(args=["create-admin", "--email", "boss@x.com", "--password", "ignored-password"])
    assert result.exit_code == 0, result.output
    assert "Admin updated" in result.output

    again = runner.invoke(args=["create-admin", "--email", "boss@x.com", "--password", "ignored-password"])
    assert again.exit_code == 0, again.output

    # password of an existing account is left alone
    login = services.sessions.login("boss@x.com", PASSWORD)
    assert login.user.role_set == {Role.USER, Role.ADMIN}
    assert login.user.email_verified is True


def test_deactivate_device_tokens(app, services, storage, make_user):
    user = make_user()
    services.notifications.register_device_token(user.id, "old")
    services.notifications.register_device_token(user.id, "recent")
    with storage.transaction() as session:
        session.query(DeviceToken).filter(DeviceToken.token == "old").one().last_used_at = utcnow() - timedelta(days=100)

    result = app.test_cli_runner().invoke(args=["deactivate-device-tokens"])

    assert result.exit_code == 0, result.output
    assert "Deactivated 1 stale device tokens" in result.output


def test_cleanup_notifications_with_days_option(app, services, storage, make_user):
    user = make_user()
    old = services.notifications.send_to_user(user.id, "old", "b")
    services.notifications.send_to_user(user.id, "new", "b")
    with storage.transaction() as session:
        session.get(Notification, old.id).created_at = utcnow() - timedelta(days=8)

    runner = app.test_cli_runner()
    assert "Deleted 0 old notifications" in runner.invoke(args=["cleanup-notifications"]).output
    result = runner.invoke(args=["cleanup-notifications", "--days", "7"])

    assert result.exit_code == 0, result.output
    assert "Deleted 1 old notifications" in result.output
    storage.close()
    assert services.notifications.stats(user.id)["total"] == 1
