import pytest
from sqlalchemy.exc import IntegrityError

from models.notification import Notification, NotificationStatus
from models.user import User
from utils.security import hash_password, verify_password


def _user(email="a@x.com"):
    return User(email=email, password_hash=hash_password("secret-password"), first_name="Ada")


def test_user_has_no_plaintext_password_attribute():
    assert "password" not in vars(User)
    user = _user()
    assert verify_password("secret-password", user.password_hash)


def test_email_unique_only_among_live_users(storage):
    with storage.transaction() as session:
        first = _user()
        session.add(first)
    with storage.transaction() as session:
        first.soft_delete()
        session.add(first)
    with storage.transaction() as session:
        session.add(_user())

    with pytest.raises(IntegrityError):
        with storage.transaction() as session:
            session.add(_user())


def test_mark_as_read_sets_read_at_once():
    notification = Notification(user_id="u", title="t", body="b", status=NotificationStatus.UNREAD)
    notification.mark_as_read()
    first_read = notification.read_at
    notification.mark_as_read()
    assert notification.is_read
    assert notification.read_at == first_read
