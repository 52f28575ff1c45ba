"""Shared fixtures: in-memory SQLite storage, synchronous side effects, a recording mailer."""

import pytest

from api import create_app
from api.config import TestingConfig
from models.audit_log import AuditLog
from models.db_storage import DBStorage
from models.user import User, UserStatus
from models.user_role import Role
from services.container import build_services
from utils.security import hash_password

PASSWORD = "correct-horse-battery"


class RecordingMailer:
    """Stands in for EmailService; keeps every message instead of sending it."""

    def __init__(self):
        self.sent = []

    def send_verification_email(self, to, token, name):
        self.sent.append(("verification", to, token))
        return True

    def send_password_reset_email(self, to, token, name):
        self.sent.append(("reset", to, token))
        return True

    def send_welcome_email(self, to, name):
        self.sent.append(("welcome", to, None))
        return True

    def of_kind(self, kind):
        return [m for m in self.sent if m[0] == kind]

    def last_token(self, kind):
        return self.of_kind(kind)[-1][2]


def config_dict(**overrides):
    config = {key: getattr(TestingConfig, key) for key in dir(TestingConfig) if key.isupper()}
    config.update(overrides)
    return config


@pytest.fixture
def storage():
    db = DBStorage("sqlite://")
    db.reload()
    yield db
    db.dispose()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def services(storage, mailer):
    built = build_services(config_dict(), storage, mailer=mailer)
    yield built
    built.shutdown()


@pytest.fixture
def app(services):
    return create_app("testing", services=services)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(storage):
    """Insert a user directly; active and verified unless told otherwise."""

    def _make(email="user@example.com", password=PASSWORD, roles=(Role.USER,), status=UserStatus.ACTIVE,
              email_verified=True, first_name="Test", last_name="User"):
        with storage.transaction() as session:
            user = User(
                email=email,
                password_hash=hash_password(password),
                first_name=first_name,
                last_name=last_name,
                status=status,
                email_verified=email_verified,
            )
            for role in roles:
                user.add_role(role)
            session.add(user)
        return user

    return _make


@pytest.fixture
def audit_rows(storage):
    """Audit rows, oldest first, read through an independent session."""

    def _rows(action=None):
        session = storage.new_session()
        try:
            query = session.query(AuditLog)
            if action is not None:
                query = query.filter(AuditLog.action == getattr(action, "value", action))
            return query.order_by(AuditLog.created_at).all()
        finally:
            session.close()

    return _rows
