from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.core.database import Base
from app.core.exceptions import EmailDeliveryError
from app.core.security import PasswordHasher, TokenCodec
from app.services.account_service import AccountService
from app.services.audit_service import AuditService
from app.services.credential_store import CredentialStore
from app.services.refresh_token_ledger import RefreshTokenLedger
from app.services.session_service import SessionService


class RecordingMailer:
    """Stands in for EmailService; keeps what would have been sent."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send(self, to, template, data):
        if self.fail:
            raise EmailDeliveryError("smtp down")
        self.sent.append({"to": to, "template": template, "data": dict(data)})

    def last(self, template):
        matches = [m for m in self.sent if m["template"] == template]
        return matches[-1] if matches else None


class QueuedDispatcher:
    """Collects background mail jobs so tests can tell when they run."""

    def __init__(self):
        self.jobs = []

    def __call__(self, func, *args, **kwargs):
        self.jobs.append((func, args, kwargs))

    def run_all(self):
        jobs, self.jobs = self.jobs, []
        for func, args, kwargs in jobs:
            func(*args, **kwargs)


def _make_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    return SessionLocal()


@pytest.fixture
def db():
    session = _make_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return Settings(FRONTEND_URL="http://frontend.test", SMTP_HOST="")


@pytest.fixture
def hasher():
    # Minimum bcrypt cost keeps the suite fast.
    return PasswordHasher(rounds=4)


@pytest.fixture
def codec():
    return TokenCodec(
        secret_key="test-secret-key-with-enough-length-0123456789",
        access_token_ttl=timedelta(hours=1),
    )


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def dispatcher():
    return QueuedDispatcher()


@pytest.fixture
def store(db):
    return CredentialStore(db)


@pytest.fixture
def ledger(db):
    return RefreshTokenLedger(db)


@pytest.fixture
def audit(db):
    return AuditService(db)


@pytest.fixture
def accounts(store, hasher, codec, mailer, settings, dispatcher, audit, ledger):
    return AccountService(
        store,
        hasher=hasher,
        codec=codec,
        mailer=mailer,
        settings=settings,
        dispatch=dispatcher,
        audit=audit,
        ledger=ledger,
    )


@pytest.fixture
def sessions(store, ledger, codec, hasher, accounts, audit):
    return SessionService(store, ledger, codec=codec, hasher=hasher, accounts=accounts, audit=audit)


@pytest.fixture
def make_user(store, hasher):
    def _make_user(
        email="alice@example.com",
        password="secret1",
        *,
        verified=True,
        active=True,
        role="user",
    ):
        user = store.create_user(
            first_name="Alice",
            last_name="Liddell",
            email=email,
            password_hash=hasher.hash(password),
            role=role,
            email_verified=verified,
        )
        if not active:
            user.is_active = False
            store.save(user)
        return user

    return _make_user
