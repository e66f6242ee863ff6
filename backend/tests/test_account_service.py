from datetime import datetime, timedelta

import pytest

from app.config import Settings
from app.core.exceptions import (
    EmailAlreadyInUseError,
    IncorrectPasswordError,
    InvalidResetTokenError,
    InvalidVerificationTokenError,
    RefreshTokenRevokedError,
    ResourceNotFoundError,
)
from app.services.account_service import (
    PASSWORD_RESET_REQUEST_MESSAGE,
    RESEND_VERIFICATION_MESSAGE,
    AccountService,
)
from tests.conftest import RecordingMailer


def _register(accounts, email="a@x.com", password="secret1"):
    return accounts.register("A", "B", email, password)


class TestRegistration:
    def test_register_creates_unverified_user_with_verification_token(self, accounts, codec):
        registration = _register(accounts)
        user = registration.user

        assert user.role == "user"
        assert user.is_active is True
        assert user.email_verified is False
        assert len(user.email_verification_token) == 40
        assert user.password_hash != "secret1"
        assert codec.decode(registration.token)["id"] == user.id

    def test_register_sends_verification_email_before_returning(self, accounts, mailer, dispatcher):
        registration = _register(accounts)

        assert dispatcher.jobs == []
        sent = mailer.last("verify_email")
        assert sent["to"] == "a@x.com"
        assert sent["data"]["token"] == registration.user.email_verification_token
        assert sent["data"]["verification_url"].startswith("http://frontend.test/verify-email/")
        assert registration.email_sent is True

    def test_register_keeps_user_when_email_fails(
        self, store, hasher, codec, settings, dispatcher
    ):
        accounts = AccountService(
            store, hasher=hasher, codec=codec, mailer=RecordingMailer(fail=True),
            settings=settings, dispatch=dispatcher,
        )
        registration = _register(accounts)
        assert registration.email_sent is False
        assert store.get_by_email("a@x.com") is not None

    def test_duplicate_email_is_rejected(self, accounts):
        _register(accounts)
        with pytest.raises(EmailAlreadyInUseError):
            _register(accounts, email="A@X.com")


class TestEmailVerification:
    def test_verify_email_is_one_shot(self, accounts, mailer, dispatcher):
        token = _register(accounts).user.email_verification_token

        user = accounts.verify_email(token)
        assert user.email_verified is True
        assert user.email_verification_token is None

        with pytest.raises(InvalidVerificationTokenError):
            accounts.verify_email(token)

    def test_verification_success_mail_is_fire_and_forget(self, accounts, mailer, dispatcher):
        token = _register(accounts).user.email_verification_token
        accounts.verify_email(token)

        assert mailer.last("email_verified") is None
        dispatcher.run_all()
        assert mailer.last("email_verified")["to"] == "a@x.com"

    def test_failed_success_mail_does_not_undo_verification(
        self, store, hasher, codec, settings, dispatcher
    ):
        failing = RecordingMailer()
        accounts = AccountService(
            store, hasher=hasher, codec=codec, mailer=failing, settings=settings, dispatch=dispatcher
        )
        token = _register(accounts).user.email_verification_token
        failing.fail = True

        user = accounts.verify_email(token)
        dispatcher.run_all()
        assert store.get_by_id(user.id).email_verified is True

    def test_unknown_verification_token(self, accounts):
        with pytest.raises(InvalidVerificationTokenError):
            accounts.verify_email("deadbeef" * 5)

    def test_resend_verification_answers_identically(self, accounts, make_user, mailer, dispatcher):
        make_user("verified@x.com", verified=True)
        unverified = _register(accounts, email="pending@x.com").user
        old_token = unverified.email_verification_token
        mailer.sent.clear()

        responses = [
            accounts.resend_verification("nobody@x.com"),
            accounts.resend_verification("verified@x.com"),
            accounts.resend_verification("pending@x.com"),
        ]
        dispatcher.run_all()

        assert responses == [RESEND_VERIFICATION_MESSAGE] * 3
        assert [m["to"] for m in mailer.sent] == ["pending@x.com"]
        assert mailer.sent[0]["data"]["token"] != old_token


class TestPasswordReset:
    def test_request_reset_answers_identically(self, accounts, make_user, mailer, dispatcher, store):
        make_user("real@x.com")
        assert accounts.request_password_reset("nonexistent@x.com") == PASSWORD_RESET_REQUEST_MESSAGE
        assert accounts.request_password_reset("real@x.com") == PASSWORD_RESET_REQUEST_MESSAGE

        dispatcher.run_all()
        assert [m["to"] for m in mailer.sent] == ["real@x.com"]
        data = mailer.sent[0]["data"]
        user = store.get_by_email("real@x.com")
        assert data["token"] == user.reset_token
        assert data["reset_url"] == f"http://frontend.test/reset-password/{user.reset_token}"

    def test_reset_token_expires_after_one_hour(self, accounts, make_user, store):
        make_user("real@x.com")
        now = datetime(2026, 3, 1, 9, 0, 0)
        accounts.request_password_reset("real@x.com", now=now)
        user = store.get_by_email("real@x.com")
        assert user.reset_token_expiry.replace(tzinfo=None) == now + timedelta(hours=1)

        with pytest.raises(InvalidResetTokenError):
            accounts.reset_password(user.reset_token, "newpass1", now=now + timedelta(minutes=61))

    def test_reset_password_succeeds_exactly_once(self, accounts, sessions, make_user, store):
        make_user("real@x.com", password="oldpass1")
        accounts.request_password_reset("real@x.com")
        token = store.get_by_email("real@x.com").reset_token

        user = accounts.reset_password(token, "newpass1")
        assert user.reset_token is None
        assert user.reset_token_expiry is None
        assert sessions.login("real@x.com", "newpass1").access_token

        with pytest.raises(InvalidResetTokenError):
            accounts.reset_password(token, "another1")

    def test_unknown_reset_token(self, accounts):
        with pytest.raises(InvalidResetTokenError):
            accounts.reset_password("c" * 40, "newpass1")


class TestChangePassword:
    def test_wrong_current_password(self, accounts, make_user):
        user = make_user()
        with pytest.raises(IncorrectPasswordError):
            accounts.change_password(user.id, "not-it", "newpass1")

    def test_change_password_keeps_sessions_by_default(
        self, accounts, sessions, make_user, hasher, ledger, mailer, dispatcher
    ):
        user = make_user()
        login = sessions.login("alice@example.com", "secret1")

        accounts.change_password(user.id, "secret1", "newpass1")
        dispatcher.run_all()

        assert hasher.verify(user.password_hash, "newpass1")
        assert mailer.last("password_changed")["to"] == "alice@example.com"
        owner, _ = ledger.validate(login.refresh_token)
        assert owner.id == user.id

    def test_change_password_can_revoke_sessions(
        self, store, hasher, codec, mailer, dispatcher, ledger, sessions, make_user
    ):
        accounts = AccountService(
            store, hasher=hasher, codec=codec, mailer=mailer,
            settings=Settings(REVOKE_SESSIONS_ON_PASSWORD_CHANGE=True),
            dispatch=dispatcher, ledger=ledger,
        )
        user = make_user()
        login = sessions.login("alice@example.com", "secret1")

        accounts.change_password(user.id, "secret1", "newpass1")
        with pytest.raises(RefreshTokenRevokedError):
            ledger.validate(login.refresh_token)

    def test_unknown_user(self, accounts):
        with pytest.raises(ResourceNotFoundError):
            accounts.change_password(999, "secret1", "newpass1")


def test_update_profile_keeps_missing_fields(accounts, make_user):
    user = make_user()
    updated = accounts.update_profile(user.id, first_name="Alicia", last_name=None)
    assert updated.first_name == "Alicia"
    assert updated.last_name == "Liddell"
