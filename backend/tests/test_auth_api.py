import pytest
from fastapi.testclient import TestClient

from app.api import deps
from app.core.database import get_db
from app.core.security import PasswordHasher
from app.main import app
from app.services.rate_limiter import rate_limiter
from tests.conftest import RecordingMailer

AUTH = "/api/v1/auth"


@pytest.fixture
def api_mailer():
    return RecordingMailer()


@pytest.fixture
def client(db, api_mailer):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_email_service] = lambda: api_mailer
    app.dependency_overrides[deps.get_password_hasher] = lambda: PasswordHasher(rounds=4)
    rate_limiter.reset()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        rate_limiter.reset()


def _register(client, email="carol@example.com", password="secret1"):
    return client.post(
        f"{AUTH}/register",
        json={"firstName": "Carol", "lastName": "Jones", "email": email, "password": password},
    )


def _login(client, email="carol@example.com", password="secret1"):
    return client.post(f"{AUTH}/login", json={"email": email, "password": password})


def _verify_latest(client, api_mailer):
    token = api_mailer.last("verify_email")["data"]["token"]
    return client.get(f"{AUTH}/verify-email/{token}")


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def logged_in(client, api_mailer):
    _register(client)
    _verify_latest(client, api_mailer)
    return _login(client).json()


def test_register_verify_login_flow(client, api_mailer):
    response = _register(client)
    assert response.status_code == 201
    body = response.json()
    assert body["user"]["emailVerified"] is False
    assert body["token"]
    assert "passwordHash" not in body["user"]
    assert "emailVerificationToken" not in body["user"]
    assert body["emailSent"] is True
    assert api_mailer.last("verify_email")["to"] == "carol@example.com"

    blocked = _login(client)
    assert blocked.status_code == 401
    assert blocked.json()["success"] is False
    verify_mails = [m for m in api_mailer.sent if m["template"] == "verify_email"]
    assert len(verify_mails) == 2
    assert verify_mails[0]["data"]["token"] != verify_mails[1]["data"]["token"]

    assert _verify_latest(client, api_mailer).status_code == 200

    ok = _login(client)
    assert ok.status_code == 200
    data = ok.json()
    assert data["accessToken"]
    assert data["refreshToken"]
    assert data["tokenType"] == "bearer"
    assert data["user"]["emailVerified"] is True
    assert data["user"]["lastLogin"] is not None


def test_register_reports_undelivered_verification_email(client, api_mailer):
    api_mailer.fail = True
    response = _register(client)

    assert response.status_code == 201
    body = response.json()
    assert body["emailSent"] is False
    assert "could not be sent" in body["message"]

    # The account exists; a resend delivers a usable token once mail works again.
    api_mailer.fail = False
    client.post(f"{AUTH}/resend-verification-email", json={"email": "carol@example.com"})
    assert _verify_latest(client, api_mailer).status_code == 200


def test_duplicate_registration(client):
    assert _register(client).status_code == 201
    response = _register(client)
    assert response.status_code == 400
    assert response.json()["error"] == "Email already in use"


def test_verify_email_with_unknown_token(client):
    response = client.get(f"{AUTH}/verify-email/{'0' * 40}")
    assert response.status_code == 400


def test_wrong_password_and_unknown_email_are_indistinguishable(client, logged_in):
    unknown = _login(client, email="ghost@example.com")
    wrong = _login(client, password="wrong-password")
    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json()["error"] == wrong.json()["error"]


@pytest.mark.parametrize("path", ["resend-verification-email", "request-password-reset"])
def test_email_endpoints_do_not_reveal_accounts(client, logged_in, path):
    known = client.post(f"{AUTH}/{path}", json={"email": "carol@example.com"})
    unknown = client.post(f"{AUTH}/{path}", json={"email": "nonexistent@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.content == unknown.content


def test_refresh_token_issues_new_access_tokens(client, logged_in):
    first = client.post(f"{AUTH}/refresh-token", json={"refreshToken": logged_in["refreshToken"]})
    second = client.post(f"{AUTH}/refresh-token", json={"refreshToken": logged_in["refreshToken"]})
    assert first.status_code == second.status_code == 200
    assert first.json()["accessToken"] != second.json()["accessToken"]

    me = client.get(f"{AUTH}/me", headers=_bearer(first.json()["accessToken"]))
    assert me.status_code == 200
    assert me.json()["email"] == "carol@example.com"


def test_refresh_after_logout_is_rejected_generically(client, logged_in):
    refresh = logged_in["refreshToken"]
    assert client.post(f"{AUTH}/logout", json={"refreshToken": refresh}).status_code == 200

    revoked = client.post(f"{AUTH}/refresh-token", json={"refreshToken": refresh})
    unknown = client.post(f"{AUTH}/refresh-token", json={"refreshToken": "a" * 80})
    assert revoked.status_code == unknown.status_code == 401
    assert revoked.json()["error"] == unknown.json()["error"]


def test_logout_without_token(client):
    response = client.post(f"{AUTH}/logout", json={})
    assert response.status_code == 400


def test_logout_all_requires_bearer(client):
    assert client.post(f"{AUTH}/logout-all").status_code == 401


def test_logout_all_revokes_every_session(client, logged_in):
    other = _login(client).json()
    response = client.post(f"{AUTH}/logout-all", headers=_bearer(logged_in["accessToken"]))
    assert response.status_code == 200

    for session in (logged_in, other):
        refreshed = client.post(f"{AUTH}/refresh-token", json={"refreshToken": session["refreshToken"]})
        assert refreshed.status_code == 401


def test_registration_token_is_not_a_bearer_credential(client):
    token = _register(client).json()["token"]
    assert client.get(f"{AUTH}/me", headers=_bearer(token)).status_code == 401


def test_password_reset_flow(client, logged_in, api_mailer):
    client.post(f"{AUTH}/request-password-reset", json={"email": "carol@example.com"})
    token = api_mailer.last("password_reset")["data"]["token"]

    reset = client.post(f"{AUTH}/reset-password", json={"token": token, "newPassword": "brandnew1"})
    assert reset.status_code == 200
    again = client.post(f"{AUTH}/reset-password", json={"token": token, "newPassword": "brandnew2"})
    assert again.status_code == 400

    assert _login(client, password="secret1").status_code == 401
    assert _login(client, password="brandnew1").status_code == 200


def test_change_password(client, logged_in, api_mailer):
    headers = _bearer(logged_in["accessToken"])
    wrong = client.post(
        f"{AUTH}/change-password",
        json={"currentPassword": "nope-nope", "newPassword": "changed1"},
        headers=headers,
    )
    assert wrong.status_code == 401

    ok = client.post(
        f"{AUTH}/change-password",
        json={"currentPassword": "secret1", "newPassword": "changed1"},
        headers=headers,
    )
    assert ok.status_code == 200
    assert api_mailer.last("password_changed")["to"] == "carol@example.com"
    assert _login(client, password="changed1").status_code == 200


def test_update_profile_keeps_omitted_fields(client, logged_in):
    response = client.put(
        f"{AUTH}/profile",
        json={"firstName": "Caroline"},
        headers=_bearer(logged_in["accessToken"]),
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["firstName"] == "Caroline"
    assert data["lastName"] == "Jones"


def test_validation_errors_use_error_envelope(client):
    response = client.post(f"{AUTH}/login", json={"email": "not-an-email", "password": "x"})
    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Validation failed"
    fields = {e["field"] for e in body["details"]["errors"]}
    assert any(field.endswith("email") for field in fields)


def test_login_is_rate_limited(client, logged_in):
    rate_limiter.reset()
    statuses = [_login(client, password="wrong-password").status_code for _ in range(11)]
    assert statuses[:10] == [401] * 10
    assert statuses[10] == 429


def test_admin_endpoints_require_admin(client, logged_in, store, hasher):
    headers = _bearer(logged_in["accessToken"])
    assert client.post("/api/v1/admin/tokens/sweep", headers=headers).status_code == 403

    store.create_user(
        first_name="Ada",
        last_name="Admin",
        email="admin@example.com",
        password_hash=hasher.hash("adminpass"),
        role="admin",
        email_verified=True,
    )
    admin = _login(client, email="admin@example.com", password="adminpass").json()
    client.post(f"{AUTH}/logout", json={"refreshToken": logged_in["refreshToken"]})

    swept = client.post("/api/v1/admin/tokens/sweep", headers=_bearer(admin["accessToken"]))
    assert swept.status_code == 200
    assert swept.json()["deleted"] == 1

    events = client.get("/api/v1/admin/audit-events", headers=_bearer(admin["accessToken"]))
    assert events.status_code == 200
    actions = [e["action"] for e in events.json()]
    assert "admin.tokens_swept" in actions
    assert "auth.login" in actions
