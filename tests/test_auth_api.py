from datetime import datetime, timedelta, timezone

import pytest

from app import redis_client
from app.config import get_settings
from app.main import app as api
from app.services import otp as otp_service
from app.services.otp import OtpAuthenticator
from app.services.otp_store import InMemoryOtpStore
from tests.conftest import RecordingSender, mk_admin, mk_parent

pytestmark = pytest.mark.asyncio

S = get_settings()


async def _send(client, email: str, role: str, **extra):
    return await client.post("/api/auth/send-otp", json={"email": email, "role": role, **extra})


async def test_send_otp_returns_success_and_dev_echo(client, sender):
    r = await _send(client, "new.parent@x.com", "parent")
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["message"]
    # echo is on in the test environment only
    assert body["otp"] == sender.sent[-1][1]


async def test_send_otp_without_echo_flag_hides_code(client, monkeypatch):
    monkeypatch.setattr(S, "OTP_ECHO_IN_RESPONSE", False)
    r = await _send(client, "quiet@x.com", "teacher")
    assert r.status_code == 200
    assert "otp" not in r.json()


@pytest.mark.parametrize("payload", [
    {"role": "parent"},
    {"email": "a@x.com"},
    {"email": "a@x.com", "role": "principal"},
    {"email": "not-an-email", "role": "admin"},
])
async def test_send_otp_validation_errors_are_400(client, sender, payload):
    r = await client.post("/api/auth/send-otp", json=payload)
    assert r.status_code == 400
    assert r.json()["success"] is False
    assert r.json()["message"]
    assert sender.sent == []


async def test_verify_otp_for_unknown_user_returns_null_user(client):
    code = (await _send(client, "nobody@x.com", "parent")).json()["otp"]
    r = await client.post("/api/auth/verify-otp", json={"email": "nobody@x.com", "otp": code})
    assert r.status_code == 200
    assert r.json() == {"success": True, "message": "OTP verified", "user": None}
    assert S.SESSION_COOKIE_NAME not in r.cookies


async def test_verify_otp_resolves_user_and_opens_session(client, db):
    admin = await mk_admin(db, "head@school.org", school_id="SCH_A")
    code = (await _send(client, "Head@School.org", "admin")).json()["otp"]

    r = await client.post("/api/auth/verify-otp", json={"email": "head@school.org", "otp": code})
    assert r.status_code == 200
    user = r.json()["user"]
    assert user == {
        "id": str(admin.id),
        "email": "head@school.org",
        "role": "admin",
        "firstName": "Ada",
        "lastName": "Admin",
        "schoolId": "SCH_A",
    }
    token = r.cookies.get(S.SESSION_COOKIE_NAME)
    assert token

    me = await client.get("/api/auth/me", headers={"Cookie": f"{S.SESSION_COOKIE_NAME}={token}"})
    assert me.status_code == 200
    assert me.json()["user"]["email"] == "head@school.org"


async def test_verify_otp_with_other_role_returns_user_without_session(client, db):
    await mk_parent(db, "mum@x.com")
    code = (await _send(client, "mum@x.com", "teacher")).json()["otp"]

    r = await client.post("/api/auth/verify-otp", json={"email": "mum@x.com", "otp": code})
    assert r.status_code == 200
    assert r.json()["user"]["role"] == "parent"
    assert S.SESSION_COOKIE_NAME not in r.cookies


async def test_verify_otp_failure_messages(client, monkeypatch):
    r = await client.post("/api/auth/verify-otp", json={"email": "ghost@x.com", "otp": "123456"})
    assert r.status_code == 400
    assert r.json() == {"success": False, "message": "OTP not found or expired"}

    code = (await _send(client, "k@x.com", "teacher")).json()["otp"]
    wrong = "100000" if code != "100000" else "100001"
    r = await client.post("/api/auth/verify-otp", json={"email": "k@x.com", "otp": wrong})
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid OTP"

    later = datetime.now(timezone.utc) + timedelta(minutes=11)
    monkeypatch.setattr(otp_service, "_now_utc", lambda: later)
    r = await client.post("/api/auth/verify-otp", json={"email": "k@x.com", "otp": code})
    assert r.status_code == 400
    assert r.json()["message"] == "OTP has expired"


async def test_verify_otp_missing_fields_is_400(client):
    r = await client.post("/api/auth/verify-otp", json={"email": "k@x.com"})
    assert r.status_code == 400
    assert r.json()["success"] is False


async def test_replayed_code_is_rejected(client):
    code = (await _send(client, "once@x.com", "parent")).json()["otp"]
    ok = await client.post("/api/auth/verify-otp", json={"email": "once@x.com", "otp": code})
    assert ok.status_code == 200
    again = await client.post("/api/auth/verify-otp", json={"email": "once@x.com", "otp": code})
    assert again.status_code == 400
    assert again.json()["message"] == "OTP not found or expired"


async def test_me_requires_session(client):
    r = await client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json() == {"success": False, "message": "Not authenticated"}


async def test_logout_clears_cookie(client):
    r = await client.post("/api/auth/logout")
    assert r.status_code == 204
    assert S.SESSION_COOKIE_NAME in r.headers.get("set-cookie", "")


class _UnreachableStore(InMemoryOtpStore):
    async def put(self, entry):
        raise ConnectionError("Error 111 connecting to 10.0.4.7:6379. Connection refused.")


class _CounterRedis:
    """incr/expire/ttl only, for the fixed-window limiter."""

    def __init__(self):
        self.counts = {}
        self.expiry = {}

    async def incr(self, key):
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    async def expire(self, key, seconds):
        self.expiry[key] = seconds

    async def ttl(self, key):
        return self.expiry.get(key, -2)


async def test_send_otp_succeeds_when_email_cannot_be_delivered(client, store):
    failing = RecordingSender(fail=True)
    api.state.otp_authenticator = OtpAuthenticator(store, failing, ttl_seconds=600)

    r = await _send(client, "offline@x.com", "teacher")
    assert r.status_code == 200
    assert r.json()["success"] is True
    assert len(failing.sent) == 1

    ok = await client.post("/api/auth/verify-otp", json={"email": "offline@x.com", "otp": r.json()["otp"]})
    assert ok.status_code == 200


async def test_send_otp_store_failure_is_500_without_internals(client, sender):
    api.state.otp_authenticator = OtpAuthenticator(_UnreachableStore(), sender, ttl_seconds=600)

    r = await _send(client, "a@x.com", "parent")
    assert r.status_code == 500
    assert r.json() == {"success": False, "message": "Failed to send OTP"}
    assert sender.sent == []


async def test_send_otp_store_failure_shows_cause_in_debug(client, sender, monkeypatch):
    monkeypatch.setattr(S, "DEBUG", True)
    api.state.otp_authenticator = OtpAuthenticator(_UnreachableStore(), sender, ttl_seconds=600)

    r = await _send(client, "a@x.com", "parent")
    assert r.status_code == 500
    assert "Connection refused" in r.json()["message"]


async def test_send_otp_rate_limit_is_429_with_retry_after(client, monkeypatch):
    fake = _CounterRedis()
    monkeypatch.setattr(redis_client, "redis", fake)
    monkeypatch.setattr(S, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(S, "RL_OTP_REQ_PER_IP_10S", 2)

    for _ in range(2):
        assert (await _send(client, "busy@x.com", "parent")).status_code == 200
    r = await _send(client, "busy@x.com", "parent")
    assert r.status_code == 429
    assert r.headers["retry-after"] == "10"
    assert r.json() == {"success": False, "message": "rate limit exceeded"}
