import os
import sys

from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from sessionguard.api import deps
from sessionguard.api import sessions as sessions_api
from sessionguard.api.errors import install_error_handlers
from sessionguard.api.security import router as security_router
from sessionguard.api.sessions import router as sessions_router
from sessionguard.database import Base
from sessionguard.models.security import SuspiciousActivity
from sessionguard.models.session import DeviceSession
from sessionguard.schemas.device import GeoLocation
from sessionguard.services import session_manager

US_DESKTOP_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IN_MOBILE_UA = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36"
)
US_IP = "198.51.100.10"
IN_IP = "203.0.113.20"


class StubResolver:
    locations = {
        US_IP: GeoLocation(country="United States", country_code="US", city="Boston"),
        IN_IP: GeoLocation(country="India", country_code="IN", city="Mumbai"),
    }

    def resolve(self, ip):
        return self.locations.get(ip)


def _bearer(user_id: str, role: str | None = None) -> dict:
    claims = {"sub": user_id, "type": "access"}
    if role:
        claims["role"] = role
    token = jwt.encode(claims, deps.settings.secret_key, algorithm=deps.settings.algorithm)
    return {"Authorization": f"Bearer {token}"}


def _build_test_client(monkeypatch):
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    app = FastAPI()
    app.include_router(sessions_router, prefix="/api")
    app.include_router(security_router, prefix="/api")
    install_error_handlers(app)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    monkeypatch.setattr(sessions_api.settings, "trusted_proxy_ips", ["testclient"])
    monkeypatch.setattr(session_manager, "get_geolocation_resolver", lambda: StubResolver())
    return TestClient(app), TestingSessionLocal


def _login(client: TestClient, user_id: str, user_agent: str, ip: str) -> dict:
    response = client.post(
        "/api/sessions",
        headers={**_bearer(user_id), "User-Agent": user_agent, "X-Forwarded-For": ip},
    )
    assert response.status_code == 201
    return response.json()


def _device(user_id: str, session_token: str) -> dict:
    return {**_bearer(user_id), "X-Session-Token": session_token}


def test_requests_without_identity_are_rejected(monkeypatch):
    client, _ = _build_test_client(monkeypatch)

    assert client.post("/api/sessions").status_code == 401
    assert client.get("/api/sessions", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


def test_create_sets_secure_httponly_session_cookie(monkeypatch):
    client, _ = _build_test_client(monkeypatch)

    response = client.post(
        "/api/sessions",
        headers={**_bearer("alpha"), "User-Agent": US_DESKTOP_UA, "X-Forwarded-For": US_IP},
    )
    data = response.json()
    set_cookie = response.headers.get("set-cookie", "")

    assert response.status_code == 201
    assert f"sessionguard_session={data['session_token']}" in set_cookie
    assert "HttpOnly" in set_cookie
    assert "Secure" in set_cookie
    assert data["session"]["is_this_device"] is True
    assert data["session"]["location"] == "Boston, United States"
    assert data["session"]["short_device_name"] == "💻 Chrome • Windows 10/11"
    assert data["superseded_session"] is None


def test_end_to_end_conflict_and_review(monkeypatch):
    client, testing_session_local = _build_test_client(monkeypatch)

    device_a = _login(client, "user-1", US_DESKTOP_UA, US_IP)
    device_b = _login(client, "user-1", IN_MOBILE_UA, IN_IP)
    assert device_b["superseded_session"]["id"] == device_a["session"]["id"]
    assert device_b["superseded_session"]["is_current"] is False
    assert device_b["flagged_for_review"] is True

    conflict = client.post("/api/sessions/validate", headers=_device("user-1", device_a["session_token"]))
    assert conflict.status_code == 200
    body = conflict.json()
    assert body["valid"] is False
    assert body["conflict_session"]["id"] == device_b["session"]["id"]
    assert body["conflict_session"]["device_type"] == "mobile"
    assert "Chrome on Android" in body["message"]

    ok = client.post("/api/sessions/validate", headers=_device("user-1", device_b["session_token"]))
    assert ok.json() == {"valid": True, "conflict_session": None, "message": None}

    listed = client.get("/api/sessions", headers=_device("user-1", device_b["session_token"])).json()
    assert [s["is_this_device"] for s in listed] == [True, False]

    terminated = client.post(
        "/api/sessions/terminate-others",
        headers=_device("user-1", device_b["session_token"]),
    )
    assert terminated.status_code == 200
    remaining = client.get("/api/sessions", headers=_device("user-1", device_b["session_token"])).json()
    assert [s["id"] for s in remaining] == [device_b["session"]["id"]]

    admin = _bearer("admin-1", role="admin")
    pending = client.get("/api/admin/security/activities", headers=admin).json()
    assert len(pending) == 1
    assert pending[0]["reviewed"] is False
    assert pending[0]["details"]["previous_country_code"] == "US"
    assert pending[0]["details"]["current_country_code"] == "IN"

    db = testing_session_local()
    try:
        before = [(s.id, s.is_current, s.last_active) for s in db.query(DeviceSession).all()]
    finally:
        db.close()

    reviewed = client.post(
        f"/api/admin/security/activities/{pending[0]['id']}/review",
        headers=admin,
        json={"disposition": "dismissed"},
    )
    assert reviewed.status_code == 200
    assert reviewed.json()["reviewed"] is True
    assert reviewed.json()["action_taken"] == "Dismissed - False Positive"
    assert reviewed.json()["reviewed_by"] == "admin-1"

    db = testing_session_local()
    try:
        after = [(s.id, s.is_current, s.last_active) for s in db.query(DeviceSession).all()]
        assert after == before
        assert db.query(SuspiciousActivity).filter(SuspiciousActivity.reviewed == 1).count() == 1
    finally:
        db.close()

    assert client.get("/api/admin/security/activities", headers=admin).json() == []


def test_terminate_single_session_only_for_owner(monkeypatch):
    client, _ = _build_test_client(monkeypatch)
    device = _login(client, "user-1", US_DESKTOP_UA, US_IP)
    session_id = device["session"]["id"]

    assert client.delete(f"/api/sessions/{session_id}", headers=_bearer("user-2")).status_code == 404
    assert client.delete(f"/api/sessions/{session_id}", headers=_bearer("user-1")).status_code == 200
    assert client.delete(f"/api/sessions/{session_id}", headers=_bearer("user-1")).status_code == 404


def test_terminate_others_requires_session_token(monkeypatch):
    client, _ = _build_test_client(monkeypatch)

    response = client.post("/api/sessions/terminate-others", headers=_bearer("user-1"))

    assert response.status_code == 400


def test_terminate_all_clears_cookie_and_rows(monkeypatch):
    client, testing_session_local = _build_test_client(monkeypatch)
    device_a = _login(client, "user-1", US_DESKTOP_UA, US_IP)
    _login(client, "user-1", IN_MOBILE_UA, IN_IP)

    response = client.post("/api/sessions/terminate-all", headers=_device("user-1", device_a["session_token"]))

    assert response.status_code == 200
    assert response.json()["terminated"] == 2
    assert "sessionguard_session=" in response.headers.get("set-cookie", "")
    assert "Max-Age=0" in response.headers.get("set-cookie", "")

    db = testing_session_local()
    try:
        assert db.query(DeviceSession).count() == 0
    finally:
        db.close()

    expired = client.post("/api/sessions/validate", headers=_device("user-1", device_a["session_token"]))
    assert expired.json()["valid"] is False
    assert expired.json()["conflict_session"] is None


def test_store_failure_is_reported_as_retryable(monkeypatch):
    client, testing_session_local = _build_test_client(monkeypatch)
    device = _login(client, "user-1", US_DESKTOP_UA, US_IP)
    monkeypatch.setattr(session_manager, "generate_session_token", lambda: device["session_token"])

    response = client.post(
        "/api/sessions",
        headers={**_bearer("user-1"), "User-Agent": IN_MOBILE_UA, "X-Forwarded-For": IN_IP},
    )

    assert response.status_code == 503
    assert response.json()["type"] == "session_store_unavailable"
    db = testing_session_local()
    try:
        assert db.query(DeviceSession).filter(DeviceSession.is_current == 1).count() == 1
    finally:
        db.close()


def test_admin_endpoints_require_admin_role(monkeypatch):
    client, _ = _build_test_client(monkeypatch)

    assert client.get("/api/admin/security/activities", headers=_bearer("user-1")).status_code == 403
    assert client.get("/api/admin/security/summary", headers=_bearer("user-1")).status_code == 403


def test_admin_review_errors(monkeypatch):
    client, _ = _build_test_client(monkeypatch)
    admin = _bearer("admin-1", role="admin")

    missing = client.post(
        "/api/admin/security/activities/missing/review",
        headers=admin,
        json={"disposition": "suspended"},
    )
    assert missing.status_code == 404

    _login(client, "user-1", US_DESKTOP_UA, US_IP)
    _login(client, "user-1", IN_MOBILE_UA, IN_IP)
    activity_id = client.get("/api/admin/security/activities", headers=admin).json()[0]["id"]

    first = client.post(
        f"/api/admin/security/activities/{activity_id}/review",
        headers=admin,
        json={"disposition": "warning_issued"},
    )
    again = client.post(
        f"/api/admin/security/activities/{activity_id}/review",
        headers=admin,
        json={"disposition": "dismissed"},
    )
    invalid = client.post(
        f"/api/admin/security/activities/{activity_id}/review",
        headers=admin,
        json={"disposition": "ban-forever"},
    )

    assert first.json()["action_taken"] == "Warning Sent"
    assert again.status_code == 409
    assert invalid.status_code == 422


def test_admin_session_oversight(monkeypatch):
    client, _ = _build_test_client(monkeypatch)
    admin = _bearer("admin-1", role="admin")
    first = _login(client, "user-1", US_DESKTOP_UA, US_IP)
    _login(client, "user-1", IN_MOBILE_UA, IN_IP)

    listed = client.get("/api/admin/users/user-1/sessions", headers=admin).json()
    assert len(listed) == 2
    assert sum(s["is_current"] for s in listed) == 1

    assert client.delete(f"/api/admin/sessions/{first['session']['id']}", headers=admin).status_code == 200
    assert client.delete(f"/api/admin/sessions/{first['session']['id']}", headers=admin).status_code == 404

    summary = client.get("/api/admin/security/summary", headers=admin).json()
    assert summary == {"high": 0, "medium": 1, "low": 0, "total": 1}

    cleared = client.post("/api/admin/users/user-1/sessions/terminate-all", headers=admin)
    assert cleared.json()["terminated"] == 1
    assert client.get("/api/admin/users/user-1/sessions", headers=admin).json() == []


def test_forwarded_for_ignored_from_untrusted_peer(monkeypatch):
    client, _ = _build_test_client(monkeypatch)
    _login(client, "user-1", US_DESKTOP_UA, US_IP)
    monkeypatch.setattr(sessions_api.settings, "trusted_proxy_ips", [])

    spoofed = _login(client, "user-1", IN_MOBILE_UA, IN_IP)

    assert spoofed["session"]["ip_address"] is None
    assert spoofed["session"]["location"] == "Unknown location"
    assert spoofed["flagged_for_review"] is False


def test_client_prepended_forwarded_hops_are_skipped(monkeypatch):
    client, _ = _build_test_client(monkeypatch)
    _login(client, "user-1", US_DESKTOP_UA, US_IP)

    # The trusted proxy appends the real peer after whatever the client sent
    abroad = _login(client, "user-1", IN_MOBILE_UA, f"{US_IP}, {IN_IP}")

    assert abroad["session"]["ip_address"] == IN_IP
    assert abroad["flagged_for_review"] is True


def test_garbage_forwarded_for_is_not_stored(monkeypatch):
    client, _ = _build_test_client(monkeypatch)

    created = _login(client, "user-1", US_DESKTOP_UA, "not-an-ip-" + "x" * 60)

    assert created["session"]["ip_address"] is None
    assert created["session"]["location"] == "Unknown location"
