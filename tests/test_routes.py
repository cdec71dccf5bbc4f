import pytest

from models.audit_log import AuditLog
from models.db import utcnow
from models.login_attempt import LoginAttempt
from models.security_alert import SecurityAlert

BUYER = {"email": "buyer@example.com", "password": "Correct-Horse-1"}


def _alert(db, **kw):
    fields = dict(
        alert_type="brute_force_detected",
        severity="high",
        email="victim@example.com",
        ip_address="203.0.113.9",
        description="Brute-force pattern against victim@example.com (risk score 75)",
        status="open",
    )
    fields.update(kw)
    row = SecurityAlert(**fields)
    db.session.add(row)
    db.session.commit()
    return row


def _last_attempt():
    return LoginAttempt.query.order_by(LoginAttempt.id.desc()).first()


# health / auth ------------------------------------------------------------------

def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}
    assert resp.headers["X-Frame-Options"] == "DENY"


def test_login_success_records_attempt(client, make_user):
    user = make_user()

    resp = client.post("/auth/login", json=BUYER, headers={"User-Agent": "pytest-browser"})

    assert resp.status_code == 200
    assert resp.get_json()["user"]["account_type"] == "buyer"
    assert client.get_cookie("loginguard_session") is not None

    attempt = _last_attempt()
    assert attempt.success is True
    assert attempt.failure_reason is None
    assert (attempt.user_type, attempt.user_id) == ("buyer", user.id)
    assert attempt.ip_address == "127.0.0.1"
    assert attempt.user_agent == "pytest-browser"

    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.get_json()["email"] == "buyer@example.com"


def test_login_uses_forwarded_client_ip(client, make_user):
    make_user()

    client.post("/auth/login", json=BUYER, headers={"X-Forwarded-For": "198.51.100.7, 10.0.0.1"})

    assert _last_attempt().ip_address == "198.51.100.7"


def test_wrong_password(client, make_user):
    user = make_user()

    resp = client.post("/auth/login", json={"email": BUYER["email"], "password": "nope"})

    assert resp.status_code == 401
    attempt = _last_attempt()
    assert attempt.success is False
    assert attempt.failure_reason == "invalid_password"
    assert attempt.user_id == user.id
    assert AuditLog.query.filter_by(action="LOGIN_FAIL").count() == 1


def test_unknown_user(client, db):
    resp = client.post("/auth/login", json={"email": "Ghost@Example.com", "password": "whatever"})

    assert resp.status_code == 401
    attempt = _last_attempt()
    assert attempt.email == "ghost@example.com"
    assert attempt.failure_reason == "user_not_found"
    assert attempt.user_type is None


@pytest.mark.parametrize(
    "status, reason",
    [("suspended", "account_suspended"), ("pending", "account_pending"), ("rejected", "other")],
)
def test_inactive_accounts_are_refused(client, make_user, status, reason):
    make_user(status=status)

    resp = client.post("/auth/login", json=BUYER)

    assert resp.status_code == 403
    assert resp.get_json()["status"] == status
    assert _last_attempt().failure_reason == reason


def test_missing_credentials_record_nothing(client, db):
    resp = client.post("/auth/login", json={"email": "buyer@example.com"})

    assert resp.status_code == 400
    assert LoginAttempt.query.count() == 0


def test_recent_high_risk_failure_blocks_login(client, db, make_user):
    make_user()
    db.session.add(LoginAttempt(
        email="buyer@example.com",
        success=False,
        failure_reason="invalid_password",
        ip_address="203.0.113.50",
        risk_score=90,
        risk_factors=[],
        created_at=utcnow(),
    ))
    db.session.commit()

    resp = client.post("/auth/login", json=BUYER)

    assert resp.status_code == 429
    attempt = _last_attempt()
    assert attempt.blocked is True
    assert attempt.success is False
    assert attempt.failure_reason == "other"
    assert client.get_cookie("loginguard_session") is None


def test_me_requires_login(client):
    assert client.get("/auth/me").status_code == 401


def test_logout(admin_client):
    client, _, csrf = admin_client

    assert client.post("/auth/logout", headers=csrf).status_code == 200
    assert client.get("/auth/me").status_code == 401


# admin security API ---------------------------------------------------------------

def test_security_api_requires_admin(client, make_user):
    assert client.get("/admin/security/alerts").status_code == 401

    make_user()
    client.post("/auth/login", json=BUYER)

    assert client.get("/admin/security/alerts").status_code == 403
    assert client.get("/admin/security/summary").status_code == 403


def test_list_login_attempts_filters(admin_client, make_user):
    client, _, _ = admin_client
    make_user()
    client.post("/auth/login", json={"email": BUYER["email"], "password": "nope"})

    resp = client.get("/admin/security/login-attempts?email=BUYER@example.com&success=false")

    rows = resp.get_json()
    assert resp.status_code == 200
    assert len(rows) == 1
    assert rows[0]["failure_reason"] == "invalid_password"
    assert "risk_factors" in rows[0]


def test_list_alerts_and_detail(admin_client, db):
    client, _, _ = admin_client
    open_alert = _alert(db)
    _alert(db, severity="low", status="resolved")

    listed = client.get("/admin/security/alerts?status=open").get_json()
    detail = client.get(f"/admin/security/alerts/{open_alert.id}").get_json()

    assert [a["id"] for a in listed] == [open_alert.id]
    assert detail["alert_type"] == "brute_force_detected"
    assert detail["login_attempt"] is None


@pytest.mark.parametrize("query", ["severity=urgent", "status=closed", "since=yesterday"])
def test_bad_alert_filters(admin_client, query):
    client, _, _ = admin_client
    assert client.get(f"/admin/security/alerts?{query}").status_code == 400


def test_unknown_alert_detail(admin_client):
    client, _, _ = admin_client
    assert client.get("/admin/security/alerts/999").status_code == 404


def test_transition_endpoint(admin_client, db):
    client, admin, csrf = admin_client
    alert = _alert(db)
    url = f"/admin/security/alerts/{alert.id}/transition"

    resp = client.post(url, json={"status": "resolved", "notes": "user confirmed"}, headers=csrf)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "resolved"
    assert body["resolved_by"] == admin.id
    assert body["notes"] == "user confirmed"

    again = client.post(url, json={"status": "investigating"}, headers=csrf)
    assert again.status_code == 409
    assert again.get_json()["status"] == "resolved"


def test_transition_errors(admin_client, db):
    client, _, csrf = admin_client
    alert = _alert(db)
    url = f"/admin/security/alerts/{alert.id}/transition"

    assert client.post(url, json={}, headers=csrf).status_code == 400
    assert client.post(url, json={"status": "archived"}, headers=csrf).status_code == 400
    assert client.post(url, json={"status": "resolved", "notes": 5}, headers=csrf).status_code == 400
    assert client.post("/admin/security/alerts/999/transition", json={"status": "resolved"},
                       headers=csrf).status_code == 404


def test_transition_requires_csrf(admin_client, db):
    client, _, _ = admin_client
    alert = _alert(db)

    resp = client.post(f"/admin/security/alerts/{alert.id}/transition", json={"status": "resolved"})

    assert resp.status_code == 403
    assert db.session.get(SecurityAlert, alert.id).status == "open"


def test_summary(admin_client, db, make_user):
    client, _, _ = admin_client
    _alert(db, severity="high")
    _alert(db, severity="critical", status="investigating")
    _alert(db, severity="low", status="false_positive")
    make_user()
    client.post("/auth/login", json={"email": BUYER["email"], "password": "nope"})

    body = client.get("/admin/security/summary").get_json()

    assert body["open_alerts"] == {"low": 0, "medium": 0, "high": 1, "critical": 1}
    assert body["last_24h"]["attempts"] == 2
    assert body["last_24h"]["failed"] == 1
    assert body["last_24h"]["blocked"] == 0


def test_audit_logs(admin_client):
    client, admin, _ = admin_client

    rows = client.get("/admin/audit-logs?action=LOGIN_SUCCESS").get_json()

    assert len(rows) == 1
    assert rows[0]["user_id"] == admin.id


def test_login_survives_misconfigured_geolocation(app, client, make_user):
    app.config["GEOIP_LOOKUP_URL"] = "https://geo.example.test/{0}/json/"
    make_user()

    resp = client.post("/auth/login", json=BUYER, headers={"X-Forwarded-For": "8.8.8.8"})

    assert resp.status_code == 200
    attempt = _last_attempt()
    assert attempt.success is True
    assert attempt.location is None
