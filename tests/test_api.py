import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from sav3_notifications.database import get_session
from sav3_notifications.main import create_app

API = "/api/v1/notifications"


@pytest.fixture
def app(engine):
    application = create_app()

    def override_session():
        with Session(engine) as s:
            yield s

    application.dependency_overrides[get_session] = override_session
    return application


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def admin(auth):
    return auth("svc-1", role="admin")


def _notify(client, admin, user_id="u1", **fields):
    body = {"userId": user_id, "type": "message", "title": "Hi", "body": "New message"}
    body.update(fields)
    resp = client.post(API, json=body, headers=admin)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def test_health_uses_envelope_and_headers(client):
    resp = client.get("/health", headers={"X-Request-ID": "req-1"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["status"] == "healthy"
    assert body["data"]["errorCapture"] == {"enabled": False, "connected": False}
    assert body["meta"]["requestId"] == "req-1"
    assert set(body["meta"]) == {"timestamp", "requestId", "version", "responseTime"}
    assert resp.headers["X-Request-ID"] == "req-1"
    assert resp.headers["X-Response-Time"].endswith("ms")
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


def test_missing_or_bad_token_is_unauthorized(client):
    resp = client.get(API)
    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"] == "Bearer"
    assert resp.headers["X-Error-Code"] == "UNAUTHORIZED"
    error = resp.json()["error"]
    assert error["code"] == "UNAUTHORIZED"
    assert error["retryable"] is False

    assert client.get(API, headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


def test_create_requires_privileged_role(client, auth, make_user):
    make_user("u1")
    resp = client.post(API, json={"userId": "u1", "type": "like", "title": "t", "body": "b"}, headers=auth("u1"))
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "FORBIDDEN"


def test_create_returns_camel_case_record(client, admin, make_user):
    make_user("u1")
    data = _notify(client, admin, data={"a": 1}, priority="high", actions=[{"id": "open", "label": "Open"}])
    assert data["userId"] == "u1"
    assert data["status"] == "pending"
    assert data["isRead"] is False
    assert data["priority"] == "high"
    assert data["data"] == {"a": 1}
    assert data["actions"][0]["label"] == "Open"
    assert data["metadata"]["source"] == "api"


def test_create_for_unknown_user_is_bad_request(client, admin):
    resp = client.post(API, json={"userId": "ghost", "type": "like", "title": "t", "body": "b"}, headers=admin)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "BAD_REQUEST"


def test_validation_errors_use_envelope(client, admin):
    resp = client.post(API, json={"userId": "u1", "type": "like"}, headers=admin)
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert isinstance(body["error"]["details"], list)

    assert client.get(API, params={"limit": 51}, headers=admin).status_code == 400


def test_unknown_route_and_unhandled_errors(app):
    @app.get("/boom")
    def boom():
        raise RuntimeError("kaboom")

    client = TestClient(app, raise_server_exceptions=False)
    missing = client.get("/nope")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "NOT_FOUND"

    failed = client.get("/boom")
    assert failed.status_code == 500
    assert failed.json()["error"] == {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": None, "retryable": True}
    assert failed.headers["X-Error-Retryable"] == "true"


def test_offset_pagination_and_headers(client, admin, auth, make_user):
    make_user("u1")
    for i in range(3):
        _notify(client, admin, title=f"n{i}")
    resp = client.get(API, params={"limit": 2}, headers=auth("u1"))

    assert resp.status_code == 200
    body = resp.json()
    assert len(body["data"]) == 2
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2, "hasNext": True, "hasPrev": False}
    assert resp.headers["X-Total-Count"] == "3"
    assert resp.headers["X-Page-Count"] == "2"
    assert resp.headers["X-Current-Page"] == "1"
    assert resp.headers["X-Per-Page"] == "2"

    second = client.get(API, params={"limit": 2, "offset": 2}, headers=auth("u1")).json()
    assert second["pagination"]["page"] == 2
    assert second["pagination"]["hasPrev"] is True


def test_unread_only_and_type_filters(client, admin, auth, make_user):
    make_user("u1")
    first = _notify(client, admin, type="like")
    _notify(client, admin, type="message")
    client.put(f"{API}/{first['id']}/read", headers=auth("u1"))

    unread = client.get(API, params={"unreadOnly": "true"}, headers=auth("u1")).json()
    assert [n["type"] for n in unread["data"]] == ["message"]
    likes = client.get(API, params={"type": "like"}, headers=auth("u1")).json()
    assert [n["id"] for n in likes["data"]] == [first["id"]]


def test_cursor_pagination(client, admin, auth, make_user):
    make_user("u1")
    for i in range(3):
        _notify(client, admin, title=f"n{i}")

    first = client.get(API, params={"limit": 2, "mode": "cursor"}, headers=auth("u1"))
    page = first.json()
    cursor = page["pagination"]["nextCursor"]
    assert page["pagination"]["hasNext"] is True
    assert first.headers["X-Next-Cursor"] == cursor

    rest = client.get(API, params={"limit": 2, "cursor": cursor}, headers=auth("u1")).json()
    assert len(rest["data"]) == 1
    assert rest["data"][0]["id"] == cursor
    assert rest["pagination"] == {"limit": 2, "nextCursor": None, "hasNext": False}

    bad = client.get(API, params={"cursor": "nope"}, headers=auth("u1"))
    assert bad.status_code == 404


def test_read_flows_and_counts(client, admin, auth, make_user):
    make_user("u1")
    make_user("u2")
    a = _notify(client, admin)
    b = _notify(client, admin)
    foreign = _notify(client, admin, user_id="u2")
    user = auth("u1")

    assert client.get(f"{API}/unread-count", headers=user).json()["data"] == {"total": 2, "unread": 2}

    resp = client.put(f"{API}/read", json={"ids": [a["id"], foreign["id"]]}, headers=user)
    assert resp.json()["data"] == {"success": True}
    assert client.get(f"{API}/unread-count", headers=user).json()["data"] == {"total": 2, "unread": 1}
    assert client.get(f"{API}/unread-count", headers=auth("u2")).json()["data"] == {"total": 1, "unread": 1}

    single = client.put(f"{API}/{b['id']}/read", headers=user).json()["data"]
    assert single["isRead"] is True
    assert single["status"] == "read"

    assert client.put(f"{API}/read-all", headers=user).json()["data"] == {"success": True}
    assert client.get(f"{API}/unread-count", headers=user).json()["data"]["unread"] == 0


def test_get_and_delete_are_scoped_to_owner(client, admin, auth, make_user):
    make_user("u1")
    make_user("u2")
    item = _notify(client, admin)

    assert client.get(f"{API}/{item['id']}", headers=auth("u1")).json()["data"]["id"] == item["id"]
    stranger = client.get(f"{API}/{item['id']}", headers=auth("u2"))
    assert stranger.status_code == 404
    assert stranger.json()["error"]["message"] == "Notification not found"
    assert client.delete(f"{API}/{item['id']}", headers=auth("u2")).status_code == 404

    assert client.delete(f"{API}/{item['id']}", headers=auth("u1")).json()["data"]["success"] is True
    assert client.get(f"{API}/{item['id']}", headers=auth("u1")).status_code == 404


def test_bulk_create_is_atomic_over_http(client, admin, make_user):
    make_user("u1")
    ok = client.post(f"{API}/bulk", json={"notifications": [
        {"userId": "u1", "type": "like", "title": "a", "body": "b"},
        {"userId": "u1", "type": "like", "title": "c", "body": "d"},
    ]}, headers=admin)
    assert ok.status_code == 201
    assert ok.json()["data"]["created"] == 2

    bad = client.post(f"{API}/bulk", json={"notifications": [
        {"userId": "u1", "type": "like", "title": "a", "body": "b"},
        {"userId": "ghost", "type": "like", "title": "c", "body": "d"},
    ]}, headers=admin)
    assert bad.status_code == 400
    assert bad.json()["error"]["details"] == {"index": 1}


def test_push_settings_endpoint(client, auth, make_user):
    make_user("u1")
    resp = client.put(f"{API}/push-settings", json={"enabled": False, "types": ["match"]}, headers=auth("u1"))
    assert resp.status_code == 200
    push = resp.json()["data"]["channels"]["push"]
    assert push["enabled"] is False
    assert push["types"]["match"] is True
    assert push["types"]["like"] is False


def test_settings_endpoints(client, auth, make_user):
    make_user("u1")
    user = auth("u1")

    defaults = client.get(f"{API}/settings", headers=user).json()["data"]
    assert defaults["globalEnabled"] is True
    assert defaults["quietHours"]["startTime"] == "22:00"
    assert set(defaults["channels"]) == {"push", "email", "sms", "inApp"}
    assert "global" in defaults["frequency"]

    updated = client.put(f"{API}/settings", json={"quietHours": {"enabled": True, "timezone": "Europe/Lisbon"}}, headers=user).json()["data"]
    assert updated["quietHours"]["enabled"] is True
    assert updated["quietHours"]["timezone"] == "Europe/Lisbon"
    assert updated["quietHours"]["endTime"] == "07:00"

    invalid = client.put(f"{API}/settings", json={"quietHours": {"endTime": "7pm"}}, headers=user)
    assert invalid.status_code == 400
    assert invalid.json()["error"]["code"] == "VALIDATION_ERROR"

    reset = client.post(f"{API}/settings/reset", headers=user).json()["data"]
    assert reset["quietHours"]["enabled"] is False
    assert client.get(f"{API}/settings", headers=user).json()["data"]["quietHours"]["enabled"] is False


def test_device_registration(client, auth, make_user):
    make_user("u1")
    user = auth("u1")
    resp = client.post(f"{API}/devices", json={"deviceId": "d1", "fcmToken": "tok", "platform": "ios"}, headers=user)
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["deviceId"] == "d1"
    assert data["isActive"] is True
    assert "fcmToken" not in data

    assert client.post(f"{API}/devices", json={"deviceId": "d2", "fcmToken": "tok", "platform": "pager"}, headers=user).status_code == 400
    assert client.delete(f"{API}/devices/d1", headers=user).json()["data"]["success"] is True
    assert client.delete(f"{API}/devices/unknown", headers=user).status_code == 404


def test_create_and_dispatch(client, admin, auth, make_user):
    make_user("u1")
    resp = client.post(
        API,
        params={"dispatch": "true"},
        json={"userId": "u1", "type": "message", "title": "Hi", "body": "there", "channels": ["in_app"]},
        headers=admin,
    )
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["status"] == "delivered"
    assert data["sentAt"] is not None
    assert data["dispatch"]["action"] == "allow"
    assert data["dispatch"]["channelsSent"] == ["in_app"]


def test_dispatch_of_suppressed_notification_reports_cancel(client, admin, auth, make_user):
    make_user("u1")
    client.put(f"{API}/settings", json={"globalEnabled": False}, headers=auth("u1"))
    resp = client.post(
        API,
        params={"dispatch": "true"},
        json={"userId": "u1", "type": "message", "title": "Hi", "body": "there"},
        headers=admin,
    )
    data = resp.json()["data"]
    assert data["status"] == "cancelled"
    assert data["dispatch"]["reason"] == "globally_disabled"
    assert client.get(API, headers=auth("u1")).json()["data"] == []


def test_dispatch_jobs_require_privilege(client, admin, auth, make_user):
    make_user("u1")
    assert client.post(f"{API}/dispatch/due", headers=auth("u1")).status_code == 403

    due = client.post(f"{API}/dispatch/due", headers=admin)
    assert due.status_code == 200
    assert due.json()["data"] == {"processed": 0, "purged": 0}

    flushed = client.post(f"{API}/dispatch/groups/u1", headers=admin)
    assert flushed.status_code == 200
    assert flushed.json()["data"] is None


def test_mark_read_accepts_an_empty_id_list(client, auth, make_user):
    make_user("u1")
    resp = client.put(f"{API}/read", json={"ids": []}, headers=auth("u1"))
    assert resp.status_code == 200
    assert resp.json()["data"] == {"success": True}


def test_campaign_templates_and_launch(client, admin, auth, make_user):
    make_user("u1")
    make_user("u2")
    template = {"id": "welcome", "type": "marketing", "title": "Hi {userId}", "body": "Welcome to {city}"}

    assert client.post(f"{API}/campaigns/templates", json=template, headers=auth("u1")).status_code == 403
    saved = client.post(f"{API}/campaigns/templates", json=template, headers=admin)
    assert saved.status_code == 201
    assert saved.json()["data"]["isActive"] is True
    assert [t["id"] for t in client.get(f"{API}/campaigns/templates", headers=admin).json()["data"]] == ["welcome"]
    assert client.get(f"{API}/campaigns/templates/welcome", headers=admin).json()["data"]["title"] == "Hi {userId}"
    assert client.get(f"{API}/campaigns/templates/nope", headers=admin).status_code == 404

    launched = client.post(f"{API}/campaigns", json={
        "id": "autumn",
        "name": "Autumn",
        "templateId": "welcome",
        "userIds": ["u1", "u2"],
        "contexts": {"u1": {"city": "Porto"}, "u2": {"city": "Faro"}},
    }, headers=admin)
    assert launched.status_code == 201
    body = launched.json()["data"]
    assert body["campaignId"] == "autumn"
    assert body["created"] == 2

    [inbox] = client.get(API, headers=auth("u1")).json()["data"]
    assert inbox["title"] == "Hi u1"
    assert inbox["body"] == "Welcome to Porto"
    assert inbox["metadata"]["batchId"] == "autumn"

    missing = client.post(f"{API}/campaigns", json={"name": "x", "templateId": "welcome", "userIds": ["u1"]}, headers=admin)
    assert missing.status_code == 400
    assert missing.json()["error"]["details"] == {"templateId": "welcome", "missing": ["city"]}


def test_social_event_notifications(client, admin, auth, make_user):
    make_user("u1")
    match = client.post(f"{API}/events/match", json={"userId": "u1", "actorName": "Ana"}, headers=admin)
    assert match.status_code == 201
    data = match.json()["data"]
    assert data["type"] == "match"
    assert data["body"] == "You matched with Ana"
    assert data["status"] == "delivered"
    assert data["dispatch"]["channelsSent"] == ["in_app"]

    queued = client.post(f"{API}/events/like", params={"dispatch": "false"}, json={"userId": "u1", "actorName": "Bo"}, headers=admin)
    assert queued.json()["data"]["status"] == "pending"

    no_text = client.post(f"{API}/events/message", json={"userId": "u1", "actorName": "Ana"}, headers=admin)
    assert no_text.status_code == 400
    assert no_text.json()["error"]["details"] == {"field": "message"}
    assert client.post(f"{API}/events/poke", json={"userId": "u1", "actorName": "Ana"}, headers=admin).status_code == 400


def test_topic_routes_without_firebase(client, admin, auth, make_user):
    make_user("u1")
    user = auth("u1")
    client.post(f"{API}/devices", json={"deviceId": "d1", "fcmToken": "tok", "platform": "android"}, headers=user)

    assert client.post(f"{API}/devices/topics/news", headers=user).json()["data"] == {"topic": "news", "subscribed": 0}
    assert client.delete(f"{API}/devices/topics/news", headers=user).json()["data"] == {"topic": "news", "unsubscribed": 0}
    assert client.post(f"{API}/devices/topics/bad%20topic", headers=user).status_code == 400

    assert client.post(f"{API}/topics/news", json={"title": "t", "body": "b"}, headers=user).status_code == 403
    sent = client.post(f"{API}/topics/news", json={"title": "t", "body": "b"}, headers=admin).json()["data"]
    assert sent["success"] is False
