"""Tests for the HTTP and WebSocket endpoints.

The app is used without its lifespan, so no broker connection or
consumer thread is started.
"""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session
from starlette.websockets import WebSocketDisconnect

from app.api.deps import get_db_session
from app.main import app
from app.models.notification import Notification, NotificationType


@pytest.fixture
def client(db_session: Session):
    def override_session():
        yield db_session

    app.dependency_overrides[get_db_session] = override_session
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def auth(token_for):
    def headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token_for(user_id)}"}
    return headers


def _add(session: Session, user_id: str = "alice", read: bool = False, **kwargs) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=kwargs.pop("type", NotificationType.TASK_UPDATED),
        message='Task "Ship it" has been updated',
        task_id="task-1",
        meta={"taskTitle": "Ship it"},
        read=read,
        **kwargs,
    )
    session.add(notification)
    session.commit()
    session.refresh(notification)
    return notification


class TestNotificationsEndpoints:
    """Tests for /notifications."""

    def test_requires_bearer_token(self, client: TestClient):
        response = client.get("/notifications")

        assert response.status_code in (401, 403)

    def test_rejects_invalid_token(self, client: TestClient):
        response = client.get("/notifications", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401

    def test_list_uses_camel_case(self, client: TestClient, db_session: Session, auth):
        notification = _add(db_session)

        response = client.get("/notifications", headers=auth("alice"))

        assert response.status_code == 200
        body = response.json()
        assert body["meta"] == {"total": 1, "page": 1, "limit": 20, "totalPages": 1}
        item = body["data"][0]
        assert item["id"] == str(notification.id)
        assert item["userId"] == "alice"
        assert item["taskId"] == "task-1"
        assert item["type"] == "TASK_UPDATED"
        assert item["metadata"] == {"taskTitle": "Ship it"}
        assert item["read"] is False
        assert "createdAt" in item

    def test_list_filters_and_paginates(self, client: TestClient, db_session: Session, auth):
        _add(db_session, read=True)
        _add(db_session, read=False)
        _add(db_session, read=False, type=NotificationType.TASK_CREATED)

        response = client.get(
            "/notifications",
            params={"read": "false", "type": "TASK_UPDATED", "page": 1, "limit": 5},
            headers=auth("alice"),
        )

        assert response.status_code == 200
        assert response.json()["meta"]["total"] == 1

    def test_limit_is_bounded(self, client: TestClient, auth):
        response = client.get("/notifications", params={"limit": 101}, headers=auth("alice"))

        assert response.status_code == 422

    def test_unread_count(self, client: TestClient, db_session: Session, auth):
        _add(db_session)
        _add(db_session, read=True)

        response = client.get("/notifications/unread-count", headers=auth("alice"))

        assert response.status_code == 200
        assert response.json() == {"count": 1}

    def test_get_one(self, client: TestClient, db_session: Session, auth):
        notification = _add(db_session)

        response = client.get(f"/notifications/{notification.id}", headers=auth("alice"))

        assert response.status_code == 200
        assert response.json()["id"] == str(notification.id)

    def test_get_other_users_notification_is_404(
        self, client: TestClient, db_session: Session, auth
    ):
        notification = _add(db_session, user_id="alice")

        response = client.get(f"/notifications/{notification.id}", headers=auth("bob"))

        assert response.status_code == 404

    def test_mark_as_read(self, client: TestClient, db_session: Session, auth):
        first = _add(db_session)
        second = _add(db_session)

        response = client.post(
            "/notifications/mark-as-read",
            json={"notificationIds": [str(first.id), str(second.id)]},
            headers=auth("alice"),
        )

        assert response.status_code == 200
        assert response.json()["affected"] == 2

    def test_mark_as_read_empty_list_is_server_error(self, client: TestClient, auth):
        """Empty ID lists are not validated and surface as a 500."""
        response = client.post(
            "/notifications/mark-as-read",
            json={"notificationIds": []},
            headers=auth("alice"),
        )

        assert response.status_code == 500

    def test_mark_all_as_read_twice(self, client: TestClient, db_session: Session, auth):
        _add(db_session)
        _add(db_session)

        first = client.post("/notifications/mark-all-as-read", headers=auth("alice"))
        second = client.post("/notifications/mark-all-as-read", headers=auth("alice"))

        assert first.json()["affected"] == 2
        assert second.json()["affected"] == 0

    def test_delete(self, client: TestClient, db_session: Session, auth):
        notification = _add(db_session)

        response = client.delete(f"/notifications/{notification.id}", headers=auth("alice"))
        missing = client.get(f"/notifications/{notification.id}", headers=auth("alice"))

        assert response.status_code == 204
        assert missing.status_code == 404

    def test_delete_unknown_is_404(self, client: TestClient, auth):
        response = client.delete(f"/notifications/{uuid4()}", headers=auth("alice"))

        assert response.status_code == 404


class TestHealth:
    """Tests for /health."""

    def test_reports_broker_indicators(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert set(body["rabbitmq"]) == {"realtimePublisher", "eventConsumer", "realtimeListener"}
        assert body["rabbitmq"]["eventConsumer"] is False


class TestWebSocketEndpoint:
    """Tests for /ws/notifications."""

    def test_connect_with_query_token_and_ping(self, client: TestClient, token_for):
        with client.websocket_connect(f"/ws/notifications?token={token_for('alice')}") as ws:
            connected = ws.receive_json()
            ws.send_json({"event": "ping"})
            pong = ws.receive_json()

        assert connected["event"] == "connected"
        assert connected["data"]["userId"] == "alice"
        assert pong["event"] == "pong"

    def test_connect_with_bearer_subprotocol(self, client: TestClient, token_for):
        with client.websocket_connect(
            "/ws/notifications", subprotocols=["bearer", token_for("alice")]
        ) as ws:
            connected = ws.receive_json()

            assert ws.accepted_subprotocol == "bearer"
        assert connected["event"] == "connected"

    def test_bad_token_gets_error_and_4001(self, client: TestClient):
        with client.websocket_connect("/ws/notifications?token=bad") as ws:
            error = ws.receive_json()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

        assert error == {"event": "error", "data": {"message": "Authentication failed"}}
        assert exc_info.value.code == 4001
