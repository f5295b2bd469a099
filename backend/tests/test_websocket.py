"""
Tests for the notification websocket and the connection registry.
"""
import pytest
from starlette.websockets import WebSocketDisconnect

from scholardesk.websocket.manager import ConnectionManager, manager


def test_push_without_socket_is_noop():
    registry = ConnectionManager()
    assert registry.push("someone", {"type": "notification"}) is False
    assert registry.get_connection_count() == 0


def test_websocket_connect_and_ping(client, dev_a, headers_for):
    token = headers_for(dev_a)["Authorization"].split(" ", 1)[1]
    with client.websocket_connect(f"/ws/notifications?token={token}") as ws:
        hello = ws.receive_json()
        assert hello["type"] == "connected"
        assert manager.is_user_connected(str(dev_a.id))

        ws.send_text('{"type": "ping", "timestamp": 42}')
        assert ws.receive_json() == {"type": "pong", "timestamp": 42}
    assert not manager.is_user_connected(str(dev_a.id))


def test_websocket_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/notifications?token=bogus") as ws:
            ws.receive_json()


def test_stats_admin_only(client, admin_headers, client_headers):
    assert client.get("/ws/stats", headers=client_headers).status_code == 403
    response = client.get("/ws/stats", headers=admin_headers)
    assert response.status_code == 200
    assert "total_connections" in response.json()
