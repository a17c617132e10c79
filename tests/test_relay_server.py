"""Tests for the relay's HTTP and WebSocket surface."""

import pytest
from fastapi.testclient import TestClient

from fluxion.relay.rooms import RoomRegistry
from fluxion.relay.server import create_app


@pytest.fixture
def client():
    app = create_app(RoomRegistry())
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:
    """GET /health."""

    def test_health_on_idle_relay(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.json() == {'status': 'ok', 'rooms': 0, 'connections': 0}

    def test_health_counts_rooms_without_listing_codes(self, client):
        with client.websocket_connect('/') as ws1, client.websocket_connect('/') as ws2:
            ws1.send_text('{"type": "join", "room": "482913"}')
            assert ws1.receive_json() == {'type': 'joined', 'room': '482913'}
            ws2.send_text('{"type": "join", "room": "482913"}')
            assert ws2.receive_json() == {'type': 'joined', 'room': '482913'}

            body = client.get('/health').json()

        assert body['rooms'] == 1
        assert body['connections'] == 2
        assert '482913' not in str(body)


class TestSignaling:
    """WebSocket route."""

    def test_messages_are_relayed_within_room(self, client):
        with client.websocket_connect('/') as sender, client.websocket_connect('/') as receiver:
            sender.send_text('{"type": "join", "room": "482913"}')
            sender.receive_json()
            receiver.send_text('{"type": "join", "room": "482913"}')
            receiver.receive_json()

            receiver.send_text('{"type": "peer_ready"}')
            assert sender.receive_json() == {'type': 'peer_ready'}

            sender.send_text('{"type": "offer", "sdp": "v=0"}')
            assert receiver.receive_json() == {'type': 'offer', 'sdp': 'v=0'}

    def test_malformed_frame_keeps_connection_open(self, client):
        with client.websocket_connect('/') as a, client.websocket_connect('/') as b:
            a.send_text('{"type": "join", "room": "482913"}')
            a.receive_json()
            b.send_text('{"type": "join", "room": "482913"}')
            b.receive_json()

            a.send_text('this is not json')
            a.send_text('{"type": "peer_ready"}')

            assert b.receive_json() == {'type': 'peer_ready'}

    def test_binary_frame_keeps_connection_and_membership(self, client):
        with client.websocket_connect('/') as a, client.websocket_connect('/') as b:
            a.send_text('{"type": "join", "room": "482913"}')
            a.receive_json()
            b.send_text('{"type": "join", "room": "482913"}')
            b.receive_json()

            a.send_bytes(b'\xff\xfe not text')
            a.send_bytes(b'{"type": "peer_ready"}')
            assert b.receive_json() == {'type': 'peer_ready'}

            body = client.get('/health').json()

        assert body['connections'] == 2
        assert body['rooms'] == 1
