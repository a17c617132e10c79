"""Tests for signaling envelopes, the candidate queue and the relay client."""

import asyncio

import pytest

from fluxion.errors import ProtocolError, RelayError
from fluxion.signaling import client as relay_client
from fluxion.signaling.candidates import CandidateQueue
from fluxion.signaling.messages import (
    SignalType,
    candidate_message,
    description_message,
    join_message,
    parse_signal,
)


class TestParseSignal:
    """Envelope parsing."""

    def test_typed_messages(self):
        assert parse_signal('{"type": "joined", "room": "482913"}').type is SignalType.JOINED
        assert parse_signal('{"type": "peer_ready"}').type is SignalType.PEER_READY
        assert parse_signal('{"type": "offer", "sdp": "v=0"}').type is SignalType.OFFER

    def test_candidate_recognised_by_field(self):
        message = parse_signal(
            '{"candidate": "candidate:1 1 udp 1 10.0.0.1 5000 typ host", '
            '"sdpMid": "0", "sdpMLineIndex": 0}'
        )

        assert message.type is SignalType.CANDIDATE
        assert message.payload['sdpMid'] == '0'

    def test_joined_carries_room(self):
        assert parse_signal('{"type": "joined", "room": "482913"}').room == '482913'

    @pytest.mark.parametrize('raw', ['{', '"offer"', '{"type": "bogus"}', '{"sdp": "v=0"}'])
    def test_malformed_envelopes_raise(self, raw):
        with pytest.raises(ProtocolError):
            parse_signal(raw)


class TestBuilders:
    """Outbound envelopes."""

    def test_join_message(self):
        assert join_message('482913') == {'type': 'join', 'room': '482913'}

    def test_description_message_keeps_browser_shape(self):
        assert description_message({'type': 'answer', 'sdp': 'v=0'}) == {
            'type': 'answer', 'sdp': 'v=0'
        }

    def test_description_message_rejects_other_types(self):
        with pytest.raises(ProtocolError):
            description_message({'type': 'pranswer', 'sdp': 'v=0'})

    def test_candidate_message_requires_candidate_field(self):
        with pytest.raises(ProtocolError):
            candidate_message({'sdpMid': '0'})


class TestCandidateQueue:
    """Early candidate parking."""

    def test_drain_returns_candidates_in_arrival_order(self):
        queue = CandidateQueue()
        queue.push({'candidate': 'c1'})
        queue.push({'candidate': 'c2'})
        queue.push({'candidate': 'c3'})

        assert [c['candidate'] for c in queue.drain()] == ['c1', 'c2', 'c3']
        assert len(queue) == 0
        assert queue.flushed

    def test_clear_discards_without_flushing(self):
        queue = CandidateQueue()
        queue.push({'candidate': 'c1'})

        queue.clear()

        assert len(queue) == 0
        assert queue.total_queued == 1


class TestWebSocketRelayConnection:
    """Connect failures surface as RelayError."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize('exc', [
        asyncio.TimeoutError(),
        ConnectionRefusedError("refused"),
    ])
    async def test_connect_failure_is_wrapped(self, monkeypatch, exc):
        async def failing_connect(url, **kwargs):
            raise exc

        monkeypatch.setattr(relay_client.websockets, 'connect', failing_connect)
        connection = relay_client.WebSocketRelayConnection('ws://relay.invalid:8080', open_timeout=0.1)

        with pytest.raises(RelayError, match="Failed to connect"):
            await connection.connect()

        assert not connection.is_open
