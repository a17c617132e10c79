"""Tests for the session and status model."""

import pytest

from fluxion.errors import InvalidRoomCodeError
from fluxion.session import (
    Role,
    Session,
    StatusType,
    generate_room_code,
    validate_room_code,
)


class TestRoomCodes:
    """Six-digit rendezvous codes."""

    def test_generated_codes_are_six_digits(self):
        for _ in range(200):
            code = generate_room_code()
            assert len(code) == 6
            assert 100000 <= int(code) <= 999999

    def test_validation_strips_whitespace(self):
        assert validate_room_code(' 482913\n') == '482913'

    @pytest.mark.parametrize('code', ['', '12345', '1234567', 'abcdef', '48 913', None])
    def test_invalid_codes(self, code):
        with pytest.raises(InvalidRoomCodeError, match="Please enter a valid 6-digit code"):
            validate_room_code(code)


class TestSession:
    """Status updates and listeners."""

    def test_status_updates_notify_listeners(self):
        session = Session(Role.RECEIVER)
        seen = []
        session.on_status(seen.append)

        session.info("Connecting to signaling server...")
        session.error("Connection failed. Check network/firewall.")

        assert [s.type for s in seen] == [StatusType.INFO, StatusType.ERROR]
        assert session.status.message == "Connection failed. Check network/firewall."
        assert len(session.history) == 2

    def test_failing_listener_does_not_break_updates(self):
        session = Session(Role.SENDER)

        def broken(status):
            raise RuntimeError("render failed")

        session.on_status(broken)
        session.success("P2P connection established")

        assert session.status.type is StatusType.SUCCESS

    def test_snapshot_excludes_key(self):
        session = Session(Role.SENDER)
        session.room_code = '482913'
        session.key = 'a' * 64

        snapshot = session.to_dict()

        assert snapshot['role'] == 'sender'
        assert snapshot['room_code'] == '482913'
        assert 'key' not in snapshot

    def test_reset_forgets_everything(self):
        session = Session(Role.SENDER)
        session.room_code = '482913'
        session.info("hello")

        session.reset()

        assert session.room_code is None
        assert session.status is None
        assert session.history == []
        assert session.role is Role.SENDER
