"""
Session and Status Model

Design Decision: Who Owns Session State
=======================================

Options Considered:
1. Let every component keep its own copy of code/key/role
   - No coupling, but the UI has to ask three places
2. One shared mutable dict
   - Easy, but anyone can write anything
3. One Session object, written by components, read by the UI

Decision: A single Session per endpoint
- Role is fixed at construction (a session never changes sides)
- Room code and key are set once, at send/receive initiation
- Status is the only thing that changes often; listeners are notified
  on every update so a CLI or GUI can render it

Status classification follows the web UI: info, success, warning,
error. Every update is also logged as ``[TYPE] message``.
"""

import logging
import re
import secrets
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, List, Optional

from .errors import InvalidRoomCodeError

logger = logging.getLogger(__name__)

ROOM_CODE_LENGTH = 6
_ROOM_CODE_RE = re.compile(r'^\d{6}$')

# Keep the last N status updates for inspection
STATUS_HISTORY_SIZE = 100


class Role(Enum):
    """Which side of the transfer this endpoint is."""
    SENDER = "sender"
    RECEIVER = "receiver"


class StatusType(Enum):
    """Status classification shown to the operator."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    StatusType.INFO: logging.INFO,
    StatusType.SUCCESS: logging.INFO,
    StatusType.WARNING: logging.WARNING,
    StatusType.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class Status:
    """A single status update."""
    type: StatusType
    message: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            'type': self.type.value,
            'message': self.message,
            'timestamp': self.timestamp,
        }


StatusCallback = Callable[[Status], None]


def generate_room_code() -> str:
    """Generate a 6-digit room code (100000-999999)."""
    return str(100000 + secrets.randbelow(900000))


def validate_room_code(code: str) -> str:
    """
    Validate a user-supplied room code.

    Returns:
        The stripped code

    Raises:
        InvalidRoomCodeError: if the code is not exactly six digits
    """
    code = (code or '').strip()
    if not _ROOM_CODE_RE.match(code):
        raise InvalidRoomCodeError("Please enter a valid 6-digit code")
    return code


class Session:
    """
    One endpoint's view of a transfer attempt.

    Written by the relay client, negotiator and transfer codec;
    read by the presentation layer through properties and listeners.
    """

    def __init__(self, role: Role):
        self._role = role
        self._room_code: Optional[str] = None
        self._key: Optional[str] = None
        self._status: Optional[Status] = None
        self._history: Deque[Status] = deque(maxlen=STATUS_HISTORY_SIZE)
        self._callbacks: List[StatusCallback] = []

    @property
    def role(self) -> Role:
        return self._role

    @property
    def room_code(self) -> Optional[str]:
        return self._room_code

    @room_code.setter
    def room_code(self, code: str):
        self._room_code = code

    @property
    def key(self) -> Optional[str]:
        return self._key

    @key.setter
    def key(self, key: str):
        self._key = key

    @property
    def status(self) -> Optional[Status]:
        """The most recent status update."""
        return self._status

    @property
    def history(self) -> List[Status]:
        return list(self._history)

    def on_status(self, callback: StatusCallback):
        """Register a callback invoked on every status update."""
        self._callbacks.append(callback)

    def update_status(self, status_type: StatusType, message: str) -> Status:
        """Record a new status and notify listeners."""
        status = Status(type=status_type, message=message)
        self._status = status
        self._history.append(status)

        logger.log(
            _LOG_LEVELS[status_type],
            f"[{status_type.value.upper()}] {message}"
        )

        for callback in self._callbacks:
            try:
                callback(status)
            except Exception as e:
                logger.error(f"Status listener failed: {e}")

        return status

    def info(self, message: str) -> Status:
        return self.update_status(StatusType.INFO, message)

    def success(self, message: str) -> Status:
        return self.update_status(StatusType.SUCCESS, message)

    def warning(self, message: str) -> Status:
        return self.update_status(StatusType.WARNING, message)

    def error(self, message: str) -> Status:
        return self.update_status(StatusType.ERROR, message)

    def reset(self):
        """Forget the code, key and status (session ends)."""
        self._room_code = None
        self._key = None
        self._status = None
        self._history.clear()

    def to_dict(self) -> dict:
        """Read-only snapshot for the presentation layer (key excluded)."""
        return {
            'role': self._role.value,
            'room_code': self._room_code,
            'status': self._status.to_dict() if self._status else None,
        }
