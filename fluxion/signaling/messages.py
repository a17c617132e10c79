"""
Signaling Envelope

Message Format (JSON text frames over the relay):
```
{"type": "join", "room": "482913"}          client -> relay
{"type": "joined", "room": "482913"}        relay -> joining client only
{"type": "peer_ready"}                      receiver -> room
{"type": "offer", "sdp": "..."}             sender -> room
{"type": "answer", "sdp": "..."}            receiver -> room
{"candidate": "candidate:...", "sdpMid": "0", "sdpMLineIndex": 0}
```

Descriptions and candidates use the browser's RTCSessionDescription /
RTCIceCandidate JSON shapes, so Python peers interoperate with the
web frontend. Candidates carry no ``type`` field; they are
recognised by their ``candidate`` key.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from ..errors import ProtocolError


class SignalType(Enum):
    """Signaling message kinds."""
    JOIN = "join"
    JOINED = "joined"
    PEER_READY = "peer_ready"
    OFFER = "offer"
    ANSWER = "answer"
    CANDIDATE = "candidate"


@dataclass
class SignalMessage:
    """A parsed signaling message."""
    type: SignalType
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def room(self) -> Optional[str]:
        return self.payload.get('room')

    def to_json(self) -> str:
        return json.dumps(self.payload)


def parse_signal(raw: str) -> SignalMessage:
    """
    Parse a raw relay frame.

    Raises:
        ProtocolError: if the frame is not a JSON object of a known kind
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise ProtocolError(f"Unparseable signaling message: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError("Signaling message is not a JSON object")

    msg_type = data.get('type')
    if msg_type is not None:
        try:
            return SignalMessage(type=SignalType(msg_type), payload=data)
        except ValueError:
            raise ProtocolError(f"Unknown signaling message type: {msg_type!r}")

    if 'candidate' in data:
        return SignalMessage(type=SignalType.CANDIDATE, payload=data)

    raise ProtocolError("Signaling message has neither a type nor a candidate")


# === Builders ===

def join_message(room_code: str) -> dict:
    return {'type': SignalType.JOIN.value, 'room': room_code}


def peer_ready_message() -> dict:
    return {'type': SignalType.PEER_READY.value}


def description_message(description: dict) -> dict:
    """Session description in RTCSessionDescription JSON form."""
    if description.get('type') not in (SignalType.OFFER.value, SignalType.ANSWER.value):
        raise ProtocolError(f"Not a session description: {description.get('type')!r}")
    return {'type': description['type'], 'sdp': description.get('sdp', '')}


def candidate_message(candidate: dict) -> dict:
    """Network candidate in RTCIceCandidate JSON form."""
    if 'candidate' not in candidate:
        raise ProtocolError("Candidate record has no 'candidate' field")
    return dict(candidate)
