"""
Peer Transport

Design Decision: WebRTC Stack
=============================

Options Considered:
1. aiortc - Pure-Python WebRTC (ICE, DTLS, SCTP data channels) on asyncio
2. Bindings to libwebrtc - Full featured, heavy native build
3. Custom UDP hole punching - Reinventing ICE, no browser interop

Decision: aiortc behind a small interface
- Interoperates with browser peers of the web frontend
- The negotiator and transfer codec only see PeerTransport and
  PeerChannel, so tests drive them with in-memory fakes

Note: aiortc gathers all local candidates during setLocalDescription and
embeds them in the SDP instead of trickling them, so on_candidate never
fires for AiortcTransport. Remote peers (browsers) still trickle theirs,
which is why the candidate queue matters.
"""

import logging
from typing import Callable, List, Optional, Union

from aiortc import (
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp

from ..errors import NegotiationError

logger = logging.getLogger(__name__)

StateCallback = Callable[[str], None]
CandidateCallback = Callable[[dict], None]
MessageCallback = Callable[[Union[str, bytes]], None]
EventCallback = Callable[[], None]


class PeerChannel:
    """Ordered, reliable message channel between the two peers."""

    @property
    def label(self) -> str:
        raise NotImplementedError

    @property
    def ready_state(self) -> str:
        """'connecting', 'open', 'closing' or 'closed'."""
        raise NotImplementedError

    @property
    def buffered_amount(self) -> int:
        """Bytes queued for sending but not yet handed to the network."""
        raise NotImplementedError

    def send(self, data: Union[str, bytes]):
        raise NotImplementedError

    def on_open(self, callback: EventCallback):
        raise NotImplementedError

    def on_close(self, callback: EventCallback):
        raise NotImplementedError

    def on_message(self, callback: MessageCallback):
        raise NotImplementedError

    def close(self):
        raise NotImplementedError


class PeerTransport:
    """Offer/answer capable peer connection."""

    def on_state_change(self, callback: StateCallback):
        raise NotImplementedError

    def on_candidate(self, callback: CandidateCallback):
        raise NotImplementedError

    def on_channel(self, callback: Callable[[PeerChannel], None]):
        raise NotImplementedError

    def create_channel(self, label: str) -> PeerChannel:
        raise NotImplementedError

    async def create_offer(self) -> dict:
        raise NotImplementedError

    async def create_answer(self) -> dict:
        raise NotImplementedError

    async def set_local_description(self, description: dict) -> dict:
        """Apply a local description; returns the description to signal."""
        raise NotImplementedError

    async def set_remote_description(self, description: dict):
        raise NotImplementedError

    @property
    def has_remote_description(self) -> bool:
        raise NotImplementedError

    async def add_candidate(self, candidate: dict):
        raise NotImplementedError

    async def close(self):
        raise NotImplementedError


class AiortcChannel(PeerChannel):
    """PeerChannel over an aiortc RTCDataChannel."""

    def __init__(self, channel):
        self._channel = channel

    @property
    def label(self) -> str:
        return self._channel.label

    @property
    def ready_state(self) -> str:
        return self._channel.readyState

    @property
    def buffered_amount(self) -> int:
        return self._channel.bufferedAmount

    def send(self, data: Union[str, bytes]):
        self._channel.send(data)

    def on_open(self, callback: EventCallback):
        self._channel.on("open", callback)

    def on_close(self, callback: EventCallback):
        self._channel.on("close", callback)

    def on_message(self, callback: MessageCallback):
        self._channel.on("message", callback)

    def close(self):
        self._channel.close()


class AiortcTransport(PeerTransport):
    """PeerTransport backed by aiortc's RTCPeerConnection."""

    def __init__(self, ice_servers: Optional[List[str]] = None):
        servers = [RTCIceServer(urls=url) for url in (ice_servers or [])]
        self._pc = RTCPeerConnection(configuration=RTCConfiguration(iceServers=servers))

        self._state_callbacks: List[StateCallback] = []
        self._candidate_callbacks: List[CandidateCallback] = []
        self._channel_callbacks: List[Callable[[PeerChannel], None]] = []

        @self._pc.on("connectionstatechange")
        async def on_connection_state_change():
            state = self._pc.connectionState
            logger.debug(f"Connection state: {state}")
            for callback in self._state_callbacks:
                callback(state)

        @self._pc.on("iceconnectionstatechange")
        async def on_ice_connection_state_change():
            logger.debug(f"ICE connection state: {self._pc.iceConnectionState}")

        @self._pc.on("datachannel")
        def on_datachannel(channel):
            logger.debug(f"DataChannel received: {channel.label}")
            wrapped = AiortcChannel(channel)
            for callback in self._channel_callbacks:
                callback(wrapped)

    def on_state_change(self, callback: StateCallback):
        self._state_callbacks.append(callback)

    def on_candidate(self, callback: CandidateCallback):
        self._candidate_callbacks.append(callback)

    def on_channel(self, callback: Callable[[PeerChannel], None]):
        self._channel_callbacks.append(callback)

    def create_channel(self, label: str) -> PeerChannel:
        return AiortcChannel(self._pc.createDataChannel(label, ordered=True))

    async def create_offer(self) -> dict:
        offer = await self._pc.createOffer()
        return {'type': offer.type, 'sdp': offer.sdp}

    async def create_answer(self) -> dict:
        answer = await self._pc.createAnswer()
        return {'type': answer.type, 'sdp': answer.sdp}

    async def set_local_description(self, description: dict) -> dict:
        await self._pc.setLocalDescription(_to_rtc_description(description))
        local = self._pc.localDescription
        return {'type': local.type, 'sdp': local.sdp}

    async def set_remote_description(self, description: dict):
        await self._pc.setRemoteDescription(_to_rtc_description(description))

    @property
    def has_remote_description(self) -> bool:
        return self._pc.remoteDescription is not None

    async def add_candidate(self, candidate: dict):
        text = candidate.get('candidate') or ''
        if not text:
            logger.debug("Remote end-of-candidates marker")
            return

        if text.startswith('candidate:'):
            text = text[len('candidate:'):]

        ice_candidate = candidate_from_sdp(text)
        ice_candidate.sdpMid = candidate.get('sdpMid')
        ice_candidate.sdpMLineIndex = candidate.get('sdpMLineIndex')
        await self._pc.addIceCandidate(ice_candidate)

    async def close(self):
        await self._pc.close()


def _to_rtc_description(description: dict) -> RTCSessionDescription:
    try:
        return RTCSessionDescription(sdp=description['sdp'], type=description['type'])
    except (KeyError, ValueError) as e:
        raise NegotiationError(f"Invalid session description: {e}") from e


def create_transport(ice_servers: Optional[List[str]] = None) -> PeerTransport:
    """Default transport factory."""
    return AiortcTransport(ice_servers)
