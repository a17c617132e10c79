"""
RTC Module - Peer Transport

Direct peer connection and data channel used once signaling completes.
"""

from .peer import PeerChannel, PeerTransport, AiortcTransport, create_transport

__all__ = [
    'PeerChannel',
    'PeerTransport',
    'AiortcTransport',
    'create_transport',
]
