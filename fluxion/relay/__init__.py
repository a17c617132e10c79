"""
Relay Module - Signaling Rendezvous

Forwards signaling messages between clients sharing a room code.
"""

from .rooms import RoomRegistry
from .server import create_app, run_relay_server

__all__ = [
    'RoomRegistry',
    'create_app',
    'run_relay_server',
]
