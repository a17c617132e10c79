"""
Fluxion - Relay-bootstrapped encrypted P2P file transfer.

A tiny WebSocket relay introduces two endpoints sharing a 6-digit code,
they negotiate a direct WebRTC data channel, and the file travels over
that channel encrypted with a key the operators share out of band.
"""

__version__ = "1.0.0"
