"""
Signaling Module - Connection Negotiation

Turns a shared room code into an established peer channel by exchanging
offer, answer and candidates through the relay.
"""

from .candidates import CandidateQueue
from .client import RelayConnection, WebSocketRelayConnection
from .messages import SignalMessage, SignalType, parse_signal
from .negotiator import (
    NegotiationState,
    Negotiator,
    SenderNegotiator,
    ReceiverNegotiator,
)

__all__ = [
    'CandidateQueue',
    'RelayConnection',
    'WebSocketRelayConnection',
    'SignalMessage',
    'SignalType',
    'parse_signal',
    'NegotiationState',
    'Negotiator',
    'SenderNegotiator',
    'ReceiverNegotiator',
]
