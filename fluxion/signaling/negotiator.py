"""
Negotiation State Machine

Design Decision: Callbacks vs. Event Queue
==========================================

Options Considered:
1. Handle relay messages and transport callbacks where they fire
   - What browser code usually does
   - Handlers interleave at every await (hidden re-entrancy)
2. One asyncio.Queue of typed events per negotiator, one consumer task
   - Each event is fully handled before the next one starts
   - Candidate flushing can't race with newly arriving candidates

Decision: Typed events, single consumer

States:
```
Idle -> RoleChosen -> Joining -> Joined -> OfferSent | AwaitingOffer
     -> AnswerExchanged -> Established -> Closed
                      (any non-terminal) -> Failed
```

Role asymmetry: SenderNegotiator and ReceiverNegotiator register only the
message handlers their role owns. An offer reaching a sender, or an answer
reaching a receiver, finds no handler and is dropped quietly; that is
normal on a broadcast relay, not an error.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

from .candidates import CandidateQueue
from .client import RelayConnection
from .messages import (
    SignalMessage, SignalType, parse_signal,
    join_message, peer_ready_message, description_message, candidate_message,
)
from ..errors import NegotiationError, ProtocolError, RelayError
from ..rtc.peer import PeerTransport
from ..session import Role, Session

logger = logging.getLogger(__name__)


class NegotiationState(Enum):
    """Negotiation lifecycle."""
    IDLE = "idle"
    ROLE_CHOSEN = "role_chosen"
    JOINING = "joining"
    JOINED = "joined"
    OFFER_SENT = "offer_sent"
    AWAITING_OFFER = "awaiting_offer"
    ANSWER_EXCHANGED = "answer_exchanged"
    ESTABLISHED = "established"
    CLOSED = "closed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({NegotiationState.CLOSED, NegotiationState.FAILED})


# === Events ===

@dataclass
class RelayMessageEvent:
    raw: str


@dataclass
class RelayClosedEvent:
    pass


@dataclass
class TransportStateEvent:
    state: str


@dataclass
class LocalCandidateEvent:
    candidate: dict


@dataclass
class DeadlineEvent:
    pass


@dataclass
class CloseRequestEvent:
    reason: str = "closed"


SignalHandler = Callable[[SignalMessage], Awaitable[None]]


class Negotiator:
    """
    Role-aware offer/answer/candidate orchestrator.

    Use SenderNegotiator or ReceiverNegotiator; the base class holds
    everything both roles share (join, candidates, transport state, close).
    """

    role: Optional[Role] = None

    def __init__(self, session: Session, transport: PeerTransport,
                 relay: RelayConnection,
                 negotiation_timeout: Optional[float] = None):
        if self.role is None:
            raise TypeError("Use SenderNegotiator or ReceiverNegotiator")
        if session.role is not self.role:
            raise ValueError(
                f"{type(self).__name__} needs a {self.role.value} session, "
                f"got {session.role.value}"
            )

        self.session = session
        self.transport = transport
        self.relay = relay
        self.negotiation_timeout = negotiation_timeout
        self.candidates = CandidateQueue()

        self._state = NegotiationState.IDLE
        self._events: asyncio.Queue = asyncio.Queue()
        self._handlers: Dict[SignalType, SignalHandler] = {
            SignalType.JOINED: self._handle_joined,
            SignalType.CANDIDATE: self._handle_candidate,
        }

        self._transport_connected = False
        self.established = False

        self._settled = asyncio.Event()    # established or terminal
        self._finished = asyncio.Event()   # terminal
        self._reader_task: Optional[asyncio.Task] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._deadline: Optional[asyncio.TimerHandle] = None

        # Statistics
        self.candidates_applied = 0
        self.messages_ignored = 0

        transport.on_state_change(lambda state: self.post(TransportStateEvent(state)))
        transport.on_candidate(lambda candidate: self.post(LocalCandidateEvent(candidate)))

        self._transition(NegotiationState.ROLE_CHOSEN)

    @property
    def state(self) -> NegotiationState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def register_handler(self, msg_type: SignalType, handler: SignalHandler):
        self._handlers[msg_type] = handler

    def post(self, event):
        """Queue an event for the negotiation loop."""
        self._events.put_nowait(event)

    # === Lifecycle ===

    async def start(self, room_code: str):
        """
        Connect to the relay and join ``room_code``.

        Raises:
            NegotiationError: if called twice
            RelayError: if the relay is unreachable (session moves to Failed)
        """
        if self._state is not NegotiationState.ROLE_CHOSEN:
            raise NegotiationError(f"Cannot start negotiation from state {self._state.value}")

        self.session.room_code = room_code
        self._transition(NegotiationState.JOINING)
        self.session.info("Connecting to signaling server...")

        try:
            await self.relay.connect()
        except RelayError as e:
            self.session.error(
                "Failed to connect to signaling server. "
                "Check URL and ensure server is running."
            )
            await self._finish(NegotiationState.FAILED)
            raise

        self._reader_task = asyncio.create_task(self._read_relay())
        self._loop_task = asyncio.create_task(self._run())

        if self.negotiation_timeout is not None:
            loop = asyncio.get_running_loop()
            self._deadline = loop.call_later(
                self.negotiation_timeout, self.post, DeadlineEvent()
            )

        await self.relay.send(join_message(room_code))

    async def wait_established(self) -> bool:
        """Wait until the channel is established or negotiation ends."""
        await self._settled.wait()
        return self.established

    async def wait_closed(self):
        await self._finished.wait()

    async def close(self, reason: str = "closed"):
        """Close the session from the outside (operator or endpoint)."""
        if self.is_terminal:
            return
        if self._loop_task is None or self._loop_task.done():
            await self._finish(NegotiationState.CLOSED)
            return
        self.post(CloseRequestEvent(reason))
        await self._finished.wait()

    # === Event loop ===

    async def _read_relay(self):
        """Pump relay frames into the event queue."""
        while True:
            raw = await self.relay.receive()
            if raw is None:
                self.post(RelayClosedEvent())
                return
            self.post(RelayMessageEvent(raw))

    async def _run(self):
        while not self.is_terminal:
            event = await self._events.get()
            await self._dispatch(event)

    async def _dispatch(self, event):
        if isinstance(event, RelayMessageEvent):
            await self._on_relay_message(event.raw)
        elif isinstance(event, TransportStateEvent):
            await self._on_transport_state(event.state)
        elif isinstance(event, LocalCandidateEvent):
            await self.relay.send(candidate_message(event.candidate))
        elif isinstance(event, RelayClosedEvent):
            await self._on_relay_closed()
        elif isinstance(event, DeadlineEvent):
            if not self.established and not self.is_terminal:
                self.session.error("Negotiation timed out")
                await self._finish(NegotiationState.FAILED)
        elif isinstance(event, CloseRequestEvent):
            logger.debug(f"Close requested: {event.reason}")
            await self._finish(NegotiationState.CLOSED)
        else:
            logger.warning(f"Unknown negotiation event: {event!r}")

    async def _on_relay_message(self, raw: str):
        try:
            message = parse_signal(raw)
        except ProtocolError as e:
            logger.warning(f"Dropping signaling message: {e}")
            return

        handler = self._handlers.get(message.type)
        if handler is None:
            self.messages_ignored += 1
            logger.debug(
                f"Ignoring {message.type.value} message - I am the {self.role.value}"
            )
            return

        try:
            await handler(message)
        except Exception as e:
            logger.error(f"Error handling signaling message: {e}")
            self.session.error(f"Signaling error: {e}")

    async def _on_transport_state(self, state: str):
        self.session.info(f"Connection state: {state}")

        if state == "connected":
            self._transport_connected = True
            if self._state is NegotiationState.ANSWER_EXCHANGED:
                self._establish()
        elif state == "failed":
            self.session.error("Connection failed. Check network/firewall.")
            await self._finish(NegotiationState.FAILED)
        elif state == "closed":
            await self._finish(NegotiationState.CLOSED)

    async def _on_relay_closed(self):
        if self.established:
            # The peer channel no longer depends on the relay
            logger.warning("Disconnected from signaling server")
            return
        self.session.warning("Disconnected from signaling server")
        await self._finish(NegotiationState.CLOSED)

    # === Shared handlers ===

    async def _handle_joined(self, message: SignalMessage):
        if self._state is not NegotiationState.JOINING:
            logger.debug(f"Ignoring joined confirmation in state {self._state.value}")
            return
        logger.info(f"Joined room: {message.room}")
        self._transition(NegotiationState.JOINED)
        self.session.success(f"Connected to room {self.session.room_code}")
        await self._on_joined()

    async def _on_joined(self):
        """Role-specific reaction to the join confirmation."""

    async def _handle_candidate(self, message: SignalMessage):
        candidate = message.payload
        if self.transport.has_remote_description:
            await self._apply_candidate(candidate)
        else:
            self.candidates.push(candidate)

    async def _apply_candidate(self, candidate: dict):
        try:
            await self.transport.add_candidate(candidate)
            self.candidates_applied += 1
        except Exception as e:
            logger.warning(f"Failed to apply remote candidate: {e}")

    async def _set_remote_description(self, description: dict):
        """Record the remote description, then flush queued candidates in order."""
        await self.transport.set_remote_description(description)
        for candidate in self.candidates.drain():
            await self._apply_candidate(candidate)

    def _enter_answer_exchanged(self):
        self._transition(NegotiationState.ANSWER_EXCHANGED)
        if self._transport_connected:
            self._establish()

    # === State helpers ===

    def _establish(self):
        self._transition(NegotiationState.ESTABLISHED)
        self.established = True
        self.session.success("P2P connection established")
        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None
        self._settled.set()

    def _transition(self, new_state: NegotiationState):
        logger.debug(
            f"[{self.role.value.upper()}] {self._state.value} -> {new_state.value}"
        )
        self._state = new_state

    async def _finish(self, state: NegotiationState):
        """Enter a terminal state and release candidates and relay membership."""
        if self.is_terminal:
            return

        self._transition(state)
        self.candidates.clear()

        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None

        if self._reader_task is not None and self._reader_task is not asyncio.current_task():
            self._reader_task.cancel()

        try:
            await self.relay.close()
        except Exception as e:
            logger.debug(f"Error closing relay connection: {e}")

        self._settled.set()
        self._finished.set()

    def get_stats(self) -> dict:
        return {
            'role': self.role.value,
            'state': self._state.value,
            'candidates_queued': self.candidates.total_queued,
            'candidates_applied': self.candidates_applied,
            'messages_ignored': self.messages_ignored,
        }


class SenderNegotiator(Negotiator):
    """Offers once the receiver announces itself; consumes answers."""

    role = Role.SENDER

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.register_handler(SignalType.PEER_READY, self._handle_peer_ready)
        self.register_handler(SignalType.ANSWER, self._handle_answer)

    async def _on_joined(self):
        self.session.info(
            f"Share code {self.session.room_code} with receiver. "
            f"Waiting for connection..."
        )

    async def _handle_peer_ready(self, message: SignalMessage):
        if self._state is not NegotiationState.JOINED:
            logger.debug(f"Ignoring peer_ready in state {self._state.value}")
            return

        logger.info("Peer is ready, sending offer...")
        offer = await self.transport.create_offer()
        local = await self.transport.set_local_description(offer)
        await self.relay.send(description_message(local))
        self._transition(NegotiationState.OFFER_SENT)

    async def _handle_answer(self, message: SignalMessage):
        if self._state is not NegotiationState.OFFER_SENT:
            logger.debug(f"Ignoring answer in state {self._state.value}")
            return

        await self._set_remote_description(message.payload)
        self.session.info("Received answer, connection establishing...")
        self._enter_answer_exchanged()


class ReceiverNegotiator(Negotiator):
    """Announces readiness after joining; answers the sender's offer."""

    role = Role.RECEIVER

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.register_handler(SignalType.OFFER, self._handle_offer)

    async def _on_joined(self):
        await self.relay.send(peer_ready_message())
        self._transition(NegotiationState.AWAITING_OFFER)
        self.session.info(
            f"Joined room {self.session.room_code}. Waiting for file..."
        )

    async def _handle_offer(self, message: SignalMessage):
        if self._state is not NegotiationState.AWAITING_OFFER:
            logger.debug(f"Ignoring offer in state {self._state.value}")
            return

        await self._set_remote_description(message.payload)
        answer = await self.transport.create_answer()
        local = await self.transport.set_local_description(answer)
        await self.relay.send(description_message(local))
        self.session.info("Received offer, sent answer")
        self._enter_answer_exchanged()
