"""
Relay Room Registry

Design Decision: Room State Ownership
=====================================

Options Considered:
1. Module-level dict shared by every connection handler
   - Simplest possible relay
   - Mutations from different handlers can interleave
2. Actor task with an inbox
   - Strict serialization, but every call becomes a round trip
3. One registry object guarded by an asyncio.Lock

Decision: RoomRegistry with a single lock
- Join/leave mutate membership under the lock (single writer)
- Relaying takes a snapshot under the lock and sends outside it,
  so one slow member never blocks joins for other rooms
- Content-oblivious: only the join envelope is understood, everything
  else is forwarded byte-for-byte

Rooms are ephemeral. Nothing is persisted; a restart forgets all rooms.
"""

import asyncio
import json
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

# Sends one text frame to a connected client
SendFunc = Callable[[str], Awaitable[None]]


class RoomRegistry:
    """
    Room-keyed message broadcaster.

    Connections are identified by an opaque ``connection_id`` and must be
    attached (with a send function) before they can join or relay.
    """

    def __init__(self):
        self._rooms: Dict[str, Set[str]] = {}         # room code -> connection ids
        self._memberships: Dict[str, str] = {}        # connection id -> room code
        self._senders: Dict[str, SendFunc] = {}       # connection id -> send
        self._lock = asyncio.Lock()

        # Statistics
        self.messages_relayed = 0
        self.messages_dropped = 0

    # === Connection lifecycle ===

    def attach(self, connection_id: str, send: SendFunc):
        """Register a newly connected client."""
        self._senders[connection_id] = send
        logger.info("Client connected")

    async def detach(self, connection_id: str):
        """Forget a disconnected client (leaves its room)."""
        await self.leave(connection_id)
        self._senders.pop(connection_id, None)
        logger.info("Client disconnected")

    # === Room operations ===

    async def join(self, connection_id: str, room_code: str) -> dict:
        """
        Add a connection to a room, creating the room if needed.

        A connection belongs to at most one room; joining a second code
        moves it. The join confirmation is sent to the joining connection
        only and also returned.
        """
        async with self._lock:
            previous = self._memberships.get(connection_id)
            if previous is not None and previous != room_code:
                self._remove_member(connection_id, previous)

            if room_code not in self._rooms:
                self._rooms[room_code] = set()
                logger.info(f"Room created: {room_code}")

            self._rooms[room_code].add(connection_id)
            self._memberships[connection_id] = room_code
            logger.info(
                f"Client joined room: {room_code} "
                f"({len(self._rooms[room_code])} clients)"
            )

        confirmation = {'type': 'joined', 'room': room_code}
        await self._deliver(connection_id, json.dumps(confirmation))
        return confirmation

    async def relay(self, connection_id: str, raw: str) -> int:
        """
        Forward ``raw`` unmodified to every other member of the sender's room.

        Best-effort: no retry, no acknowledgement.

        Returns:
            Number of members the message was delivered to
        """
        async with self._lock:
            room_code = self._memberships.get(connection_id)
            if room_code is None:
                logger.debug("Dropping message from client that has not joined a room")
                self.messages_dropped += 1
                return 0
            targets = [
                member for member in self._rooms.get(room_code, ())
                if member != connection_id
            ]

        delivered = 0
        for member in targets:
            if await self._deliver(member, raw):
                delivered += 1

        self.messages_relayed += 1
        return delivered

    async def leave(self, connection_id: str):
        """Remove a connection from its room; delete the room if empty."""
        async with self._lock:
            room_code = self._memberships.get(connection_id)
            if room_code is not None:
                self._remove_member(connection_id, room_code)

    async def handle_message(self, connection_id: str, raw: str):
        """
        Entry point for every inbound text frame.

        Malformed input is logged and dropped; it never affects other
        members or the sender's connection.
        """
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Error handling message: {e}")
            self.messages_dropped += 1
            return

        if not isinstance(data, dict):
            logger.warning("Error handling message: envelope is not a JSON object")
            self.messages_dropped += 1
            return

        if data.get('type') == 'join':
            room_code = data.get('room')
            if not isinstance(room_code, str) or not room_code:
                logger.warning("Error handling message: join without a room code")
                self.messages_dropped += 1
                return
            await self.join(connection_id, room_code)
            return

        await self.relay(connection_id, raw)

    # === Introspection ===

    def room_of(self, connection_id: str) -> Optional[str]:
        return self._memberships.get(connection_id)

    def room_size(self, room_code: str) -> int:
        return len(self._rooms.get(room_code, ()))

    def has_room(self, room_code: str) -> bool:
        return room_code in self._rooms

    def members(self, room_code: str) -> List[str]:
        return sorted(self._rooms.get(room_code, ()))

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    @property
    def connection_count(self) -> int:
        return len(self._senders)

    def get_stats(self) -> dict:
        return {
            'rooms': self.room_count,
            'connections': self.connection_count,
            'messages_relayed': self.messages_relayed,
            'messages_dropped': self.messages_dropped,
        }

    # === Internals ===

    def _remove_member(self, connection_id: str, room_code: str):
        """Remove membership. Caller must hold the lock."""
        self._memberships.pop(connection_id, None)
        members = self._rooms.get(room_code)
        if members is None:
            return

        members.discard(connection_id)
        logger.info(
            f"Client left room: {room_code} ({len(members)} clients remaining)"
        )

        if not members:
            del self._rooms[room_code]
            logger.info(f"Room deleted: {room_code}")

    async def _deliver(self, connection_id: str, text: str) -> bool:
        send = self._senders.get(connection_id)
        if send is None:
            return False
        try:
            await send(text)
            return True
        except Exception as e:
            logger.warning(f"Failed to deliver message to {connection_id[:8]}: {e}")
            return False
