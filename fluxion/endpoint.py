"""
Fluxion Endpoints - Main Controllers

An endpoint is one side of a transfer. It orchestrates all components:
- Session (room code, key, status history)
- Relay connection + negotiator (room join, offer/answer, candidates)
- Peer transport + data channel
- Transfer codec (sender or receiver path)

Role is a type: SenderEndpoint only ever offers and sends,
ReceiverEndpoint only ever answers and receives.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from .config import Config
from .file.storage import LocalFileSink, LocalFileSource
from .rtc.peer import PeerChannel, PeerTransport, create_transport
from .session import Role, Session, generate_room_code, validate_room_code
from .signaling.client import RelayConnection, WebSocketRelayConnection
from .signaling.negotiator import Negotiator, ReceiverNegotiator, SenderNegotiator
from .transfer.crypto import generate_key, validate_key
from .transfer.progress import ProgressCallback
from .transfer.receiver import FileReceiver, ReceiveResult
from .transfer.sender import FileSender, describe_file_size

logger = logging.getLogger(__name__)

CHANNEL_LABEL = "file"

TransportFactory = Callable[[list], PeerTransport]
RelayFactory = Callable[[str], RelayConnection]


class Endpoint:
    """Shared plumbing for both roles."""

    role: Optional[Role] = None

    def __init__(self, config: Optional[Config] = None,
                 transport_factory: TransportFactory = create_transport,
                 relay_factory: RelayFactory = WebSocketRelayConnection):
        self.config = config or Config()
        self.transport_factory = transport_factory
        self.relay_factory = relay_factory

        self.session = Session(self.role)
        self.negotiator: Optional[Negotiator] = None
        self.transport: Optional[PeerTransport] = None
        self.channel: Optional[PeerChannel] = None
        self._closing = False

    def _create_links(self, negotiator_cls) -> Negotiator:
        self.transport = self.transport_factory(self.config.ice_servers)
        relay = self.relay_factory(self.config.relay_url)
        self.negotiator = negotiator_cls(
            self.session,
            self.transport,
            relay,
            negotiation_timeout=self.config.negotiation_timeout,
        )
        return self.negotiator

    def _watch_channel(self, channel: PeerChannel, opened: asyncio.Event,
                       closed: asyncio.Event):
        self.channel = channel

        def on_open():
            self.session.success("DataChannel opened")
            opened.set()

        def on_close():
            # teardown after the outcome must not replace the final status
            if self._closing:
                logger.debug("DataChannel closed locally")
            else:
                self.session.info("DataChannel closed")
            closed.set()

        channel.on_open(on_open)
        channel.on_close(on_close)
        if channel.ready_state == "open":
            opened.set()

    async def _until(self, event: asyncio.Event, timeout: Optional[float] = None) -> bool:
        """
        Wait for ``event`` unless the negotiation ends first.

        Returns:
            True if the event fired
        """
        waiters = [
            asyncio.create_task(event.wait()),
            asyncio.create_task(self.negotiator.wait_closed()),
        ]
        try:
            await asyncio.wait(waiters, timeout=timeout,
                               return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
        return event.is_set()

    async def close(self):
        """Tear down the channel, negotiation and transport."""
        self._closing = True
        if self.channel is not None and self.channel.ready_state not in ("closing", "closed"):
            self.channel.close()
        if self.negotiator is not None:
            await self.negotiator.close("endpoint closed")
        if self.transport is not None:
            try:
                await self.transport.close()
            except Exception as e:
                logger.debug(f"Error closing transport: {e}")

    def get_stats(self) -> dict:
        return {
            'session': self.session.to_dict(),
            'negotiation': self.negotiator.get_stats() if self.negotiator else None,
        }


class SenderEndpoint(Endpoint):
    """
    Offers a file under a fresh room code and key.

    The code and key are generated at construction so they can be shown
    to the operator before any network activity.
    """

    role = Role.SENDER

    def __init__(self, config: Optional[Config] = None,
                 transport_factory: TransportFactory = create_transport,
                 relay_factory: RelayFactory = WebSocketRelayConnection,
                 room_code: Optional[str] = None,
                 key: Optional[str] = None):
        super().__init__(config, transport_factory, relay_factory)

        self.session.room_code = validate_room_code(room_code) if room_code else generate_room_code()
        if key:
            validate_key(key)
            self.session.key = key
        else:
            self.session.key = generate_key()

        self.source = LocalFileSource()
        self.sender: Optional[FileSender] = None

    @property
    def room_code(self) -> str:
        return self.session.room_code

    @property
    def key(self) -> str:
        return self.session.key

    async def send_file(self, path: Path,
                        progress_callback: Optional[ProgressCallback] = None) -> Optional[int]:
        """
        Wait for the receiver, then send ``path``.

        Returns:
            Bytes sent (original file size), or None if the transfer failed

        Raises:
            FileNotFoundError: if ``path`` is not a file
            RelayError: if the relay is unreachable
        """
        local_file = await self.source.read(path)
        describe_file_size(local_file, self.session)

        negotiator = self._create_links(SenderNegotiator)

        # The channel must exist before the offer so it is part of the SDP
        opened, closed = asyncio.Event(), asyncio.Event()
        self._watch_channel(self.transport.create_channel(CHANNEL_LABEL), opened, closed)

        try:
            await negotiator.start(self.room_code)

            if not await negotiator.wait_established():
                return None
            if not await self._until(opened):
                self.session.error("Peer channel closed before opening")
                return None

            self.sender = FileSender(
                self.channel,
                self.session,
                max_buffered_amount=self.config.max_buffered_amount,
                poll_interval=self.config.buffer_poll_interval,
                metadata_delay=self.config.metadata_delay,
            )
            sent = await self.sender.send(local_file, self.key, progress_callback)
            if sent is None:
                return None

            # Let the receiver take everything before tearing down
            await self.sender.drain(self.config.linger_timeout)
            if not await self._until(closed, self.config.linger_timeout):
                logger.debug("Receiver did not close the channel; closing it")
            return sent

        finally:
            await self.close()


class ReceiverEndpoint(Endpoint):
    """Joins a sender's room and saves the file it sends."""

    role = Role.RECEIVER

    def __init__(self, config: Optional[Config] = None,
                 transport_factory: TransportFactory = create_transport,
                 relay_factory: RelayFactory = WebSocketRelayConnection):
        super().__init__(config, transport_factory, relay_factory)
        self.receiver: Optional[FileReceiver] = None
        self.result: Optional[ReceiveResult] = None

    async def receive_file(self, room_code: str, key: str,
                           output_dir: Optional[Path] = None,
                           progress_callback: Optional[ProgressCallback] = None) -> Optional[Path]:
        """
        Join ``room_code`` and receive one file.

        The code and key are validated before connecting.

        Returns:
            Path of the saved file, or None if the transfer failed

        Raises:
            InvalidRoomCodeError: if the code is not six digits
            InvalidKeyError: if the key is not 64 hex characters
            RelayError: if the relay is unreachable
        """
        room_code = validate_room_code(room_code)
        key = key.strip()
        validate_key(key)
        self.session.room_code = room_code
        self.session.key = key

        sink = LocalFileSink(output_dir if output_dir is not None else self.config.output_dir)
        self.receiver = FileReceiver(key, sink, self.session, progress_callback)

        negotiator = self._create_links(ReceiverNegotiator)

        inbox: asyncio.Queue = asyncio.Queue()
        opened, closed = asyncio.Event(), asyncio.Event()

        def on_channel(channel: PeerChannel):
            logger.info(f"Peer channel received: {channel.label}")
            channel.on_message(inbox.put_nowait)
            self._watch_channel(channel, opened, closed)
            channel.on_close(lambda: inbox.put_nowait(None))

        self.transport.on_channel(on_channel)

        try:
            await negotiator.start(room_code)

            if not await negotiator.wait_established():
                return None

            self.result = await self._consume(inbox)
            if self.result is not None and self.result.success:
                return self.result.path
            return None

        finally:
            await self.close()

    async def _consume(self, inbox: asyncio.Queue) -> Optional[ReceiveResult]:
        """Feed channel messages to the receiver, one at a time, in order."""
        watcher = asyncio.create_task(self.negotiator.wait_closed())
        watcher.add_done_callback(lambda _: inbox.put_nowait(None))

        try:
            while True:
                raw = await inbox.get()
                if raw is None:
                    if self.receiver.in_progress:
                        self.session.error("Connection closed before the transfer completed")
                    return None

                result = await self.receiver.handle_message(raw)
                if result is not None:
                    return result
        finally:
            watcher.cancel()
