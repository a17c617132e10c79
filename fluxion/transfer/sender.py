"""
File Sender

Send Flow:
1. Encrypt the whole file once: base64(IV || AES-256-CBC(file))
2. Send metadata (name, size, type, totalChunks, encryptedSize)
3. Short pause so the receiver can allocate its chunk buffer
4. Send chunks 0..N-1 strictly in order, pausing while the channel
   has more than 1 MiB queued
5. Send the completion marker
"""

import asyncio
import logging
from typing import Optional

from .crypto import encrypt_payload
from .progress import TransferProgress, ProgressCallback
from .protocol import (
    CHUNK_SIZE, MAX_BUFFERED_AMOUNT, TransferMetadata,
    get_chunk_count, split_payload,
    metadata_message, chunk_message, complete_message,
)
from ..file.storage import LocalFile
from ..rtc.peer import PeerChannel
from ..session import Session

logger = logging.getLogger(__name__)

# Files above this size get a "may take a while" warning
LARGE_FILE_WARNING_BYTES = 1024 * 1024


class FileSender:
    """
    Pushes one encrypted file over an open peer channel.

    Chunks are sent sequentially from a single coroutine; there is never
    more than one send in flight for a transfer.
    """

    def __init__(self, channel: PeerChannel, session: Session,
                 max_buffered_amount: int = MAX_BUFFERED_AMOUNT,
                 poll_interval: float = 0.01,
                 metadata_delay: float = 0.1,
                 chunk_size: int = CHUNK_SIZE):
        self.channel = channel
        self.session = session
        self.max_buffered_amount = max_buffered_amount
        self.poll_interval = poll_interval
        self.metadata_delay = metadata_delay
        self.chunk_size = chunk_size

        self.progress = TransferProgress()

        # Statistics
        self.backpressure_waits = 0

    async def send(self, local_file: LocalFile, key: str,
                   progress_callback: Optional[ProgressCallback] = None) -> Optional[int]:
        """
        Encrypt and send ``local_file``.

        Returns:
            The original (pre-encryption) size on success, None on failure
        """
        if self.channel.ready_state != "open":
            self.session.error("Cannot send: channel not ready")
            return None

        self.progress = TransferProgress(file_name=local_file.name, file_size=local_file.size)

        try:
            self.session.info(f"Sending {local_file.name}...")

            payload = await asyncio.to_thread(encrypt_payload, key, local_file.data)
            total_chunks = get_chunk_count(len(payload), self.chunk_size)

            metadata = TransferMetadata(
                name=local_file.name,
                size=local_file.size,
                mime_type=local_file.mime_type,
                total_chunks=total_chunks,
                encrypted_size=len(payload),
            )
            self.channel.send(metadata_message(metadata).to_json())
            logger.debug(
                f"Sent metadata: {total_chunks} chunks, {len(payload):,} encoded chars"
            )

            await asyncio.sleep(self.metadata_delay)

            self.progress.total_chunks = total_chunks
            self.progress.phase = 'transferring'
            self._report(progress_callback)

            for index, piece in split_payload(payload, self.chunk_size):
                await self._wait_for_buffer()
                self.channel.send(chunk_message(index, piece).to_json())

                self.progress.chunks_done = index + 1
                self.progress.bytes_done += len(piece)
                self._report(progress_callback)

            self.channel.send(complete_message().to_json())

        except Exception as e:
            logger.error(f"Send failed: {e}", exc_info=True)
            self.progress.phase = 'failed'
            self._report(progress_callback)
            self.session.error(f"Failed to send file: {e}")
            return None

        self.progress.phase = 'complete'
        self._report(progress_callback)
        self.session.success(
            f"File sent successfully! ({local_file.size / 1024:.2f} KB)"
        )
        return local_file.size

    async def _wait_for_buffer(self):
        """Yield until the channel's send queue is at or below the threshold."""
        if self.channel.buffered_amount <= self.max_buffered_amount:
            return

        self.backpressure_waits += 1
        while self.channel.buffered_amount > self.max_buffered_amount:
            await asyncio.sleep(self.poll_interval)

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until everything queued on the channel has been handed off.

        Returns:
            False if the timeout expired first
        """
        async def _drained():
            while self.channel.buffered_amount > 0 and self.channel.ready_state == "open":
                await asyncio.sleep(self.poll_interval)

        try:
            await asyncio.wait_for(_drained(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def _report(self, callback: Optional[ProgressCallback]):
        if callback is None:
            return
        try:
            callback(self.progress)
        except Exception as e:
            logger.error(f"Progress callback failed: {e}")


def describe_file_size(local_file: LocalFile, session: Session):
    """Warn the operator about files above 1 MiB."""
    if local_file.size > LARGE_FILE_WARNING_BYTES:
        size_mb = local_file.size / (1024 * 1024)
        session.warning(
            f"File is {size_mb:.2f} MB. Large files may take longer. Recommended: <1 MB"
        )
