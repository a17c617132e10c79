"""
File Receiver

Receive Flow:
1. Metadata arrives -> allocate a ChunkBuffer with totalChunks empty slots
2. Chunks arrive -> store each slice at its index (last write wins)
3. Completion marker -> join slots in index order, base64-decode,
   split IV / ciphertext, decrypt with the locally supplied key
4. Deliver the plaintext to the file sink and forget all transfer state

An empty slot at completion is a hard error: handing a gapped payload to
the cipher would only produce garbage or a misleading padding failure.
A decryption failure discards the transfer but keeps the session, so the
operator can retry with the right key.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from .crypto import decrypt_payload, validate_key
from .progress import TransferProgress, ProgressCallback
from .protocol import TransferMessage, TransferMessageType, TransferMetadata
from ..errors import DecryptionError, ProtocolError, ReassemblyError
from ..file.storage import LocalFileSink
from ..session import Session

logger = logging.getLogger(__name__)

DECRYPTION_FAILED_MESSAGE = "Decryption failed: wrong key or corrupted data"


class ChunkBuffer:
    """Fixed-length set of optional chunk slots."""

    def __init__(self, total_chunks: int):
        if total_chunks < 0:
            raise ValueError("total_chunks must not be negative")
        self._slots: List[Optional[str]] = [None] * total_chunks
        self._filled = 0

    def __len__(self) -> int:
        return len(self._slots)

    @property
    def filled(self) -> int:
        return self._filled

    def put(self, index: int, chunk: str):
        """
        Store ``chunk`` at ``index``. A repeated index overwrites.

        Raises:
            ProtocolError: if the index is outside the buffer
        """
        if not 0 <= index < len(self._slots):
            raise ProtocolError(
                f"Chunk index {index} out of range (0-{len(self._slots) - 1})"
            )
        if self._slots[index] is None:
            self._filled += 1
        self._slots[index] = chunk

    def missing(self) -> List[int]:
        return [i for i, slot in enumerate(self._slots) if slot is None]

    def assemble(self) -> str:
        """
        Concatenate all slots in index order.

        Raises:
            ReassemblyError: if any slot is still empty
        """
        missing = self.missing()
        if missing:
            raise ReassemblyError(missing)
        return ''.join(self._slots)


@dataclass
class ReceiveResult:
    """Outcome of one completed transfer attempt."""
    success: bool
    metadata: TransferMetadata
    path: Optional[Path] = None
    error: Optional[str] = None


class FileReceiver:
    """
    Consumes peer-channel messages for the receiver role.

    handle_message() must be called once per inbound message, in arrival
    order, from a single task.
    """

    def __init__(self, key: str, sink: LocalFileSink, session: Session,
                 progress_callback: Optional[ProgressCallback] = None):
        validate_key(key)
        self.key = key
        self.sink = sink
        self.session = session
        self.progress_callback = progress_callback

        self.metadata: Optional[TransferMetadata] = None
        self.buffer: Optional[ChunkBuffer] = None
        self.progress = TransferProgress()

        # Statistics
        self.messages_dropped = 0

    @property
    def in_progress(self) -> bool:
        return self.metadata is not None

    async def handle_message(self, raw: Union[str, bytes]) -> Optional[ReceiveResult]:
        """
        Process one inbound message.

        Returns:
            A ReceiveResult when a completion marker finished a transfer,
            otherwise None
        """
        try:
            message = TransferMessage.from_json(raw)
        except ProtocolError as e:
            self._drop(f"Dropping channel message: {e}")
            return None

        if message.type is TransferMessageType.METADATA:
            self._start(message.metadata)
            return None

        if self.metadata is None:
            self._drop(f"Dropping {message.type.value} message received before metadata")
            return None

        if message.type is TransferMessageType.CHUNK:
            self._store_chunk(message.index, message.chunk)
            return None

        return await self._complete()

    def reset(self):
        """Discard metadata and buffer."""
        self.metadata = None
        self.buffer = None

    # === Internals ===

    def _start(self, metadata: TransferMetadata):
        if not metadata.encrypted:
            self._drop("Dropping metadata for an unencrypted transfer")
            return
        if self.metadata is not None:
            logger.warning(
                f"New metadata while receiving {self.metadata.name}; "
                f"discarding partial transfer"
            )

        self.metadata = metadata
        self.buffer = ChunkBuffer(metadata.total_chunks)
        self.progress = TransferProgress(
            total_chunks=metadata.total_chunks,
            file_name=metadata.name,
            file_size=metadata.size,
            phase='transferring',
        )
        self.session.info(f"Receiving {metadata.name}...")
        self._report()

    def _store_chunk(self, index: int, chunk: str):
        try:
            self.buffer.put(index, chunk)
        except ProtocolError as e:
            self._drop(str(e))
            return

        self.progress.chunks_done = self.buffer.filled
        self.progress.bytes_done += len(chunk)
        self._report()

    async def _complete(self) -> ReceiveResult:
        metadata, buffer = self.metadata, self.buffer
        self.reset()

        try:
            payload = buffer.assemble()
        except ReassemblyError as e:
            return self._fail(metadata, str(e))

        self.progress.phase = 'decrypting'
        self._report()

        try:
            data = await asyncio.to_thread(
                decrypt_payload, self.key, payload, metadata.size
            )
        except DecryptionError as e:
            logger.debug(f"Decryption error detail: {e}")
            return self._fail(metadata, DECRYPTION_FAILED_MESSAGE)

        try:
            path = await self.sink.write(metadata.name, metadata.mime_type, data)
        except OSError as e:
            return self._fail(metadata, f"Failed to save file: {e}")

        self.progress.phase = 'complete'
        self._report()
        self.session.success(
            f"File received and saved! ({len(data) / 1024:.2f} KB)"
        )
        return ReceiveResult(success=True, metadata=metadata, path=path)

    def _fail(self, metadata: TransferMetadata, error: str) -> ReceiveResult:
        self.progress.phase = 'failed'
        self._report()
        self.session.error(error)
        return ReceiveResult(success=False, metadata=metadata, error=error)

    def _drop(self, reason: str):
        self.messages_dropped += 1
        logger.warning(reason)

    def _report(self):
        if self.progress_callback is None:
            return
        try:
            self.progress_callback(self.progress)
        except Exception as e:
            logger.error(f"Progress callback failed: {e}")
