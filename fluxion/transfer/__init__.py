"""
Transfer Module - Encrypted Chunked File Transfer

Runs over an established peer channel:
- crypto: AES-256-CBC with a random IV per transfer, base64 framing
- protocol: metadata / chunk / complete envelopes
- sender: encrypt, chunk, send with backpressure
- receiver: collect chunks, reassemble, decrypt
"""

from .crypto import generate_key, validate_key, encrypt_payload, decrypt_payload
from .progress import TransferProgress
from .protocol import (
    CHUNK_SIZE,
    MAX_BUFFERED_AMOUNT,
    TransferMetadata,
    TransferMessage,
    TransferMessageType,
    get_chunk_count,
)
from .sender import FileSender
from .receiver import ChunkBuffer, FileReceiver, ReceiveResult

__all__ = [
    'generate_key',
    'validate_key',
    'encrypt_payload',
    'decrypt_payload',
    'TransferProgress',
    'CHUNK_SIZE',
    'MAX_BUFFERED_AMOUNT',
    'TransferMetadata',
    'TransferMessage',
    'TransferMessageType',
    'get_chunk_count',
    'FileSender',
    'ChunkBuffer',
    'FileReceiver',
    'ReceiveResult',
]
