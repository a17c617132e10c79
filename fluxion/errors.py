"""
Exception hierarchy.

Components raise these at their boundary; endpoints and the CLI turn
them into status updates instead of letting them escape.
"""


class FluxionError(Exception):
    """Base class for all Fluxion errors."""


class InvalidKeyError(FluxionError):
    """Encryption key is not exactly 64 hex characters."""


class InvalidRoomCodeError(FluxionError):
    """Room code is not a 6-digit string."""


class ProtocolError(FluxionError):
    """Malformed signaling or peer-channel message."""


class DecryptionError(FluxionError):
    """Payload could not be decrypted (wrong key or corrupted data)."""


class ReassemblyError(FluxionError):
    """Chunk buffer was incomplete when the completion marker arrived."""

    def __init__(self, missing):
        self.missing = list(missing)
        preview = ', '.join(str(i) for i in self.missing[:10])
        if len(self.missing) > 10:
            preview += ', ...'
        super().__init__(
            f"Transfer incomplete: {len(self.missing)} chunk(s) missing ({preview})"
        )


class NegotiationError(FluxionError):
    """Peer connection could not be negotiated."""


class RelayError(FluxionError):
    """Relay connection failed or was lost."""
