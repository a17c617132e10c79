"""
Transfer Progress

Shared by both directions so a CLI or UI can render one kind of
progress object.
"""

import time
from dataclasses import dataclass, field
from typing import Callable


@dataclass
class TransferProgress:
    """Track chunk progress of one transfer."""
    total_chunks: int = 0
    chunks_done: int = 0
    bytes_done: int = 0
    file_name: str = ''
    file_size: int = 0
    phase: str = 'initializing'  # 'initializing', 'transferring', 'decrypting', 'complete', 'failed'
    start_time: float = field(default_factory=time.time)

    @property
    def progress(self) -> float:
        """Progress as 0.0 to 1.0."""
        if self.total_chunks == 0:
            return 1.0 if self.phase == 'complete' else 0.0
        return self.chunks_done / self.total_chunks

    @property
    def progress_percent(self) -> float:
        return self.progress * 100

    @property
    def elapsed_seconds(self) -> float:
        return time.time() - self.start_time

    @property
    def speed_bytes_per_sec(self) -> float:
        elapsed = self.elapsed_seconds
        if elapsed == 0:
            return 0
        return self.bytes_done / elapsed

    def to_dict(self) -> dict:
        return {
            'total_chunks': self.total_chunks,
            'chunks_done': self.chunks_done,
            'bytes_done': self.bytes_done,
            'progress_percent': self.progress_percent,
            'speed_bytes_per_sec': self.speed_bytes_per_sec,
            'elapsed_seconds': self.elapsed_seconds,
            'phase': self.phase,
            'file_name': self.file_name,
            'file_size': self.file_size,
        }


ProgressCallback = Callable[[TransferProgress], None]
