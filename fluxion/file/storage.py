"""
Local File Source and Sink

The transfer codec never touches the filesystem directly: the sender gets
its bytes from a LocalFileSource and the receiver hands finished files to
a LocalFileSink.

Sink Layout:
```
output_dir/
├── report.pdf
├── report (1).pdf    # second transfer of the same name, never overwritten
└── .report.pdf.tmp   # while writing
```
"""

import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = 'application/octet-stream'
DEFAULT_FILE_NAME = 'received_file'


@dataclass
class LocalFile:
    """A file read fully into memory."""
    name: str
    size: int
    mime_type: str
    data: bytes


def guess_mime_type(name: str) -> str:
    mime_type, _ = mimetypes.guess_type(name)
    return mime_type or DEFAULT_MIME_TYPE


class LocalFileSource:
    """Reads a user-chosen file."""

    async def read(self, path: Path) -> LocalFile:
        """
        Read all bytes of ``path``.

        Raises:
            FileNotFoundError: if the path is not a regular file
        """
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")

        async with aiofiles.open(path, 'rb') as f:
            data = await f.read()

        logger.debug(f"Read {len(data):,} bytes from {path}")
        return LocalFile(
            name=path.name,
            size=len(data),
            mime_type=guess_mime_type(path.name),
            data=data,
        )


class LocalFileSink:
    """Writes received files into an output directory."""

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)

        # Statistics
        self.files_written = 0
        self.bytes_written = 0

    async def write(self, name: str, mime_type: str, data: bytes) -> Path:
        """
        Store ``data`` under a safe, unused name.

        The MIME type is informational; the name keeps its extension.

        Returns:
            Path of the written file
        """
        await aiofiles.os.makedirs(self.output_dir, exist_ok=True)

        target = self._unique_path(safe_file_name(name))
        temp_path = target.with_name(f".{target.name}.tmp")

        async with aiofiles.open(temp_path, 'wb') as f:
            await f.write(data)

        await aiofiles.os.rename(temp_path, target)

        self.files_written += 1
        self.bytes_written += len(data)
        logger.info(f"Saved {target.name} ({len(data):,} bytes, {mime_type or DEFAULT_MIME_TYPE})")
        return target

    def _unique_path(self, name: str) -> Path:
        candidate = self.output_dir / name
        if not candidate.exists():
            return candidate

        stem, suffix = Path(name).stem, Path(name).suffix
        counter = 1
        while True:
            candidate = self.output_dir / f"{stem} ({counter}){suffix}"
            if not candidate.exists():
                return candidate
            counter += 1


def safe_file_name(name: Optional[str]) -> str:
    """Strip directories and reserved names from a peer-supplied name."""
    name = Path((name or '').replace('\\', '/')).name.strip()
    if name in ('', '.', '..'):
        return DEFAULT_FILE_NAME
    return name
