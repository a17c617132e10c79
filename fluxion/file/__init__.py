"""
File Module - Local File Source and Sink

Reads the file to send and stores the file received.
"""

from .storage import LocalFile, LocalFileSource, LocalFileSink, safe_file_name

__all__ = [
    'LocalFile',
    'LocalFileSource',
    'LocalFileSink',
    'safe_file_name',
]
