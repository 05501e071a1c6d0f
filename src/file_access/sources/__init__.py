"""
FileSource capability classes and the built-in local, HTTP and in-memory sources.
"""
from .base import (
    AddressableFileSource,
    DirectoryFileSource,
    FileAccessProtocol,
    FileSource,
    ReadableFileSource,
)
from .http import HttpFileAccessProtocol, HttpFileSource
from .local import LocalFileAccessProtocol, LocalFileSource
from .virtual import LinesFileNode, StringFileNode

__all__ = [
    'AddressableFileSource',
    'DirectoryFileSource',
    'FileAccessProtocol',
    'FileSource',
    'HttpFileAccessProtocol',
    'HttpFileSource',
    'LinesFileNode',
    'LocalFileAccessProtocol',
    'LocalFileSource',
    'ReadableFileSource',
    'StringFileNode',
]
