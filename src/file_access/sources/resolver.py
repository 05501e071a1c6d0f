"""
Scheme-based dispatch from addresses to FileSources.

A resolver owns its protocol instances; there is no module-level default.
Build one with ``create_resolver`` and call ``on_exit`` (or use it as a
context manager) to release the protocols' pooled clients.
"""

import atexit
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Type

from file_access.exceptions import (
    NoSuchProtocolError,
    ProtocolFeatureNotSupportedError,
)
from file_access.settings import Settings, get_settings
from file_access.sources.base import AddressableFileSource, FileAccessProtocol, PathLike
from file_access.sources.http import HttpFileAccessProtocol
from file_access.sources.local import (
    FILE_SCHEME,
    LocalFileAccessProtocol,
    LocalFileSource,
    get_uri_scheme,
)

logger = logging.getLogger(__name__)


class FileSourceResolver:
    """Resolves addresses through the protocol registered for their scheme.

    Args:
        protocols: Protocol instances, in registration order. A later protocol
            replaces an earlier one registered under the same scheme.
    """

    def __init__(self, protocols: Sequence[FileAccessProtocol]):
        self._lock = threading.Lock()
        self._protocols: List[FileAccessProtocol] = []
        self._protocol_map: Dict[str, FileAccessProtocol] = {}
        self._exited = False
        for protocol in protocols:
            self._register(protocol)

    def _register(self, protocol: FileAccessProtocol) -> None:
        replaced_protocols: List[FileAccessProtocol] = []
        for scheme in protocol.schemes:
            replaced = self._protocol_map.get(scheme)
            if replaced is not None and replaced is not protocol:
                logger.warning(f"Replacing protocol {replaced!r} for scheme '{scheme}' with {protocol!r}")
                replaced_protocols.append(replaced)
            self._protocol_map[scheme] = protocol
        if protocol not in self._protocols:
            self._protocols.append(protocol)
        # a protocol that no longer serves any scheme is dropped entirely
        serving = list(self._protocol_map.values())
        for replaced in replaced_protocols:
            if replaced in self._protocols and not any(p is replaced for p in serving):
                self._protocols.remove(replaced)

    @property
    def protocols(self) -> List[FileAccessProtocol]:
        with self._lock:
            return list(self._protocols)

    def add_protocol(self, protocol: FileAccessProtocol) -> None:
        """Register ``protocol``. FileSources that were already resolved are unaffected."""
        with self._lock:
            self._register(protocol)

    def can_resolve(self, scheme: str) -> bool:
        with self._lock:
            return scheme in self._protocol_map

    def get_protocol(self, scheme: str) -> FileAccessProtocol:
        with self._lock:
            protocol = self._protocol_map.get(scheme)
        if protocol is None:
            raise NoSuchProtocolError(scheme)
        return protocol

    def _get_protocol_for(self, address: str) -> FileAccessProtocol:
        scheme = get_uri_scheme(address) or FILE_SCHEME
        with self._lock:
            protocol = self._protocol_map.get(scheme)
        if protocol is None:
            raise NoSuchProtocolError(scheme, address)
        return protocol

    def resolve(self, address: str) -> AddressableFileSource:
        """Resolve an address (a URI or a bare local path) to a FileSource."""
        return self._get_protocol_for(address).resolve(address)

    def resolve_directory(self, address: str) -> AddressableFileSource:
        protocol = self._get_protocol_for(address)
        if not protocol.supports_directories:
            raise ProtocolFeatureNotSupportedError(get_uri_scheme(address) or FILE_SCHEME, "directories")
        return protocol.resolve_directory(address)

    def _local_protocol(self) -> LocalFileAccessProtocol:
        protocol = self.get_protocol(FILE_SCHEME)
        if not isinstance(protocol, LocalFileAccessProtocol):
            raise TypeError(f"Expected LocalFileAccessProtocol not {protocol!r}")
        return protocol

    def from_path(self, path: PathLike) -> LocalFileSource:
        return self._local_protocol().resolve_path(path)

    @property
    def local_search_path(self) -> List[Path]:
        for protocol in self.protocols:
            if isinstance(protocol, LocalFileAccessProtocol):
                return list(protocol.search_path)
        return []

    def add_to_local_search_path(self, paths: Sequence[PathLike], append: bool = True) -> "FileSourceResolver":
        """Return a new resolver whose local protocol also searches ``paths``."""
        new_protocols = [
            protocol.with_search_path(paths, append) if isinstance(protocol, LocalFileAccessProtocol)
            else protocol
            for protocol in self.protocols
        ]
        return FileSourceResolver(new_protocols)

    def replace_protocol(self, new_protocol: FileAccessProtocol,
                         protocol_type: Optional[Type[FileAccessProtocol]] = None) -> "FileSourceResolver":
        """Return a new resolver with every protocol of ``protocol_type`` (by default
        the type of ``new_protocol``) replaced by ``new_protocol``.
        """
        protocol_type = protocol_type or type(new_protocol)
        new_protocols: List[FileAccessProtocol] = []
        for protocol in self.protocols:
            replacement = new_protocol if isinstance(protocol, protocol_type) else protocol
            if replacement not in new_protocols:
                new_protocols.append(replacement)
        return FileSourceResolver(new_protocols)

    def on_exit(self) -> None:
        """Shut down every protocol once, in registration order."""
        with self._lock:
            if self._exited:
                return
            self._exited = True
            protocols = list(self._protocols)
        for protocol in protocols:
            try:
                protocol.on_exit()
            except Exception:
                logger.exception(f"Error shutting down protocol {protocol!r}")

    def register_exit_hook(self) -> "FileSourceResolver":
        atexit.register(self.on_exit)
        return self

    def __enter__(self) -> "FileSourceResolver":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.on_exit()

    def __repr__(self) -> str:
        return f"FileSourceResolver({self.protocols!r})"


def create_resolver(settings: Optional[Settings] = None,
                    local_dirs: Sequence[PathLike] = (),
                    user_protocols: Sequence[FileAccessProtocol] = ()) -> FileSourceResolver:
    """Build a resolver with the local and http(s) protocols, plus s3 and dx when
    enabled in ``settings``, plus ``user_protocols``.
    """
    settings = settings or get_settings()
    search_path = [*settings.local_search_path, *local_dirs]
    protocols: List[FileAccessProtocol] = [
        LocalFileAccessProtocol(search_path, settings.encoding, settings.max_read_size),
        HttpFileAccessProtocol(settings.encoding, settings.max_read_size, settings.http_timeout),
    ]
    if settings.enable_s3:
        from file_access.protocols.s3 import S3FileAccessProtocol

        protocols.append(S3FileAccessProtocol.from_settings(settings))
    if settings.enable_dx:
        from file_access.protocols.dx import DxFileAccessProtocol

        protocols.append(DxFileAccessProtocol.from_settings(settings))
    protocols.extend(user_protocols)
    logger.debug(f"Created resolver with protocols {protocols}")
    return FileSourceResolver(protocols)
