"""http:// and https:// sources backed by requests."""

import logging
import posixpath
import threading
from pathlib import Path
from typing import Optional
from urllib.parse import urljoin, urlparse

import requests

from file_access.exceptions import ProtocolFeatureNotSupportedError
from file_access.sources.base import (
    DEFAULT_ENCODING,
    DEFAULT_MAX_READ_SIZE,
    AddressableFileSource,
    FileAccessProtocol,
    ReadableFileSource,
)

logger = logging.getLogger(__name__)

HTTP_SCHEME = "http"
HTTPS_SCHEME = "https"
CHUNK_SIZE = 16384


class HttpFileSource(ReadableFileSource, AddressableFileSource):
    """A file served over HTTP(S).

    ``exists`` and ``size`` are answered with a HEAD request; the contents are
    fetched with a streamed GET.
    """

    def __init__(self, url: str, session: requests.Session, address: Optional[str] = None,
                 encoding: str = DEFAULT_ENCODING, is_directory: bool = False,
                 max_read_size: int = DEFAULT_MAX_READ_SIZE, timeout: float = 30.0):
        super().__init__(address or url, encoding, max_read_size)
        self._url = url
        self._parsed = urlparse(url)
        self._session = session
        self._is_directory = is_directory
        self._timeout = timeout
        self._bytes: Optional[bytes] = None

    @property
    def scheme(self) -> str:
        return self._parsed.scheme

    @property
    def uri(self) -> str:
        return self._url

    @property
    def domain(self) -> str:
        return self._parsed.netloc

    @property
    def name(self) -> str:
        return posixpath.basename(self._parsed.path.rstrip("/"))

    @property
    def folder(self) -> str:
        path = self._parsed.path.rstrip("/")
        return posixpath.dirname(path) if path else ""

    @property
    def container(self) -> str:
        return f"{self.scheme}:{self.domain}:{self.folder}"

    @property
    def is_directory(self) -> bool:
        return self._is_directory

    def _head(self) -> requests.Response:
        response = self._session.head(self._url, allow_redirects=True, timeout=self._timeout)
        response.raise_for_status()
        return response

    @property
    def exists(self) -> bool:
        try:
            self._head()
            return True
        except requests.RequestException as e:
            logger.debug(f"HEAD {self._url} failed: {e}")
            return False

    def _derive(self, url: str, is_directory: bool) -> "HttpFileSource":
        return HttpFileSource(url, self._session, url, self.encoding, is_directory,
                              self._max_read_size, self._timeout)

    def get_parent(self) -> Optional["HttpFileSource"]:
        path = self._parsed.path.rstrip("/")
        if not path or posixpath.dirname(path) == path:
            return None
        parent_url = urljoin(self._url, ".." if self._is_directory else ".")
        if parent_url == self._url:
            return None
        return self._derive(parent_url, is_directory=True)

    def resolve(self, path: str) -> "HttpFileSource":
        base = self._url if self._url.endswith("/") or not self._is_directory else f"{self._url}/"
        return self._derive(urljoin(base, path), path.endswith("/"))

    def relativize(self, other: AddressableFileSource) -> str:
        if not isinstance(other, HttpFileSource) or other.domain != self.domain:
            raise ValueError(f"{other} is not on the same host as {self}")
        base = self._parsed.path if self._is_directory else posixpath.dirname(self._parsed.path)
        rel = posixpath.relpath(other._parsed.path, base or "/")
        return f"{rel}/" if other.is_directory else rel

    def _get_size(self) -> int:
        length = self._head().headers.get("Content-Length")
        if length is None:
            raise ValueError(f"Error getting size of URL {self._url}: no Content-Length")
        return int(length)

    def _fetch(self):
        with self._session.get(self._url, stream=True, timeout=self._timeout) as response:
            response.raise_for_status()
            yield from response.iter_content(chunk_size=CHUNK_SIZE)

    def _read_bytes(self) -> bytes:
        if self._bytes is None:
            self._bytes = b"".join(self._fetch())
        return self._bytes

    def _localize_to(self, path: Path) -> None:
        if self._is_directory:
            raise ProtocolFeatureNotSupportedError(self.scheme, "localizing directories")
        if self._bytes is not None:
            path.write_bytes(self._bytes)
            return
        logger.debug(f"Downloading {self._url} to {path}")
        with open(path, "wb") as out:
            for chunk in self._fetch():
                out.write(chunk)


class HttpFileAccessProtocol(FileAccessProtocol):
    """Resolves http:// and https:// URIs. Directories are not supported."""

    schemes = (HTTP_SCHEME, HTTPS_SCHEME)
    supports_directories = False

    def __init__(self, encoding: str = DEFAULT_ENCODING,
                 max_read_size: int = DEFAULT_MAX_READ_SIZE, timeout: float = 30.0):
        self.encoding = encoding
        self.max_read_size = max_read_size
        self.timeout = timeout
        self._session: Optional[requests.Session] = None
        self._lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        with self._lock:
            if self._session is None:
                self._session = requests.Session()
            return self._session

    def resolve(self, address: str) -> HttpFileSource:
        return HttpFileSource(address, self.session, address, self.encoding,
                              False, self.max_read_size, self.timeout)

    def resolve_directory(self, address: str) -> HttpFileSource:
        raise ProtocolFeatureNotSupportedError(HTTP_SCHEME, "directories")

    def on_exit(self) -> None:
        with self._lock:
            if self._session is not None:
                self._session.close()
                self._session = None
