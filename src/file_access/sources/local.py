"""Local filesystem sources and the file:// protocol."""

import logging
import os
import re
import shutil
from pathlib import Path
from typing import List, Optional, Sequence
from urllib.parse import unquote, urlparse

from file_access.exceptions import InvalidUriError, UnresolvableSourceError
from file_access.sources.base import (
    DEFAULT_ENCODING,
    DEFAULT_MAX_READ_SIZE,
    AddressableFileSource,
    DirectoryFileSource,
    FileAccessProtocol,
    FileSource,
    PathLike,
    ReadableFileSource,
)

logger = logging.getLogger(__name__)

FILE_SCHEME = "file"
_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*)://")


def get_uri_scheme(address: str) -> Optional[str]:
    """Return the scheme of a URI, or None for a bare path. Case is preserved."""
    match = _SCHEME_RE.match(address)
    return match.group(1) if match else None


class LocalFileSource(ReadableFileSource, DirectoryFileSource):
    """A file or directory on local disk.

    Args:
        path: The absolute, canonical path
        address: The original path/URI used to resolve this file
        is_directory: Whether this source represents a directory
        parent: The already-constructed source for the parent directory, if any
    """

    def __init__(self, path: Path, address: Optional[str] = None,
                 encoding: str = DEFAULT_ENCODING, is_directory: bool = False,
                 max_read_size: int = DEFAULT_MAX_READ_SIZE,
                 parent: Optional["LocalFileSource"] = None):
        super().__init__(address or str(path), encoding, max_read_size)
        self._path = path
        self._is_directory = is_directory
        self._parent = parent

    @property
    def path(self) -> Path:
        return self._path

    @property
    def scheme(self) -> str:
        return FILE_SCHEME

    @property
    def uri(self) -> str:
        return self._path.as_uri()

    @property
    def name(self) -> str:
        return self._path.name

    @property
    def folder(self) -> str:
        parent = self._path.parent
        return "" if parent == self._path else str(parent)

    @property
    def container(self) -> str:
        return f"{FILE_SCHEME}:{self.folder}"

    @property
    def is_directory(self) -> bool:
        return self._is_directory

    @property
    def exists(self) -> bool:
        return self._path.exists()

    def _derive(self, path: Path, is_directory: bool,
                parent: Optional["LocalFileSource"] = None) -> "LocalFileSource":
        return LocalFileSource(path, str(path), self.encoding, is_directory,
                               self._max_read_size, parent)

    def get_parent(self) -> Optional["LocalFileSource"]:
        if self._parent is not None:
            return self._parent
        parent = self._path.parent
        if parent == self._path:
            return None
        return self._derive(parent, is_directory=True)

    def _base_dir(self) -> Path:
        return self._path if self._is_directory else self._path.parent

    def resolve(self, path: str) -> "LocalFileSource":
        new_path = self._base_dir() / path
        if new_path.exists():
            is_directory = new_path.is_dir()
        else:
            is_directory = path.endswith("/")
        return self._derive(Path(os.path.normpath(new_path)), is_directory)

    def relativize(self, other: AddressableFileSource) -> str:
        if not isinstance(other, LocalFileSource):
            raise ValueError(f"not a local file source: {other}")
        return os.path.relpath(other.path, self._base_dir())

    def _get_size(self) -> int:
        if not self._path.exists():
            raise FileNotFoundError(f"Path does not exist {self._path}")
        if self._path.is_dir():
            raise IsADirectoryError(f"Cannot get the size of a directory {self._path}")
        return self._path.stat().st_size

    def _read_bytes(self) -> bytes:
        return self._path.read_bytes()

    def _list_children(self, recursive: bool) -> List[FileSource]:
        if not self._path.is_dir():
            raise NotADirectoryError(f"{self._path} is not a directory")
        return list(self._walk(self, recursive))

    def _walk(self, directory: "LocalFileSource", recursive: bool):
        entries = sorted(directory.path.iterdir(), key=lambda p: p.name)
        files = [e for e in entries if not e.is_dir()]
        dirs = [e for e in entries if e.is_dir()]
        for entry in files:
            yield self._derive(entry, False, parent=directory)
        for entry in dirs:
            child = self._derive(entry, True, parent=directory)
            yield child
            if recursive:
                yield from self._walk(child, recursive)

    def _localize_to(self, path: Path) -> None:
        if self._path == path:
            logger.debug(f"Skipping copy of local file {self._path} - source and dest paths are equal")
        elif self._is_directory:
            logger.debug(f"Copying directory {self._path} to {path}")
            shutil.copytree(self._path, path, dirs_exist_ok=True)
        else:
            if not self._path.exists():
                raise FileNotFoundError(f"Path does not exist {self._path}")
            logger.debug(f"Copying file {self._path} to {path}")
            shutil.copy2(self._path, path)


class LocalFileAccessProtocol(FileAccessProtocol):
    """Resolves bare paths and file:// URIs.

    Args:
        search_path: Directories searched, in order, for relative paths that do
            not exist relative to the working directory
    """

    schemes = (FILE_SCHEME,)
    supports_directories = True

    def __init__(self, search_path: Sequence[PathLike] = (),
                 encoding: str = DEFAULT_ENCODING,
                 max_read_size: int = DEFAULT_MAX_READ_SIZE):
        self.search_path: List[Path] = [Path(p) for p in search_path]
        self.encoding = encoding
        self.max_read_size = max_read_size

    def _address_to_path(self, address: str) -> Path:
        scheme = get_uri_scheme(address)
        if scheme is None:
            return Path(address).expanduser()
        if scheme == FILE_SCHEME:
            parsed = urlparse(address)
            if parsed.netloc not in ("", "localhost"):
                raise InvalidUriError(address, "file URIs must not name a remote host")
            return Path(unquote(parsed.path))
        raise InvalidUriError(address, "not a path or file:// URI")

    def _find_in_path(self, rel_path: Path) -> Optional[Path]:
        for directory in self.search_path:
            candidate = directory / rel_path
            if candidate.exists():
                return candidate.resolve()
        return None

    def resolve_path(self, path: PathLike, address: Optional[str] = None,
                     is_directory: bool = False) -> LocalFileSource:
        path = Path(path)
        if path.exists():
            resolved = path.resolve()
            is_directory = is_directory or resolved.is_dir()
        elif path.is_absolute():
            resolved = Path(os.path.normpath(path))
        else:
            found = self._find_in_path(path)
            if found is None:
                searched = [str(Path.cwd())] + [str(d) for d in self.search_path]
                raise UnresolvableSourceError(
                    address or str(path), f"relative path not found in any of {searched}"
                )
            logger.debug(f"Found {path} in search path at {found}")
            resolved = found
            is_directory = is_directory or resolved.is_dir()
        return LocalFileSource(resolved, address or str(path), self.encoding,
                               is_directory, self.max_read_size)

    def resolve(self, address: str) -> LocalFileSource:
        return self.resolve_path(self._address_to_path(address), address)

    def resolve_directory(self, address: str) -> LocalFileSource:
        return self.resolve_path(self._address_to_path(address), address, is_directory=True)

    def with_search_path(self, paths: Sequence[PathLike], append: bool = True) -> "LocalFileAccessProtocol":
        new_paths = [Path(p) for p in paths]
        search_path = self.search_path + new_paths if append else new_paths + self.search_path
        return LocalFileAccessProtocol(search_path, self.encoding, self.max_read_size)
