"""
FileSource capability classes and the FileAccessProtocol interface.

A FileSource is a source of files: a single file or a directory of files,
located on local disk, remotely, or in memory. Capabilities are composed from
small abstract classes rather than inherited through a single chain:

- ``FileSource``: name/folder/container/version identity plus localization
- ``ReadableFileSource``: the contents can be read as bytes, text, or lines
- ``AddressableFileSource``: the source has an address and supports relative
  resolution, parent lookup and relativization
- ``DirectoryFileSource``: an addressable source whose children can be listed
"""

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Union

from file_access.exceptions import FileTooLargeError

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "utf-8"
MiB = 1024 * 1024
DEFAULT_MAX_READ_SIZE = 256 * MiB

PathLike = Union[str, Path]


class FileSource(ABC):
    """A resolvable location of a file or directory."""

    def __init__(self, address: str, encoding: str = DEFAULT_ENCODING):
        self._address = address
        self._encoding = encoding

    @property
    def address(self) -> str:
        """The original value that was resolved to get this FileSource."""
        return self._address

    @property
    def encoding(self) -> str:
        return self._encoding

    @property
    @abstractmethod
    def name(self) -> str:
        """The last path component of this source."""

    @property
    def folder(self) -> str:
        """The logical parent path; ``""`` when there is none."""
        return ""

    @property
    def container(self) -> Optional[str]:
        """Identifier of the owning bucket/project/filesystem folder, if known."""
        return None

    @property
    def version(self) -> Optional[str]:
        """Backend-specific revision token, if any."""
        return None

    @property
    def is_directory(self) -> bool:
        return False

    @property
    @abstractmethod
    def exists(self) -> bool:
        """Whether the file described by this FileSource exists."""

    @abstractmethod
    def _localize_to(self, path: Path) -> None:
        """Write this source to ``path``, which may be overwritten."""

    def localize(self, path: PathLike, overwrite: bool = False) -> Path:
        """Localize this FileSource to ``path``.

        Args:
            path: Destination path
            overwrite: Whether to overwrite an existing file or directory

        Returns:
            The absolute destination path
        """
        dest = Path(path).absolute()
        if dest.exists() and not overwrite:
            raise FileExistsError(f"file {dest} already exists and overwrite = False")
        dest.parent.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Localizing {self} to {dest}")
        self._localize_to(dest)
        return dest

    def localize_to_dir(self, directory: PathLike, overwrite: bool = False) -> Path:
        """Localize this FileSource to ``directory/name``."""
        return self.localize(Path(directory) / self.name, overwrite=overwrite)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FileSource):
            return NotImplemented
        return type(self) is type(other) and self._address == other._address

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._address))

    def __str__(self) -> str:
        return self._address

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._address!r})"


class ReadableFileSource(FileSource):
    """A FileSource whose contents can be read into memory."""

    def __init__(self, address: str, encoding: str = DEFAULT_ENCODING,
                 max_read_size: int = DEFAULT_MAX_READ_SIZE):
        super().__init__(address, encoding)
        self._max_read_size = max_read_size
        self._size: Optional[int] = None

    @abstractmethod
    def _get_size(self) -> int:
        """Fetch the size of the file in bytes."""

    @property
    def size(self) -> int:
        """The size of the file in bytes, fetched on first access."""
        if self._size is None:
            self._size = self._get_size()
        return self._size

    @abstractmethod
    def _read_bytes(self) -> bytes:
        """Read the full contents without a size check."""

    def check_file_size(self) -> None:
        if self.size > self._max_read_size:
            raise FileTooLargeError(self.address, self.size, self._max_read_size)

    def read_bytes(self) -> bytes:
        """Read the entire file into memory."""
        self.check_file_size()
        return self._read_bytes()

    def read_text(self) -> str:
        return self.read_bytes().decode(self.encoding)

    def read_lines(self) -> List[str]:
        return self.read_text().splitlines()


class AddressableFileSource(FileSource):
    """A FileSource with an address, such as a local path or a URI."""

    @property
    @abstractmethod
    def scheme(self) -> str:
        """The URI scheme of this source."""

    @property
    def uri(self) -> str:
        return self.address

    @abstractmethod
    def get_parent(self) -> Optional["AddressableFileSource"]:
        """The source for the parent directory, or None for a root directory."""

    @abstractmethod
    def resolve(self, path: str) -> "AddressableFileSource":
        """Resolve ``path`` relative to this source if it is a directory, otherwise
        relative to its parent. ``path`` must end with '/' if it is a directory.
        """

    def resolve_directory(self, path: str) -> "AddressableFileSource":
        """Resolve ``path`` as a directory relative to this source."""
        if not path.endswith("/"):
            path = f"{path}/"
        return self.resolve(path)

    @abstractmethod
    def relativize(self, other: "AddressableFileSource") -> str:
        """The path of ``other`` relative to this source's directory."""


class DirectoryFileSource(AddressableFileSource):
    """An addressable source whose children can be listed.

    Backends without native directories may attach an already-retrieved
    listing with ``set_cached_listing``; it is then used instead of querying
    the backend. The cache belongs to this instance only.
    """

    def __init__(self, address: str, encoding: str = DEFAULT_ENCODING):
        super().__init__(address, encoding)
        self._cached_listing: Optional[List[FileSource]] = None
        self._listing_lock = threading.Lock()

    @property
    def has_cached_listing(self) -> bool:
        return self._cached_listing is not None

    def set_cached_listing(self, children: Sequence[FileSource]) -> None:
        with self._listing_lock:
            self._cached_listing = list(children)

    @abstractmethod
    def _list_children(self, recursive: bool) -> List[FileSource]:
        """Query the backend for the children of this directory."""

    def listing(self, recursive: bool = False) -> List[FileSource]:
        """List the children of this directory.

        Args:
            recursive: Include every descendant, not only the immediate children

        Returns:
            The children; with ``recursive`` each folder is followed by its descendants
        """
        with self._listing_lock:
            cached = self._cached_listing
        if cached is None:
            return self._list_children(recursive)
        if not recursive:
            return list(cached)
        return list(_flatten(cached))


def _flatten(children: Sequence[FileSource]) -> Iterator[FileSource]:
    files = [child for child in children if not child.is_directory]
    folders = [child for child in children if child.is_directory]
    yield from files
    for folder in folders:
        yield folder
        if isinstance(folder, DirectoryFileSource):
            yield from folder.listing(recursive=True)


class FileAccessProtocol(ABC):
    """A protocol for resolving FileSources of one or more URI schemes."""

    #: URI schemes that this protocol is able to resolve
    schemes: Sequence[str] = ()

    #: Whether this protocol supports resolving directories
    supports_directories: bool = False

    @abstractmethod
    def resolve(self, address: str) -> AddressableFileSource:
        """Resolve a URI to a FileSource."""

    def resolve_directory(self, address: str) -> AddressableFileSource:
        """Resolve a URI that points to a directory."""
        raise NotImplementedError(f"{type(self).__name__} does not resolve directories")

    def on_exit(self) -> None:
        """Release pooled clients. Called once, immediately before shutdown."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(schemes={list(self.schemes)})"
