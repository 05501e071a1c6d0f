"""dx:// sources on the platform."""

import logging
import posixpath
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from file_access.dx import paths
from file_access.dx.api import DxApi
from file_access.dx.cache import DxFileDescCache
from file_access.dx.models import DxFile
from file_access.dx.query import DxFindDataObjectsConstraints
from file_access.exceptions import AmbiguousObjectError, InvalidUriError, ObjectNotFoundError
from file_access.listing import ListingSynthesizer
from file_access.settings import Settings, get_settings
from file_access.sources.base import (
    DEFAULT_ENCODING,
    DEFAULT_MAX_READ_SIZE,
    AddressableFileSource,
    DirectoryFileSource,
    FileAccessProtocol,
    FileSource,
    ReadableFileSource,
)

logger = logging.getLogger(__name__)


class DxFileSource(ReadableFileSource, AddressableFileSource):
    """A platform file. Name, folder and size come from its (cached) description."""

    def __init__(self, address: str, dx_file: DxFile, protocol: "DxFileAccessProtocol",
                 parent: Optional["DxFolderSource"] = None):
        super().__init__(address, protocol.encoding, protocol.max_read_size)
        self.dx_file = dx_file
        self._protocol = protocol
        self._parent = parent

    @property
    def scheme(self) -> str:
        return paths.DX_SCHEME

    @property
    def name(self) -> str:
        return self.dx_file.get_name()

    @property
    def folder(self) -> str:
        return self.dx_file.get_folder()

    @property
    def project(self) -> str:
        return self.dx_file.get_project()

    @property
    def container(self) -> str:
        return f"{paths.DX_SCHEME}:{self.project}:{self.folder}"

    @property
    def version(self) -> str:
        return self.dx_file.id

    @property
    def exists(self) -> bool:
        try:
            self.dx_file.describe()
            return True
        except ObjectNotFoundError:
            return False

    def get_parent(self) -> "DxFolderSource":
        if self._parent is None:
            self._parent = self._protocol.folder(self.project, self.folder)
        return self._parent

    def resolve(self, path: str) -> AddressableFileSource:
        return self.get_parent().resolve(path)

    def relativize(self, other: AddressableFileSource) -> str:
        return self.get_parent().relativize(other)

    def _get_size(self) -> int:
        return self.dx_file.describe().size

    def _read_bytes(self) -> bytes:
        return self._protocol.api.download_bytes(self.dx_file)

    def _localize_to(self, path: Path) -> None:
        self._protocol.api.download_file(self.dx_file, path)


class DxFolderSource(DirectoryFileSource):
    """A folder in a platform project."""

    def __init__(self, address: str, project: str, path: str, protocol: "DxFileAccessProtocol",
                 parent: Optional["DxFolderSource"] = None):
        super().__init__(address, protocol.encoding)
        self.project = project
        self.path = paths.normalize_folder(path)
        self._protocol = protocol
        self._parent = parent

    @property
    def scheme(self) -> str:
        return paths.DX_SCHEME

    @property
    def name(self) -> str:
        return posixpath.basename(self.path) or self.project

    @property
    def folder(self) -> str:
        return "" if self.path == "/" else posixpath.dirname(self.path)

    @property
    def container(self) -> str:
        return f"{paths.DX_SCHEME}:{self.project}:{self.folder}"

    @property
    def is_directory(self) -> bool:
        return True

    def _constraints(self) -> DxFindDataObjectsConstraints:
        return DxFindDataObjectsConstraints(
            project=self.project, folder=self.path, recurse=True, object_class="file"
        )

    @property
    def exists(self) -> bool:
        page = self._protocol.api.find_data_objects().query_page(self._constraints())
        return bool(page.results)

    def get_parent(self) -> Optional["DxFolderSource"]:
        if self.path == "/":
            return None
        if self._parent is None:
            self._parent = self._protocol.folder(self.project, self.folder)
        return self._parent

    def resolve(self, path: str) -> AddressableFileSource:
        target = posixpath.normpath(posixpath.join(self.path, path))
        if path.endswith("/"):
            return self._protocol.folder(self.project, target)
        return self._protocol.resolve(paths.format_path(self.project, posixpath.dirname(target),
                                                        posixpath.basename(target)))

    def relativize(self, other: AddressableFileSource) -> str:
        if isinstance(other, DxFileSource):
            target = posixpath.join(other.folder, other.name)
        elif isinstance(other, DxFolderSource):
            target = other.path
        else:
            raise ValueError(f"not a dx source: {other}")
        rel = posixpath.relpath(target, self.path)
        return f"{rel}/" if other.is_directory else rel

    def _entries(self):
        for dx_file, desc in self._protocol.api.find_data_objects().query(self._constraints()):
            if isinstance(dx_file, DxFile):
                rel = posixpath.relpath(posixpath.join(desc.folder, desc.name), self.path)
                yield rel, dx_file

    def _make_file(self, parent: "DxFolderSource", name: str, dx_file: DxFile) -> DxFileSource:
        return DxFileSource(dx_file.as_uri(), dx_file, self._protocol, parent)

    def _make_folder(self, parent: "DxFolderSource", name: str) -> "DxFolderSource":
        path = posixpath.join(parent.path, name)
        return DxFolderSource(paths.format_folder(self.project, path), self.project, path,
                              self._protocol, parent)

    def _list_children(self, recursive: bool) -> List[FileSource]:
        synthesizer = ListingSynthesizer(self._make_file, self._make_folder)
        if recursive:
            return synthesizer.recursive(self, self._entries())
        return synthesizer.shallow(self, self._entries())

    def _localize_to(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)
        for rel, dx_file in self._entries():
            dest = path / rel
            dest.parent.mkdir(parents=True, exist_ok=True)
            self._protocol.api.download_file(dx_file, dest)


class DxFileAccessProtocol(FileAccessProtocol):
    """Resolves dx:// URIs.

    Resolved file sources are kept per URI, so resolving the same URI twice
    costs no API calls. ``file_cache`` holds descriptions retrieved earlier
    (e.g. by a bulk describe) and is matched by file and project id.

    Args:
        api: The platform API
        file_cache: Descriptions to seed resolved files with
    """

    schemes = (paths.DX_SCHEME,)
    supports_directories = True

    def __init__(self, api: DxApi, file_cache: Optional[DxFileDescCache] = None,
                 encoding: str = DEFAULT_ENCODING, max_read_size: int = DEFAULT_MAX_READ_SIZE):
        self.api = api
        self.file_cache = file_cache if file_cache is not None else api.cache
        self.encoding = encoding
        self.max_read_size = max_read_size
        self._sources: Dict[str, DxFileSource] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DxFileAccessProtocol":
        settings = settings or get_settings()
        return cls(DxApi.from_settings(settings), encoding=settings.encoding,
                   max_read_size=settings.max_read_size)

    def _resolve_file(self, uri: str) -> DxFile:
        dx_file = self.api.resolve_file(uri)
        if not dx_file.has_cached_desc:
            self.file_cache.update_file(dx_file)
        asserted = dx_file.asserted_name
        if asserted is not None and dx_file.has_cached_desc and dx_file.cached_desc.name != asserted:
            raise AmbiguousObjectError(
                dx_file.id,
                f"name from describe {dx_file.cached_desc.name} does not match name from URI {asserted}",
                [dx_file.cached_desc.project],
            )
        return dx_file

    def resolve(self, address: str) -> DxFileSource:
        with self._lock:
            source = self._sources.get(address)
        if source is not None:
            return source
        source = DxFileSource(address, self._resolve_file(address), self)
        with self._lock:
            return self._sources.setdefault(address, source)

    def resolve_no_cache(self, address: str) -> DxFileSource:
        return DxFileSource(address, self._resolve_file(address), self)

    def resolve_all(self, addresses: Sequence[str], validate: bool = True) -> List[DxFileSource]:
        """Resolve many URIs, describing every file that is not yet described
        with a single bulk describe.
        """
        sources = [self.resolve(address) for address in addresses]
        undescribed = [s.dx_file for s in sources if not s.dx_file.has_cached_desc]
        if undescribed:
            self.api.describe_files_bulk(undescribed, validate=validate, require_unique=validate)
        return sources

    def folder(self, project: str, path: str) -> DxFolderSource:
        return DxFolderSource(paths.format_folder(project, path), project, path, self)

    def resolve_directory(self, address: str) -> DxFolderSource:
        components = paths.parse(address)
        if components.path is None:
            raise InvalidUriError(address, "a folder must be given by path")
        project = components.project or self.api.project
        if project is None:
            raise InvalidUriError(address, "no project given and no current project configured")
        return DxFolderSource(address, project, components.path, self)

    def from_dx_file(self, dx_file: DxFile) -> DxFileSource:
        return DxFileSource(dx_file.as_uri(), dx_file, self)

    def on_exit(self) -> None:
        self.api.close()
