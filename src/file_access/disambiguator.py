"""
Collision-free local paths for remote files.

Two inputs with the same name must be localized separately, and inputs that
came from the same container (bucket folder, project folder, local directory)
are kept in the same local directory wherever no collision prevents it.
"""

import logging
import threading
from pathlib import Path, PurePosixPath
from typing import Dict, Hashable, Iterable, List, Optional, Sequence, Set, Tuple

from file_access.exceptions import InvalidNameError
from file_access.settings import Settings, get_settings
from file_access.sources.base import FileSource, PathLike
from file_access.utils.decorators import synchronized

logger = logging.getLogger(__name__)

DisambiguationKey = Tuple[Hashable, ...]


def disambiguation_key(source: FileSource) -> DisambiguationKey:
    """``(name, container, version)`` when both are known, else ``(name, address)``."""
    if source.container is not None and source.version is not None:
        return source.name, source.container, source.version
    return source.name, source.address


def _check_name(source: FileSource) -> str:
    name = source.name
    if not name or name in (".", "..") or name.startswith("/") or PurePosixPath(name).is_absolute():
        raise InvalidNameError(name, source.address)
    return name


def _is_path_component(value: str) -> bool:
    return bool(value) and value not in (".", "..") and "/" not in value and "\\" not in value


class LocalizationDisambiguator:
    """Assigns each FileSource a unique local path under ``root_dir``.

    Assignment rules, in order:

    1. A key that was already assigned gets the same path again.
    2. A single request goes into the directory already used for its
       container; a container seen for the first time tries ``root_dir``
       itself. In a batch, sources whose name and container do not collide
       with other sources of the batch share one numbered common directory.
    3. A name collision allocates a new numbered directory
       (``<subdir_prefix><n>``), so the first file with a name never gets one.
    4. A later version of a file already placed from the same container goes
       into a subdirectory named after the version.

    Args:
        root_dir: Directory under which all paths are assigned
        existing_paths: Paths to treat as already taken
        separate_dirs_by_source: Give every container its own numbered
            directory instead of trying the root or a common directory first
        create_dirs: Create the parent directory of every returned path;
            when False path computation does not touch the filesystem
        subdir_prefix: Prefix of numbered disambiguation directories
    """

    def __init__(self, root_dir: PathLike, existing_paths: Iterable[PathLike] = (),
                 separate_dirs_by_source: bool = False, create_dirs: bool = True,
                 subdir_prefix: str = "input"):
        self.root_dir = Path(root_dir).absolute()
        self.separate_dirs_by_source = separate_dirs_by_source
        self.create_dirs = create_dirs
        self.subdir_prefix = subdir_prefix
        self._used_paths: Set[Path] = {Path(p) for p in existing_paths}
        self._assigned: Dict[DisambiguationKey, Path] = {}
        self._container_dirs: Dict[str, Path] = {}
        self._disambiguation_dirs: Set[Path] = set()
        self._version_dirs: Set[Path] = set()
        self._counter = 0
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls, root_dir: Optional[PathLike] = None,
                      settings: Optional[Settings] = None, **kwargs) -> "LocalizationDisambiguator":
        settings = settings or get_settings()
        root = root_dir or settings.localization_root
        if root is None:
            raise ValueError("no root_dir given and localization_root is not configured")
        kwargs.setdefault("create_dirs", settings.create_localization_dirs)
        kwargs.setdefault("subdir_prefix", settings.disambiguation_subdir_prefix)
        return cls(root, **kwargs)

    @property
    def localized_paths(self) -> Set[Path]:
        with self._lock:
            return set(self._assigned.values())

    def _taken(self, path: Path) -> bool:
        if path in self._used_paths:
            return True
        if path.exists():
            self._used_paths.add(path)
            return True
        return False

    def _new_disambiguation_dir(self) -> Path:
        while True:
            self._counter += 1
            candidate = self.root_dir / f"{self.subdir_prefix}{self._counter}"
            if candidate not in self._disambiguation_dirs and not self._taken(candidate):
                break
        self._disambiguation_dirs.add(candidate)
        self._used_paths.add(candidate)
        logger.debug(f"Allocated disambiguation directory {candidate}")
        return candidate

    def _version_dir_available(self, version_dir: Path) -> bool:
        # a version directory may be shared by versions of different files,
        # but never by a file assigned the same path
        return version_dir in self._version_dirs or not self._taken(version_dir)

    @staticmethod
    def _container_key(source: FileSource) -> str:
        return source.container if source.container is not None else f"folder:{source.folder}"

    def _place(self, source: FileSource, name: str, common_dir: Optional[Path] = None) -> Path:
        container = self._container_key(source)
        parent = self._container_dirs.get(container)
        if parent is not None:
            local_path = parent / name
            if not self._taken(local_path):
                return local_path
            version = source.version
            if version is not None and _is_path_component(version):
                version_dir = parent / version
                local_path = version_dir / name
                if self._version_dir_available(version_dir) and not self._taken(local_path):
                    self._version_dirs.add(version_dir)
                    self._used_paths.add(version_dir)
                    return local_path
            return self._new_disambiguation_dir() / name
        if common_dir is not None:
            candidate_dir = common_dir
        elif self.separate_dirs_by_source:
            candidate_dir = None
        else:
            candidate_dir = self.root_dir
        if candidate_dir is None or self._taken(candidate_dir / name):
            candidate_dir = self._new_disambiguation_dir()
        self._container_dirs[container] = candidate_dir
        return candidate_dir / name

    def _finish(self, key: DisambiguationKey, local_path: Path) -> Path:
        self._used_paths.add(local_path)
        self._assigned[key] = local_path
        if self.create_dirs:
            local_path.parent.mkdir(parents=True, exist_ok=True)
        return local_path

    @synchronized
    def get_local_path(self, source: FileSource) -> Path:
        """Returns a unique local path for a single source."""
        name = _check_name(source)
        key = disambiguation_key(source)
        existing = self._assigned.get(key)
        if existing is not None:
            return existing
        local_path = self._finish(key, self._place(source, name))
        logger.debug(f"Localizing {source} to {local_path}")
        return local_path

    @synchronized
    def get_local_paths(self, sources: Sequence[FileSource]) -> Dict[FileSource, Path]:
        """Returns a mapping of source to unique local path.

        Sources are assigned in input order. Unless ``separate_dirs_by_source``
        is set, sources whose names do not collide within the batch are put in
        a single common directory, and sources from a container that has a
        name collision are placed one at a time.
        """
        names = {id(source): _check_name(source) for source in sources}
        if self.separate_dirs_by_source:
            return {source: self.get_local_path(source) for source in sources}

        pending: List[FileSource] = []
        seen: Set[DisambiguationKey] = set()
        for source in sources:
            key = disambiguation_key(source)
            if key not in self._assigned and key not in seen:
                seen.add(key)
                pending.append(source)

        keys_by_name: Dict[str, Set[DisambiguationKey]] = {}
        for source in pending:
            keys_by_name.setdefault(names[id(source)], set()).add(disambiguation_key(source))
        colliding_containers = {
            self._container_key(source)
            for source in pending
            if len(keys_by_name[names[id(source)]]) > 1
        }

        common_dir: Optional[Path] = None
        for source in pending:
            name = names[id(source)]
            container = self._container_key(source)
            if container in colliding_containers or container in self._container_dirs:
                local_path = self._place(source, name)
            else:
                if common_dir is None:
                    common_dir = self._new_disambiguation_dir()
                local_path = self._place(source, name, common_dir)
            self._finish(disambiguation_key(source), local_path)
            logger.debug(f"Localizing {source} to {local_path}")

        return {source: self._assigned[disambiguation_key(source)] for source in sources}


def localize_all(sources: Sequence[FileSource], disambiguator: LocalizationDisambiguator,
                 overwrite: bool = False) -> Dict[FileSource, Path]:
    """Localize every source to its disambiguated path.

    Returns:
        Mapping of source to the local path it was written to
    """
    local_paths = disambiguator.get_local_paths(sources)
    done: Set[Path] = set()
    for source in sources:
        local_path = local_paths[source]
        if local_path in done:
            continue
        source.localize(local_path, overwrite=overwrite)
        done.add(local_path)
    logger.info(f"Localized {len(done)} file(s) under {disambiguator.root_dir}")
    return local_paths
