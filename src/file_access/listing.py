"""
Directory listings for backends that have no native directories.

Object stores such as S3 and the platform only know flat keys. A listing is
reconstructed from ``(relative_path, payload)`` entries, where the relative
path is the key with the listed folder's prefix removed and the payload is
whatever the backend returned for that key (an S3 object summary, a platform
file, ...). Paths ending in ``/`` are folder markers or common prefixes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Iterable, Iterator, List, Sequence, Tuple, TypeVar

from file_access.sources.base import DirectoryFileSource, FileSource

logger = logging.getLogger(__name__)

D = TypeVar("D", bound=DirectoryFileSource)

Entry = Tuple[str, Any]

#: Builds the file source called ``name`` inside ``parent``
MakeFile = Callable[[Any, str, Any], FileSource]
#: Builds the folder source called ``name`` inside ``parent``
MakeFolder = Callable[[Any, str], DirectoryFileSource]


@dataclass
class _FolderNode:
    source: DirectoryFileSource
    files: List[FileSource] = field(default_factory=list)
    folders: Dict[str, "_FolderNode"] = field(default_factory=dict)

    def children(self) -> List[FileSource]:
        return self.files + [node.source for node in self.folders.values()]

    def flatten(self) -> Iterator[FileSource]:
        yield from self.files
        for node in self.folders.values():
            yield node.source
            yield from node.flatten()


def _split(rel_path: str) -> Tuple[List[str], bool]:
    parts = [part for part in rel_path.split("/") if part]
    return parts, rel_path.endswith("/")


class ListingSynthesizer(Generic[D]):
    """Builds shallow or recursive listings out of flat key entries.

    Every emitted source is constructed with the already-built source of its
    immediate ancestor as parent, so ``child.get_parent() is folder`` holds for
    everything in a listing.

    Args:
        make_file: Called as ``make_file(parent, name, payload)``
        make_folder: Called as ``make_folder(parent, name)``
    """

    def __init__(self, make_file: MakeFile, make_folder: MakeFolder):
        self._make_file = make_file
        self._make_folder = make_folder

    def shallow(self, parent: D, entries: Iterable[Entry]) -> List[FileSource]:
        """Immediate children of ``parent``: files in entry order, then folders in
        first-seen order.
        """
        files: List[FileSource] = []
        folders: Dict[str, DirectoryFileSource] = {}
        for rel_path, payload in entries:
            parts, is_marker = _split(rel_path)
            if not parts:
                continue
            if len(parts) == 1 and not is_marker:
                files.append(self._make_file(parent, parts[0], payload))
            elif parts[0] not in folders:
                folders[parts[0]] = self._make_folder(parent, parts[0])
        return files + list(folders.values())

    def recursive(self, parent: D, entries: Iterable[Entry]) -> List[FileSource]:
        """Every descendant of ``parent``, built in one pass.

        Each folder in the subtree has its own shallow listing cached, so later
        calls to ``listing()`` on a child do not query the backend. ``parent``
        itself is left uncached.

        Returns:
            The pre-order flattening of the subtree
        """
        root = _FolderNode(parent)
        for rel_path, payload in entries:
            parts, is_marker = _split(rel_path)
            if not parts:
                continue
            dir_parts: Sequence[str] = parts if is_marker else parts[:-1]
            node = self._ensure_folder(root, dir_parts)
            if not is_marker:
                node.files.append(self._make_file(node.source, parts[-1], payload))
        self._wire(root)
        return list(root.flatten())

    def _ensure_folder(self, root: _FolderNode, dir_parts: Sequence[str]) -> _FolderNode:
        node = root
        for part in dir_parts:
            child = node.folders.get(part)
            if child is None:
                child = _FolderNode(self._make_folder(node.source, part))
                node.folders[part] = child
            node = child
        return node

    def _wire(self, root: _FolderNode) -> None:
        stack = list(root.folders.values())
        while stack:
            node = stack.pop()
            node.source.set_cached_listing(node.children())
            stack.extend(node.folders.values())
