"""Read-through cache of file descriptions keyed by (file id, project)."""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from file_access.dx.models import DxFile, DxFileDescribe

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]


class DxFileDescCache:
    """Descriptions of files, one entry per (id, project).

    A lookup that names a project only ever returns that project's entry. A
    lookup without a project returns an entry only when the id is cached in
    exactly one project.
    """

    def __init__(self, descriptions: Iterable[DxFileDescribe] = ()):
        self._lock = threading.Lock()
        self._entries: Dict[CacheKey, DxFileDescribe] = {}
        self._projects_by_id: Dict[str, List[str]] = {}
        self.update(descriptions)

    def put(self, desc: DxFileDescribe) -> None:
        with self._lock:
            self._put(desc)

    def _put(self, desc: DxFileDescribe) -> None:
        key = (desc.id, desc.project)
        if key not in self._entries:
            self._projects_by_id.setdefault(desc.id, []).append(desc.project)
        self._entries[key] = desc

    def update(self, descriptions: Iterable[DxFileDescribe]) -> None:
        with self._lock:
            for desc in descriptions:
                self._put(desc)

    def get(self, file_id: str, project: Optional[str] = None) -> Optional[DxFileDescribe]:
        with self._lock:
            if project is not None:
                return self._entries.get((file_id, project))
            projects = self._projects_by_id.get(file_id, [])
            if len(projects) == 1:
                return self._entries[(file_id, projects[0])]
            return None

    def get_all(self, file_id: str) -> List[DxFileDescribe]:
        """Every cached description of ``file_id``, in the order the projects were first cached."""
        with self._lock:
            return [self._entries[(file_id, p)] for p in self._projects_by_id.get(file_id, [])]

    def update_file(self, dx_file: DxFile) -> bool:
        """Copy a cached description onto ``dx_file``. Returns whether one was found."""
        desc = self.get(dx_file.id, dx_file.project)
        if desc is None:
            return False
        dx_file.cache_describe(desc)
        return True

    def __contains__(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
