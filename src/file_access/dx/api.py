"""Entry point to the platform: file handles, describe, find and download."""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from file_access.dx import paths
from file_access.dx.bulk import BulkDescriber
from file_access.dx.cache import DxFileDescCache
from file_access.dx.models import (
    DEFAULT_FILE_FIELDS,
    DxDataObject,
    DxFile,
    DxFileDescribe,
    Field,
    make_data_object,
    request_fields,
)
from file_access.dx.query import DxFindDataObjects, DxFindDataObjectsConstraints
from file_access.dx.transport import DxTransport, HttpDxTransport
from file_access.exceptions import AmbiguousObjectError, InvalidUriError, ObjectNotFoundError
from file_access.settings import DX_RESULTS_PER_CALL_LIMIT, Settings, get_settings

logger = logging.getLogger(__name__)


class DxApi:
    """Platform API bound to one transport and one description cache.

    Args:
        transport: Wire-level client
        limit: Maximum number of objects per describe/find call
        project: Current project, used for paths that do not name one
        workspace: Current workspace container
        cache: Description cache shared by everything this API creates
        max_workers: Threads used by bulk describe
        find_page_limit: Page size of find queries
    """

    def __init__(self, transport: DxTransport, limit: int = DX_RESULTS_PER_CALL_LIMIT,
                 project: Optional[str] = None, workspace: Optional[str] = None,
                 cache: Optional[DxFileDescCache] = None, max_workers: int = 4,
                 find_page_limit: Optional[int] = None):
        if limit <= 0 or limit > DX_RESULTS_PER_CALL_LIMIT:
            raise ValueError(f"limit must be between 1 and {DX_RESULTS_PER_CALL_LIMIT}, got {limit}")
        self.transport = transport
        self.limit = limit
        self.project = project
        self.workspace = workspace
        self.cache = cache if cache is not None else DxFileDescCache()
        self.max_workers = max_workers
        self.find_page_limit = find_page_limit

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None,
                      transport: Optional[DxTransport] = None) -> "DxApi":
        settings = settings or get_settings()
        return cls(
            transport or HttpDxTransport.from_settings(settings),
            limit=settings.dx_results_per_call_limit,
            project=settings.dx_project,
            workspace=settings.dx_workspace,
            max_workers=settings.max_workers,
            find_page_limit=settings.dx_find_page_limit,
        )

    def file(self, file_id: str, project: Optional[str] = None,
             name: Optional[str] = None, folder: Optional[str] = None) -> DxFile:
        if not paths.is_file_id(file_id):
            raise ValueError(f"{file_id} is not a file id")
        return DxFile(file_id, project, self, name, folder)

    def data_object(self, object_id: str, project: Optional[str] = None) -> DxDataObject:
        return make_data_object(object_id, project, self)

    def describe_file(self, dx_file: DxFile, fields: Iterable[Field] = ()) -> DxFileDescribe:
        """Describe a single file, using the cache when it has an entry for the
        file's project and no extra fields are requested.
        """
        extra = set(fields) - DEFAULT_FILE_FIELDS
        if not extra:
            cached = self.cache.get(dx_file.id, dx_file.project) if dx_file.project else None
            if cached is not None:
                return cached
        described = self.transport.describe(
            [dx_file.id], dx_file.project, request_fields(DEFAULT_FILE_FIELDS | extra)
        )
        if dx_file.id not in described:
            raise ObjectNotFoundError([dx_file.id], dx_file.project)
        desc = DxFileDescribe.from_json(described[dx_file.id], dx_file.project)
        self.cache.put(desc)
        return desc

    def describe_files_bulk(self, files: Sequence[DxFile], extra_fields: Iterable[Field] = (),
                            validate: bool = False, require_unique: bool = False,
                            search_workspace_first: bool = False) -> List[DxFile]:
        """See ``BulkDescriber.describe``."""
        return BulkDescriber(self).describe(
            files, extra_fields, validate=validate, require_unique=require_unique,
            search_workspace_first=search_workspace_first,
        )

    def find_data_objects(self, limit: Optional[int] = None) -> DxFindDataObjects:
        return DxFindDataObjects(self, limit or self.find_page_limit)

    def resolve_file(self, uri: str) -> DxFile:
        """Resolve a dx:// URI (or bare id / ``project:path``) to a file.

        Id-based URIs are not checked against the platform. Path-based URIs
        are looked up with a single find request in the folder.
        """
        components = paths.parse(uri)
        if components.object_id is not None:
            if not paths.is_file_id(components.object_id):
                raise InvalidUriError(uri, f"{components.object_id} is not a file")
            return DxFile(components.object_id, components.project, self,
                          components.asserted_name, components.asserted_folder)
        if components.is_directory:
            raise InvalidUriError(uri, "expected a file but got a folder")
        project = components.project or self.project
        if project is None:
            raise InvalidUriError(uri, "no project given and no current project configured")
        constraints = DxFindDataObjectsConstraints(
            project=project, folder=components.folder, recurse=False,
            object_class="file", names=[components.name],
        )
        page = self.find_data_objects().query_page(constraints)
        found = [obj for obj, _ in page.results if isinstance(obj, DxFile)]
        if not found:
            raise ObjectNotFoundError([components.path], project)
        if len(found) > 1:
            raise AmbiguousObjectError(
                components.path, f"found {len(found)} files with the same path in {project}", [project]
            )
        return found[0]

    def download_file(self, dx_file: DxFile, dest: Path) -> Path:
        logger.debug(f"Downloading {dx_file.id} to {dest}")
        with open(dest, "wb") as out:
            for chunk in self.transport.download(dx_file.id, dx_file.project):
                out.write(chunk)
        return dest

    def download_bytes(self, dx_file: DxFile) -> bytes:
        return b"".join(self.transport.download(dx_file.id, dx_file.project))

    def close(self) -> None:
        self.transport.close()
