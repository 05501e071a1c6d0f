####################################
# --- Platform object models   --- #
####################################

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field as ModelField, field_validator

from file_access.dx import paths

if TYPE_CHECKING:
    from file_access.dx.api import DxApi

logger = logging.getLogger(__name__)

DX_LINK_KEY = "$dnanexus_link"


class Field(str, Enum):
    """Describe fields that may be requested from the platform."""
    ID = "id"
    PROJECT = "project"
    CLASS = "class"
    NAME = "name"
    FOLDER = "folder"
    CREATED = "created"
    MODIFIED = "modified"
    SIZE = "size"
    STATE = "state"
    ARCHIVAL_STATE = "archivalState"
    TAGS = "tags"
    PROPERTIES = "properties"
    DETAILS = "details"
    PARTS = "parts"


DEFAULT_FILE_FIELDS = frozenset({
    Field.ID, Field.PROJECT, Field.NAME, Field.FOLDER, Field.CREATED,
    Field.MODIFIED, Field.SIZE, Field.STATE, Field.ARCHIVAL_STATE,
})


def request_fields(fields: Iterable[Field]) -> Dict[str, bool]:
    """The ``fields`` mapping of a describe request."""
    return {Field(field).value: True for field in fields}


class DxState(str, Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class DxArchivalState(str, Enum):
    LIVE = "live"
    ARCHIVAL = "archival"
    ARCHIVED = "archived"
    UNARCHIVING = "unarchiving"


class DxFilePart(BaseModel):
    """One uploaded part of a file."""
    state: str
    size: int
    md5: str

    model_config = ConfigDict(frozen=True)


class DxObjectDescribe(BaseModel):
    """Description of a data object returned by describe or find."""
    id: str
    project: str
    name: str
    folder: str
    created: int = ModelField(description="Creation time in milliseconds since the epoch")
    modified: int = ModelField(description="Modification time in milliseconds since the epoch")
    tags: Optional[List[str]] = None
    properties: Optional[Dict[str, str]] = None
    details: Optional[Any] = None

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class DxFileDescribe(DxObjectDescribe):
    """Description of a file. ``size`` is 0 for files that are still open."""
    size: int = 0
    state: DxState
    archival_state: DxArchivalState = ModelField(DxArchivalState.LIVE, alias="archivalState")
    parts: Optional[Dict[int, DxFilePart]] = None

    @field_validator("state", "archival_state", mode="before")
    @classmethod
    def lower_case_state(cls, v):
        return v.lower() if isinstance(v, str) else v

    @field_validator("size", mode="before")
    @classmethod
    def missing_size_is_zero(cls, v):
        return 0 if v is None else v

    @classmethod
    def from_json(cls, desc: Dict[str, Any], project: Optional[str] = None) -> "DxFileDescribe":
        """Parse a describe/find result, filling in ``project`` when the
        result does not carry one.
        """
        if project is not None and "project" not in desc:
            desc = {**desc, "project": project}
        return cls.model_validate(desc)


class DxDataObject:
    """A platform data object identified by id, optionally within a project."""

    def __init__(self, id: str, project: Optional[str] = None, api: Optional["DxApi"] = None):
        self.id = id
        self.project = project
        self._api = api

    @property
    def object_class(self) -> str:
        return self.id.split("-", 1)[0]

    @property
    def api(self) -> "DxApi":
        if self._api is None:
            raise ValueError(f"{self} is not bound to an API")
        return self._api

    def as_json(self) -> Dict[str, Any]:
        """A platform link to this object."""
        if self.project is None:
            return {DX_LINK_KEY: self.id}
        return {DX_LINK_KEY: {"project": self.project, "id": self.id}}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DxDataObject):
            return NotImplemented
        return self.id == other.id and self.project == other.project

    def __hash__(self) -> int:
        return hash((self.id, self.project))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id!r}, project={self.project!r})"


class DxFile(DxDataObject):
    """A platform file whose description is cached on first retrieval.

    ``name`` and ``folder`` may be given up front, e.g. from a URI that asserts
    them; they are used only until the real description is known.
    """

    def __init__(self, id: str, project: Optional[str] = None, api: Optional["DxApi"] = None,
                 name: Optional[str] = None, folder: Optional[str] = None):
        super().__init__(id, project, api)
        self.asserted_name = name
        self.asserted_folder = folder
        self._cached_desc: Optional[DxFileDescribe] = None
        self._cached_fields: Set[Field] = set()

    @property
    def has_cached_desc(self) -> bool:
        return self._cached_desc is not None

    @property
    def cached_desc(self) -> Optional[DxFileDescribe]:
        return self._cached_desc

    def has_cached_fields(self, fields: Iterable[Field] = ()) -> bool:
        return self._cached_desc is not None and set(fields).issubset(self._cached_fields)

    def cache_describe(self, desc: DxFileDescribe, fields: Iterable[Field] = DEFAULT_FILE_FIELDS) -> None:
        self._cached_desc = desc
        self._cached_fields = set(fields) | set(DEFAULT_FILE_FIELDS)

    def describe(self, fields: Iterable[Field] = ()) -> DxFileDescribe:
        """The cached description, fetching it if not cached or if ``fields``
        asks for something the cached one lacks.
        """
        wanted = set(fields)
        if not self.has_cached_fields(wanted):
            desc = self.api.describe_file(self, wanted)
            self.cache_describe(desc, wanted)
        return self._cached_desc

    def get_name(self) -> str:
        if self._cached_desc is None and self.asserted_name is not None:
            return self.asserted_name
        return self.describe().name

    def get_folder(self) -> str:
        if self._cached_desc is None and self.asserted_folder is not None:
            return self.asserted_folder
        return self.describe().folder

    def get_project(self) -> str:
        if self._cached_desc is None and self.project is not None:
            return self.project
        return self.describe().project

    def as_uri(self) -> str:
        """dx://[project:]file-xxxx::/folder/name"""
        desc = self.describe()
        return paths.format_file(self.id, desc.folder, desc.name, self.project)

    @classmethod
    def from_json(cls, link: Any, api: Optional["DxApi"] = None) -> "DxFile":
        """Parse a platform link: ``{"$dnanexus_link": "file-x"}`` or
        ``{"$dnanexus_link": {"project": "project-y", "id": "file-x"}}``.
        """
        if not isinstance(link, dict) or DX_LINK_KEY not in link:
            raise ValueError(f"not a file link: {link}")
        value = link[DX_LINK_KEY]
        if isinstance(value, str):
            file_id, project = value, None
        elif isinstance(value, dict) and "id" in value:
            file_id, project = value["id"], value.get("project")
        else:
            raise ValueError(f"malformed file link: {link}")
        if not paths.is_file_id(file_id):
            raise ValueError(f"not a file id: {file_id}")
        return cls(file_id, project, api)


def make_data_object(object_id: str, project: Optional[str] = None,
                     api: Optional["DxApi"] = None) -> DxDataObject:
    if paths.is_file_id(object_id):
        return DxFile(object_id, project, api)
    return DxDataObject(object_id, project, api)
