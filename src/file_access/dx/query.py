"""
Paginated findDataObjects queries.

A query is a constraint set; the platform answers it a page at a time and
hands back a cursor for the next page. Pages are fetched lazily in a single
forward pass.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from typing_extensions import Self

from file_access.dx.models import (
    DxDataObject,
    DxFile,
    DxFileDescribe,
    DxObjectDescribe,
    DxState,
    Field,
    request_fields,
)
from file_access.exceptions import InvalidCursorError
from file_access.utils.decorators import log_execution_time

if TYPE_CHECKING:
    from file_access.dx.api import DxApi

logger = logging.getLogger(__name__)

ALLOWED_CLASSES = ("record", "file", "applet", "workflow")

REQUIRED_DESC_FIELDS = frozenset({
    Field.NAME, Field.FOLDER, Field.SIZE, Field.STATE, Field.ARCHIVAL_STATE,
    Field.PROPERTIES, Field.CREATED, Field.MODIFIED,
})


class DxVisibility(str, Enum):
    VISIBLE = "visible"
    HIDDEN = "hidden"
    EITHER = "either"


def _millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


class DxFindDataObjectsConstraints(BaseModel):
    """Constraints of a findDataObjects query.

    ``folder`` and ``recurse`` only take effect together with ``project``. At
    most one of ``names``, ``name_regexp`` and ``name_glob`` may be given.
    """
    project: Optional[str] = None
    folder: Optional[str] = None
    recurse: bool = False
    object_class: Optional[str] = None
    tags: List[str] = []
    properties: Optional[Dict[str, Any]] = None
    names: List[str] = []
    name_regexp: Optional[str] = None
    name_regexp_case_insensitive: bool = False
    name_glob: Optional[str] = None
    ids: List[str] = []
    state: Optional[DxState] = None
    created_before: Optional[datetime] = None
    created_after: Optional[datetime] = None
    modified_before: Optional[datetime] = None
    modified_after: Optional[datetime] = None
    visibility: DxVisibility = DxVisibility.EITHER

    model_config = ConfigDict(frozen=True)

    @field_validator("object_class")
    @classmethod
    def check_object_class(cls, v):
        if v is not None and v not in ALLOWED_CLASSES:
            raise ValueError(f"invalid class limitation {v}; must be one of {','.join(ALLOWED_CLASSES)}")
        return v

    @model_validator(mode="after")
    def check_name_constraints_are_mutually_exclusive(self) -> Self:
        given = [bool(self.names), self.name_regexp is not None, self.name_glob is not None]
        if sum(given) > 1:
            raise ValueError("only one of 'names', 'name_regexp', and 'name_glob' may be defined")
        return self

    def _name_field(self) -> Optional[Any]:
        flags = {"flags": "i"} if self.name_regexp_case_insensitive else {}
        if self.names:
            if len(self.names) == 1:
                return self.names[0]
            return {"regexp": "|".join(f"^{re.escape(name)}$" for name in self.names), **flags}
        if self.name_regexp is not None:
            return {"regexp": self.name_regexp, **flags}
        if self.name_glob is not None:
            return {"glob": self.name_glob}
        return None

    def to_request(self) -> Dict[str, Any]:
        """The constraint part of a findDataObjects request."""
        request: Dict[str, Any] = {}
        if self.project is not None:
            scope: Dict[str, Any] = {"project": self.project, "recurse": self.recurse}
            if self.folder is not None:
                scope["folder"] = self.folder
            request["scope"] = scope
        if self.object_class is not None:
            request["class"] = self.object_class
        if self.tags:
            request["tagsArray"] = list(self.tags)
        if self.properties is not None:
            request["properties"] = self.properties
        name = self._name_field()
        if name is not None:
            request["name"] = name
        if self.ids:
            request["id"] = list(self.ids)
        if self.state is not None:
            request["state"] = self.state.value
        created = {}
        if self.created_before is not None:
            created["before"] = _millis(self.created_before)
        if self.created_after is not None:
            created["after"] = _millis(self.created_after)
        if created:
            request["created"] = created
        modified = {}
        if self.modified_before is not None:
            modified["before"] = _millis(self.modified_before)
        if self.modified_after is not None:
            modified["after"] = _millis(self.modified_after)
        if modified:
            request["modified"] = modified
        request["visibility"] = self.visibility.value
        return request


@dataclass(frozen=True)
class QueryCursor:
    """Continuation token, valid only with the constraints that produced it."""
    token: Any
    constraints: DxFindDataObjectsConstraints


Match = Tuple[DxDataObject, DxObjectDescribe]


@dataclass
class QueryPage:
    results: List[Match] = field(default_factory=list)
    cursor: Optional[QueryCursor] = None

    @property
    def is_last(self) -> bool:
        return self.cursor is None


class DxFindDataObjects:
    """Runs findDataObjects queries through ``api``.

    Args:
        api: The API the results are bound to
        limit: Page size; the server default when None
    """

    def __init__(self, api: "DxApi", limit: Optional[int] = None):
        self.api = api
        self.limit = limit

    def _build_request(self, constraints: DxFindDataObjectsConstraints,
                       extra_fields: Iterable[Field], default_fields: bool) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "describe": {
                "fields": request_fields(REQUIRED_DESC_FIELDS | set(extra_fields)),
                "defaultFields": default_fields,
            }
        }
        if self.limit is not None:
            request["limit"] = self.limit
        request.update(constraints.to_request())
        return request

    def _parse_result(self, result: Dict[str, Any], fields: Iterable[Field]) -> Match:
        try:
            project = result["project"]
            object_id = result["id"]
            desc_json = {**result["describe"], "id": object_id, "project": project}
        except (KeyError, TypeError) as e:
            raise ValueError(f"malformed result: expecting project, id and describe fields, got {result}") from e
        dx_object = self.api.data_object(object_id, project)
        if isinstance(dx_object, DxFile):
            desc: DxObjectDescribe = DxFileDescribe.from_json(desc_json)
            dx_object.cache_describe(desc, fields)
            self.api.cache.put(desc)
        else:
            desc = DxObjectDescribe.model_validate(desc_json)
        return dx_object, desc

    def query_page(self, constraints: DxFindDataObjectsConstraints, cursor: Optional[QueryCursor] = None,
                   extra_fields: Iterable[Field] = (), default_fields: bool = False) -> QueryPage:
        """Fetch one page of results.

        Raises:
            InvalidCursorError: If ``cursor`` was produced by different constraints
        """
        if cursor is not None and cursor.constraints != constraints:
            raise InvalidCursorError(
                f"cursor {cursor.token!r} belongs to a different query than {constraints}"
            )
        extra_fields = set(extra_fields)
        request = self._build_request(constraints, extra_fields, default_fields)
        if cursor is None and constraints.project is None:
            logger.warning(
                "Calling findDataObjects without a project can result in longer response times "
                "and greater load on the API server"
            )
        if cursor is not None:
            request["starting"] = cursor.token
        response = self.api.transport.find(request)
        if "results" not in response:
            raise ValueError(f"missing results field in {response}")
        results = [self._parse_result(r, extra_fields) for r in response["results"]]
        next_token = response.get("next")
        next_cursor = QueryCursor(next_token, constraints) if next_token is not None else None
        return QueryPage(results, next_cursor)

    def query_pages(self, constraints: DxFindDataObjectsConstraints, extra_fields: Iterable[Field] = (),
                    default_fields: bool = False) -> Iterator[QueryPage]:
        """Lazily follow cursors until the last or an empty page."""
        cursor: Optional[QueryCursor] = None
        while True:
            page = self.query_page(constraints, cursor, extra_fields, default_fields)
            if not page.results:
                return
            yield page
            if page.cursor is None:
                return
            cursor = page.cursor

    def query(self, constraints: DxFindDataObjectsConstraints, extra_fields: Iterable[Field] = (),
              default_fields: bool = False) -> Iterator[Match]:
        """Lazily yield every matching object with its description."""
        for page in self.query_pages(constraints, extra_fields, default_fields):
            yield from page.results

    @log_execution_time
    def find(self, constraints: DxFindDataObjectsConstraints, extra_fields: Iterable[Field] = (),
             default_fields: bool = False) -> List[Match]:
        """Run the whole query and return every match."""
        return list(self.query(constraints, extra_fields, default_fields))

    def find_files(self, project: Optional[str] = None, folder: Optional[str] = None, recurse: bool = False,
                   names: Iterable[str] = (), ids: Iterable[str] = (), name_glob: Optional[str] = None,
                   extra_fields: Iterable[Field] = ()) -> List[DxFile]:
        """Files matching the given constraints, each with its description cached."""
        constraints = DxFindDataObjectsConstraints(
            project=project, folder=folder, recurse=recurse, object_class="file",
            names=list(names), ids=list(ids), name_glob=name_glob,
        )
        return [obj for obj, _ in self.query(constraints, extra_fields) if isinstance(obj, DxFile)]
