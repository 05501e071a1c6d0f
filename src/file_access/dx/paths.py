"""
Parsing and formatting of dx:// URIs.

Supported forms::

    dx://file-xxxx
    dx://project-xxxx:file-yyyy
    dx://project-xxxx:/folder/name
    dx://project-xxxx:/folder/          (a folder)
    dx://file-xxxx::name.txt            (asserted name)
    dx://project-xxxx:file-yyyy::/a/b.txt
"""

import posixpath
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, unquote

from file_access.exceptions import InvalidUriError

DX_SCHEME = "dx"
DX_URI_PREFIX = f"{DX_SCHEME}://"

DATA_OBJECT_CLASSES = ("file", "record", "applet", "workflow", "database", "dbcluster")
_DATA_OBJECT_ID_RE = re.compile(rf"^({'|'.join(DATA_OBJECT_CLASSES)})-[0-9A-Za-z]{{24}}$")
_FILE_ID_RE = re.compile(r"^file-[0-9A-Za-z]{24}$")
_CONTAINER_ID_RE = re.compile(r"^(project|container)-[0-9A-Za-z]{24}$")


def is_data_object_id(value: str) -> bool:
    return bool(_DATA_OBJECT_ID_RE.match(value))


def is_file_id(value: str) -> bool:
    return bool(_FILE_ID_RE.match(value))


def is_container_id(value: str) -> bool:
    return bool(_CONTAINER_ID_RE.match(value))


def normalize_folder(folder: str) -> str:
    """Absolute folder path without a trailing slash (except the root)."""
    folder = posixpath.normpath(f"/{folder.strip('/')}")
    return "/" if folder in ("/", "//") else folder


@dataclass(frozen=True)
class DxPathComponents:
    """The parts of a dx:// URI.

    Exactly one of ``object_id`` and ``path`` is set. ``asserted_name`` and
    ``asserted_folder`` come from the ``::`` suffix of an id-based URI.
    """

    uri: str
    project: Optional[str] = None
    object_id: Optional[str] = None
    path: Optional[str] = None
    asserted_name: Optional[str] = None
    asserted_folder: Optional[str] = None
    is_directory: bool = False

    @property
    def name(self) -> Optional[str]:
        if self.asserted_name is not None:
            return self.asserted_name
        if self.path is not None:
            return posixpath.basename(self.path.rstrip("/"))
        return None

    @property
    def folder(self) -> Optional[str]:
        if self.asserted_folder is not None:
            return self.asserted_folder
        if self.path is not None:
            if self.is_directory:
                return normalize_folder(self.path)
            return normalize_folder(posixpath.dirname(self.path))
        return None


def parse(uri: str) -> DxPathComponents:
    """Parse a dx:// URI (or a bare ``project:path`` / object id).

    Raises:
        InvalidUriError: If the URI is malformed or names a project by anything
            other than its id
    """
    value = unquote(uri[len(DX_URI_PREFIX):] if uri.startswith(DX_URI_PREFIX) else uri)
    if not value:
        raise InvalidUriError(uri, "empty path")

    head, sep, asserted = value.partition("::")
    if ":" in head:
        project, _, rest = head.partition(":")
        if is_file_id(project):
            raise InvalidUriError(uri, "does not look like dx://PROJECT:/FILE_PATH")
        if not is_container_id(project):
            raise InvalidUriError(uri, f"project must be given by id, not '{project}'")
    else:
        project, rest = None, head

    if is_data_object_id(rest):
        asserted_name = asserted_folder = None
        if sep:
            if not asserted or asserted.endswith("/"):
                raise InvalidUriError(uri, "asserted name must not be empty or a folder")
            asserted_name = posixpath.basename(asserted)
            parent = posixpath.dirname(asserted)
            asserted_folder = normalize_folder(parent) if parent else None
        return DxPathComponents(uri, project, object_id=rest,
                                asserted_name=asserted_name, asserted_folder=asserted_folder)

    if sep:
        raise InvalidUriError(uri, "'::' must follow an object id")
    if not rest:
        raise InvalidUriError(uri, "missing object id or path")
    is_directory = rest.endswith("/")
    path = f"/{rest.lstrip('/')}"
    if is_directory:
        path = normalize_folder(path)
        path = path if path == "/" else f"{path}/"
    else:
        path = posixpath.normpath(path)
    return DxPathComponents(uri, project, path=path, is_directory=is_directory)


def format_file_id(file_id: str, project: Optional[str] = None) -> str:
    """dx://file-xxxx or dx://project-xxxx:file-xxxx"""
    if project:
        return f"{DX_URI_PREFIX}{project}:{file_id}"
    return f"{DX_URI_PREFIX}{file_id}"


def format_path(project: str, folder: str, name: str) -> str:
    """dx://project-xxxx:/folder/name"""
    return f"{DX_URI_PREFIX}{project}:{quote(posixpath.join(normalize_folder(folder), name))}"


def format_folder(project: str, folder: str) -> str:
    """dx://project-xxxx:/folder/"""
    folder = normalize_folder(folder)
    return f"{DX_URI_PREFIX}{project}:{quote(folder if folder == '/' else f'{folder}/')}"


def format_file(file_id: str, folder: str, name: str, project: Optional[str] = None) -> str:
    """dx://project-xxxx:file-yyyy::/folder/name, keeping the name visible in the URI."""
    authority = f"{project}:{file_id}" if project else file_id
    return f"{DX_URI_PREFIX}{authority}::{quote(posixpath.join(normalize_folder(folder), name))}"
