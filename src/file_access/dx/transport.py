"""
The narrow interface to the platform API, and its HTTP implementation.

Everything above this module talks to the platform through ``DxTransport``,
so tests can swap in an in-memory transport.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Iterator, Optional, Sequence

import requests

from file_access.exceptions import ObjectNotFoundError, TransportError

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 1024 * 1024


class DxTransport(ABC):
    """Wire-level platform calls."""

    @abstractmethod
    def describe(self, ids: Sequence[str], project: Optional[str],
                 fields: Dict[str, bool]) -> Dict[str, Dict[str, Any]]:
        """Describe ``ids`` in ``project``.

        Returns:
            Mapping of id to description for the ids that exist; missing ids are omitted
        """

    @abstractmethod
    def find(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Run one findDataObjects request.

        Returns:
            ``{"results": [{"project", "id", "describe"}, ...], "next": cursor or None}``
        """

    @abstractmethod
    def download(self, file_id: str, project: Optional[str] = None) -> Iterator[bytes]:
        """Stream the contents of a file."""

    def close(self) -> None:
        """Release pooled connections."""


class HttpDxTransport(DxTransport):
    """DxTransport over the platform's JSON-over-HTTP API. No retries are performed.

    Args:
        base_url: API server URL
        token: Bearer token sent with every request
        timeout: Request timeout in seconds
    """

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._session: Optional[requests.Session] = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "HttpDxTransport":
        return cls(settings.dx_api_server_url, settings.dx_api_token, settings.http_timeout)

    @property
    def session(self) -> requests.Session:
        with self._lock:
            if self._session is None:
                session = requests.Session()
                if self.token:
                    session.headers["Authorization"] = f"Bearer {self.token}"
                self._session = session
            return self._session

    def _call(self, route: str, payload: Dict[str, Any], ids: Iterable[str] = ()) -> Dict[str, Any]:
        url = f"{self.base_url}/{route.lstrip('/')}"
        logger.debug(f"POST {url}")
        response = self.session.post(url, json=payload, timeout=self.timeout)
        if response.ok:
            return response.json()

        error_type = None
        message = response.text
        try:
            error = response.json().get("error", {})
            error_type = error.get("type")
            message = error.get("message", message)
        except ValueError:
            pass
        if error_type == "ResourceNotFound":
            raise ObjectNotFoundError(list(ids) or [route], payload.get("project"))
        logger.error(f"API call {route} failed with {response.status_code}: {message}")
        raise TransportError(
            f"API call {route} failed with status {response.status_code}: {message}",
            status_code=response.status_code,
            error_type=error_type,
        )

    def describe(self, ids: Sequence[str], project: Optional[str],
                 fields: Dict[str, bool]) -> Dict[str, Dict[str, Any]]:
        objects = []
        for object_id in ids:
            obj: Dict[str, Any] = {"id": object_id, "describe": {"fields": fields}}
            if project is not None:
                obj["project"] = project
            objects.append(obj)
        response = self._call("system/describeDataObjects", {"objects": objects}, ids)
        described: Dict[str, Dict[str, Any]] = {}
        for result in response.get("results", []):
            desc = result.get("describe") if isinstance(result, dict) else None
            if desc:
                described[desc["id"]] = desc
        return described

    def find(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return self._call("system/findDataObjects", request)

    def download(self, file_id: str, project: Optional[str] = None) -> Iterator[bytes]:
        payload: Dict[str, Any] = {"duration": 3600}
        if project is not None:
            payload["project"] = project
        link = self._call(f"{file_id}/download", payload, [file_id])
        headers = link.get("headers") or {}
        with self.session.get(link["url"], headers=headers, stream=True, timeout=self.timeout) as response:
            if not response.ok:
                raise TransportError(
                    f"Downloading {file_id} failed with status {response.status_code}",
                    status_code=response.status_code,
                )
            yield from response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE)

    def close(self) -> None:
        with self._lock:
            if self._session is not None:
                self._session.close()
                self._session = None
