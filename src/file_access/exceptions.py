"""Error types raised by file_access."""

from typing import Any, Dict, Iterable, List, Optional


class FileAccessError(Exception):
    """Base class for all file_access errors."""


class UnresolvableSourceError(FileAccessError):
    """No protocol or local path matches an address."""

    def __init__(self, address: str, reason: Optional[str] = None):
        self.address = address
        message = f"Unable to resolve {address}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class NoSuchProtocolError(UnresolvableSourceError):
    """No protocol is registered for a URI scheme."""

    def __init__(self, scheme: str, address: Optional[str] = None):
        self.scheme = scheme
        super().__init__(address or scheme, f"protocol '{scheme}' not supported")


class ProtocolFeatureNotSupportedError(FileAccessError):
    def __init__(self, scheme: str, feature: str):
        self.scheme = scheme
        self.feature = feature
        super().__init__(f"Protocol '{scheme}' does not support feature {feature}")


class InvalidUriError(FileAccessError):
    """A URI of a known scheme is malformed."""

    def __init__(self, uri: str, reason: Optional[str] = None):
        self.uri = uri
        message = f"Invalid URI {uri}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidNameError(FileAccessError):
    """A malformed name was passed to the localization disambiguator."""

    def __init__(self, name: str, address: Optional[str] = None):
        self.name = name
        self.address = address
        source = f" (source {address})" if address else ""
        super().__init__(f"Invalid file name '{name}'{source}: must be a non-empty relative name")


class ObjectNotFoundError(FileAccessError):
    """One or more remote objects do not exist."""

    def __init__(self, ids: Iterable[str], container: Optional[str] = None):
        self.ids: List[str] = sorted(set(ids))
        self.container = container
        scope = f" in {container}" if container else ""
        super().__init__(f"One or more object id(s) were not found{scope}: {','.join(self.ids)}")


class AmbiguousObjectError(FileAccessError):
    """A reference resolves to objects with conflicting attributes."""

    def __init__(self, object_id: str, message: str, containers: Iterable[str] = ()):
        self.object_id = object_id
        self.containers = sorted(set(containers))
        super().__init__(f"Ambiguous object {object_id}: {message}")


class BulkDescribeError(FileAccessError):
    """One or more per-container describe batches failed.

    ``failures`` maps each failed container (``None`` for the container-less
    search) to the exception raised by the collaborator, unchanged.
    ``results`` holds the described files of the containers that succeeded.
    """

    def __init__(self, failures: Dict[Optional[str], BaseException], results: List[Any]):
        self.failures = failures
        self.results = results
        details = "; ".join(
            f"{container or '<no container>'}: {exc!r}" for container, exc in failures.items()
        )
        super().__init__(f"Describe failed for {len(failures)} container(s): {details}")


class InvalidCursorError(FileAccessError):
    """A query cursor was used with constraints other than the ones that produced it."""


class FileTooLargeError(FileAccessError):
    def __init__(self, address: str, size: int, limit: int):
        self.address = address
        self.size = size
        self.limit = limit
        super().__init__(
            f"{address} size is {size / (1024 * 1024):.1f} MiB; "
            f"reading files larger than {limit / (1024 * 1024):.0f} MiB is unsupported"
        )


class TransportError(FileAccessError):
    """Raised by the HTTP platform transport for failed API calls."""

    def __init__(self, message: str, status_code: Optional[int] = None, error_type: Optional[str] = None):
        self.status_code = status_code
        self.error_type = error_type
        super().__init__(message)
