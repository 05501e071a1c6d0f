import pytest
import requests

from file_access.exceptions import ProtocolFeatureNotSupportedError
from file_access.sources.http import HttpFileAccessProtocol, HttpFileSource


class FakeResponse:
    def __init__(self, status_code=200, headers=None, content=b""):
        self.status_code = status_code
        self.headers = headers or {}
        self.content = content

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start:start + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *args):
        return False


class FakeSession:
    """Serves fixed contents by URL; unknown URLs are 404."""

    def __init__(self, files):
        self.files = files
        self.calls = []

    def head(self, url, **kwargs):
        self.calls.append(("HEAD", url))
        if url not in self.files:
            return FakeResponse(404)
        return FakeResponse(headers={"Content-Length": str(len(self.files[url]))})

    def get(self, url, **kwargs):
        self.calls.append(("GET", url))
        if url not in self.files:
            return FakeResponse(404)
        return FakeResponse(content=self.files[url])


URL = "https://example.com/data/run1/sample.txt"


@pytest.fixture
def session():
    return FakeSession({URL: b"line one\nline two\n"})


def test_identity():
    source = HttpFileSource(URL, FakeSession({}))

    assert source.scheme == "https"
    assert source.domain == "example.com"
    assert source.name == "sample.txt"
    assert source.folder == "/data/run1"
    assert source.container == "https:example.com:/data/run1"


def test_exists_size_and_read(session):
    source = HttpFileSource(URL, session)

    assert source.exists
    assert source.size == 18
    assert source.read_lines() == ["line one", "line two"]
    source.read_bytes()
    assert session.calls.count(("GET", URL)) == 1


def test_missing_file_does_not_exist(session):
    source = HttpFileSource("https://example.com/missing.txt", session)

    assert not source.exists


def test_localize(session, tmp_path):
    source = HttpFileSource(URL, session)
    dest = source.localize_to_dir(tmp_path)

    assert dest.read_bytes() == b"line one\nline two\n"


def test_parent_and_resolve():
    source = HttpFileSource(URL, FakeSession({}))
    parent = source.get_parent()

    assert parent.uri == "https://example.com/data/run1/"
    assert parent.is_directory
    sibling = source.resolve("other.txt")
    assert sibling.uri == "https://example.com/data/run1/other.txt"
    assert source.relativize(sibling) == "other.txt"
    assert parent.relativize(source.resolve("../run2/x.txt")) == "../run2/x.txt"


def test_root_has_no_parent():
    assert HttpFileSource("https://example.com/", FakeSession({}), is_directory=True).get_parent() is None


def test_localizing_directory_not_supported(tmp_path):
    source = HttpFileSource("https://example.com/data/", FakeSession({}), is_directory=True)

    with pytest.raises(ProtocolFeatureNotSupportedError):
        source.localize(tmp_path / "data")


def test_protocol():
    protocol = HttpFileAccessProtocol()
    source = protocol.resolve(URL)

    assert isinstance(source, HttpFileSource)
    assert source.address == URL
    with pytest.raises(ProtocolFeatureNotSupportedError):
        protocol.resolve_directory("https://example.com/data/")

    session = protocol.session
    assert protocol.session is session
    protocol.on_exit()
    assert protocol.session is not session
