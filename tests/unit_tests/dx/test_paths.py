import pytest

from file_access.dx import paths
from file_access.exceptions import InvalidUriError
from tests.consts import TEST_PROJECT, make_file_id

FILE_ID = make_file_id(1)


def test_id_checks():
    assert paths.is_file_id(FILE_ID)
    assert paths.is_data_object_id(FILE_ID)
    assert paths.is_data_object_id("record-" + "x" * 24)
    assert not paths.is_file_id("file-short")
    assert paths.is_container_id(TEST_PROJECT)
    assert paths.is_container_id("container-" + "1" * 24)
    assert not paths.is_container_id(FILE_ID)


@pytest.mark.parametrize("folder, expected", [
    ("", "/"),
    ("/", "/"),
    ("a", "/a"),
    ("/a/b/", "/a/b"),
    ("a//b/../c", "/a/c"),
])
def test_normalize_folder(folder, expected):
    assert paths.normalize_folder(folder) == expected


def test_parse_file_id():
    components = paths.parse(f"dx://{FILE_ID}")

    assert components.object_id == FILE_ID
    assert components.project is None
    assert components.path is None
    assert components.name is None


def test_parse_project_and_file_id():
    components = paths.parse(f"dx://{TEST_PROJECT}:{FILE_ID}")

    assert components.project == TEST_PROJECT
    assert components.object_id == FILE_ID


def test_parse_asserted_name_and_folder():
    components = paths.parse(f"dx://{TEST_PROJECT}:{FILE_ID}::/data/reads.fq")

    assert components.object_id == FILE_ID
    assert components.asserted_name == "reads.fq"
    assert components.asserted_folder == "/data"
    assert components.name == "reads.fq"
    assert components.folder == "/data"


def test_parse_asserted_name_only():
    components = paths.parse(f"dx://{FILE_ID}::reads.fq")

    assert components.asserted_name == "reads.fq"
    assert components.asserted_folder is None


def test_parse_path():
    components = paths.parse(f"dx://{TEST_PROJECT}:/data/my%20reads.fq")

    assert components.object_id is None
    assert components.path == "/data/my reads.fq"
    assert components.name == "my reads.fq"
    assert components.folder == "/data"
    assert not components.is_directory


def test_parse_folder():
    components = paths.parse(f"dx://{TEST_PROJECT}:/data/")

    assert components.is_directory
    assert components.path == "/data/"
    assert components.folder == "/data"
    assert paths.parse(f"dx://{TEST_PROJECT}:/").path == "/"


@pytest.mark.parametrize("uri", [
    "dx://",
    f"dx://{FILE_ID}:/data/x.txt",
    "dx://My Project:/data/x.txt",
    f"dx://{TEST_PROJECT}:/data/x.txt::y.txt",
    f"dx://{FILE_ID}::",
    f"dx://{FILE_ID}::folder/",
    f"dx://{TEST_PROJECT}:",
])
def test_parse_invalid(uri):
    with pytest.raises(InvalidUriError):
        paths.parse(uri)


def test_format():
    assert paths.format_file_id(FILE_ID) == f"dx://{FILE_ID}"
    assert paths.format_file_id(FILE_ID, TEST_PROJECT) == f"dx://{TEST_PROJECT}:{FILE_ID}"
    assert paths.format_path(TEST_PROJECT, "data", "a b.txt") == f"dx://{TEST_PROJECT}:/data/a%20b.txt"
    assert paths.format_folder(TEST_PROJECT, "/data") == f"dx://{TEST_PROJECT}:/data/"
    assert paths.format_folder(TEST_PROJECT, "/") == f"dx://{TEST_PROJECT}:/"
    assert paths.format_file(FILE_ID, "/data", "x.txt", TEST_PROJECT) == f"dx://{TEST_PROJECT}:{FILE_ID}::/data/x.txt"


def test_format_file_parses_back():
    uri = paths.format_file(FILE_ID, "/data/sub", "x y.txt", TEST_PROJECT)
    components = paths.parse(uri)

    assert components.project == TEST_PROJECT
    assert components.object_id == FILE_ID
    assert components.name == "x y.txt"
    assert components.folder == "/data/sub"
