from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from file_access.dx.api import DxApi
from file_access.dx.models import DxFile
from file_access.dx.query import DxFindDataObjectsConstraints, DxVisibility, QueryCursor
from file_access.exceptions import InvalidCursorError
from tests.consts import OTHER_PROJECT, TEST_PROJECT


@pytest.fixture
def populated(fake_transport):
    for i in range(7):
        fake_transport.add_file(TEST_PROJECT, "/data", f"sample{i}.fq", b"x" * i)
    fake_transport.add_file(TEST_PROJECT, "/data/sub", "nested.fq")
    fake_transport.add_file(TEST_PROJECT, "/other", "sample0.fq")
    fake_transport.add_file(OTHER_PROJECT, "/data", "sample0.fq")
    return fake_transport


def test_to_request():
    constraints = DxFindDataObjectsConstraints(
        project=TEST_PROJECT, folder="/data", recurse=True, object_class="file",
        tags=["t"], names=["a.txt"], ids=["file-x"], state="closed",
        created_after=datetime(2020, 1, 1, tzinfo=timezone.utc),
        modified_before=datetime(2021, 1, 1, tzinfo=timezone.utc),
        visibility=DxVisibility.VISIBLE,
    )

    assert constraints.to_request() == {
        "scope": {"project": TEST_PROJECT, "recurse": True, "folder": "/data"},
        "class": "file",
        "tagsArray": ["t"],
        "name": "a.txt",
        "id": ["file-x"],
        "state": "closed",
        "created": {"after": 1577836800000},
        "modified": {"before": 1609459200000},
        "visibility": "visible",
    }


def test_folder_without_project_is_not_scoped():
    request = DxFindDataObjectsConstraints(folder="/data").to_request()

    assert "scope" not in request
    assert request == {"visibility": "either"}


def test_name_constraints():
    several = DxFindDataObjectsConstraints(names=["a.txt", "b+.txt"]).to_request()
    assert several["name"] == {"regexp": r"^a\.txt$|^b\+\.txt$"}

    regexp = DxFindDataObjectsConstraints(name_regexp="^s.*", name_regexp_case_insensitive=True).to_request()
    assert regexp["name"] == {"regexp": "^s.*", "flags": "i"}

    glob = DxFindDataObjectsConstraints(name_glob="*.fq").to_request()
    assert glob["name"] == {"glob": "*.fq"}


def test_name_constraints_are_mutually_exclusive():
    with pytest.raises(ValidationError):
        DxFindDataObjectsConstraints(names=["a"], name_glob="*.fq")


def test_invalid_class():
    with pytest.raises(ValidationError):
        DxFindDataObjectsConstraints(object_class="folder")


def test_query_page_results(dx_api, populated):
    constraints = DxFindDataObjectsConstraints(project=TEST_PROJECT, folder="/data", object_class="file")

    page = dx_api.find_data_objects().query_page(constraints)

    assert page.is_last
    assert [desc.name for _, desc in page.results] == [f"sample{i}.fq" for i in range(7)]
    dx_file, desc = page.results[3]
    assert isinstance(dx_file, DxFile)
    assert dx_file.project == TEST_PROJECT
    assert dx_file.cached_desc == desc
    assert dx_api.cache.get(dx_file.id, TEST_PROJECT) == desc
    assert desc.size == 3


@pytest.mark.parametrize("limit", [1, 2, 3, 7, 10])
def test_pagination_returns_each_result_once(fake_transport, populated, limit):
    api = DxApi(fake_transport, project=TEST_PROJECT)
    constraints = DxFindDataObjectsConstraints(project=TEST_PROJECT, folder="/data", object_class="file")

    pages = list(api.find_data_objects(limit).query_pages(constraints))

    ids = [obj.id for page in pages for obj, _ in page.results]
    assert len(ids) == 7
    assert len(set(ids)) == 7
    assert all(len(page.results) <= limit for page in pages)
    assert pages[-1].is_last or not pages[-1].results


def test_recursive_and_name_queries(dx_api, populated):
    finder = dx_api.find_data_objects()

    recursive = finder.find_files(project=TEST_PROJECT, folder="/data", recurse=True)
    assert len(recursive) == 8

    by_name = finder.find_files(names=["sample0.fq"])
    assert sorted(f.project for f in by_name) == sorted([TEST_PROJECT, TEST_PROJECT, OTHER_PROJECT])

    by_glob = finder.find_files(project=TEST_PROJECT, folder="/data", name_glob="sample[12].fq")
    assert sorted(f.describe().name for f in by_glob) == ["sample1.fq", "sample2.fq"]


def test_cursor_from_other_query_is_rejected(dx_api, populated):
    finder = dx_api.find_data_objects(limit=2)
    constraints = DxFindDataObjectsConstraints(project=TEST_PROJECT, folder="/data")
    page = finder.query_page(constraints)
    assert page.cursor is not None

    other = DxFindDataObjectsConstraints(project=TEST_PROJECT, folder="/other")
    with pytest.raises(InvalidCursorError):
        finder.query_page(other, page.cursor)

    next_page = finder.query_page(constraints, page.cursor)
    assert {o.id for o, _ in next_page.results}.isdisjoint({o.id for o, _ in page.results})


def test_cursor_is_sent_as_starting(dx_api, populated, fake_transport):
    constraints = DxFindDataObjectsConstraints(project=TEST_PROJECT, folder="/data")
    cursor = QueryCursor({"offset": 5}, constraints)

    page = dx_api.find_data_objects().query_page(constraints, cursor)

    assert fake_transport.find_calls[-1]["starting"] == {"offset": 5}
    assert [desc.name for _, desc in page.results] == ["sample5.fq", "sample6.fq"]


def test_query_without_project_warns(dx_api, populated, caplog):
    with caplog.at_level("WARNING"):
        dx_api.find_data_objects().find(DxFindDataObjectsConstraints(names=["nested.fq"]))

    assert "without a project" in caplog.text


def test_empty_result(dx_api, populated):
    constraints = DxFindDataObjectsConstraints(project=TEST_PROJECT, names=["missing.fq"])

    assert dx_api.find_data_objects().find(constraints) == []


def test_malformed_response(dx_api, monkeypatch, fake_transport):
    monkeypatch.setattr(fake_transport, "find", lambda request: {"results": [{"id": "file-x"}]})

    with pytest.raises(ValueError):
        dx_api.find_data_objects().find(DxFindDataObjectsConstraints(project=TEST_PROJECT))


@pytest.mark.parametrize("constraints", [
    DxFindDataObjectsConstraints(project=TEST_PROJECT),
    DxFindDataObjectsConstraints(project=TEST_PROJECT, folder="/data"),
    DxFindDataObjectsConstraints(project=TEST_PROJECT, folder="/data", recurse=True),
    DxFindDataObjectsConstraints(project=TEST_PROJECT, name_glob="sample*.fq"),
    DxFindDataObjectsConstraints(names=["sample0.fq", "sample3.fq", "nested.fq"]),
], ids=["project", "shallow-folder", "recursive-folder", "glob", "names"])
def test_small_pages_match_single_page(fake_transport, populated, constraints):
    api = DxApi(fake_transport, project=TEST_PROJECT)

    expected = [obj.id for obj, _ in api.find_data_objects().query(constraints)]
    paged = [obj.id for obj, _ in api.find_data_objects(limit=2).query(constraints)]

    assert expected
    assert paged == expected


def test_id_allow_list_with_small_pages(fake_transport, populated):
    api = DxApi(fake_transport, project=TEST_PROJECT)
    ids = [record.id for record in populated.records[::2]]

    found = api.find_data_objects(limit=1).find_files(ids=ids)

    assert [f.id for f in found] == ids
