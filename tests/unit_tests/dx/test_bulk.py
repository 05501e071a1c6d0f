import pytest

from file_access.dx.bulk import BulkDescriber, chunked
from file_access.dx.models import DxFile, Field
from file_access.exceptions import (
    AmbiguousObjectError,
    BulkDescribeError,
    ObjectNotFoundError,
    TransportError,
)
from tests.consts import OTHER_PROJECT, TEST_PROJECT, WORKSPACE, make_file_id


def test_chunked():
    assert list(chunked(["a", "b", "c"], 2)) == [["a", "b"], ["c"]]
    assert list(chunked([], 2)) == []


def test_describe_populates_cache(dx_api, fake_transport):
    file_id = fake_transport.add_file(TEST_PROJECT, "/data", "reads.fq", b"ACGT")
    dx_file = dx_api.file(file_id, TEST_PROJECT)

    first = dx_api.describe_files_bulk([dx_file])

    assert first == [dx_file]
    assert dx_file.has_cached_desc
    assert dx_file.cached_desc.name == "reads.fq"
    assert dx_file.cached_desc.size == 4
    assert len(fake_transport.describe_calls) == 1

    second = dx_api.describe_files_bulk([dx_file])

    assert second == first
    assert second[0].cached_desc == first[0].cached_desc
    assert len(fake_transport.describe_calls) == 1


def test_new_handles_are_served_from_cache(dx_api, fake_transport):
    file_id = fake_transport.add_file(TEST_PROJECT, "/data", "reads.fq")
    dx_api.describe_files_bulk([dx_api.file(file_id, TEST_PROJECT)])

    fresh = dx_api.file(file_id, TEST_PROJECT)
    dx_api.describe_files_bulk([fresh])

    assert fresh.has_cached_desc
    assert len(fake_transport.describe_calls) == 1


def test_duplicates_are_described_once(dx_api, fake_transport):
    file_id = fake_transport.add_file(TEST_PROJECT, "/data", "reads.fq")
    first = dx_api.file(file_id, TEST_PROJECT)
    again = dx_api.file(file_id, TEST_PROJECT)

    output = dx_api.describe_files_bulk([first, again])

    assert output == [first, again]
    assert output[1] is again
    assert again.has_cached_desc
    assert fake_transport.describe_calls[0]["ids"] == [file_id]


def test_output_follows_input_order(dx_api, fake_transport):
    ids = [fake_transport.add_file(project, "/", f"f{i}.txt")
           for i, project in enumerate([TEST_PROJECT, OTHER_PROJECT, TEST_PROJECT, OTHER_PROJECT])]
    files = [dx_api.file(file_id, project)
             for file_id, project in zip(ids, [TEST_PROJECT, OTHER_PROJECT, TEST_PROJECT, OTHER_PROJECT])]

    output = dx_api.describe_files_bulk(files)

    assert [f.cached_desc.name for f in output] == ["f0.txt", "f1.txt", "f2.txt", "f3.txt"]
    assert sorted(call["project"] for call in fake_transport.describe_calls) == sorted([TEST_PROJECT, OTHER_PROJECT])


def test_calls_are_batched_by_limit(dx_api, fake_transport):
    files = [dx_api.file(fake_transport.add_file(TEST_PROJECT, "/", f"f{i}.txt"), TEST_PROJECT)
             for i in range(25)]

    output = dx_api.describe_files_bulk(files)

    assert len(output) == 25
    assert [len(call["ids"]) for call in fake_transport.describe_calls] == [10, 10, 5]


def test_file_in_two_projects_without_project(dx_api, fake_transport):
    file_id = make_file_id(99)
    fake_transport.add_file(TEST_PROJECT, "/a", "shared.txt", file_id=file_id)
    fake_transport.add_file(OTHER_PROJECT, "/b", "shared.txt", file_id=file_id)

    output = dx_api.describe_files_bulk([dx_api.file(file_id)])

    assert len(output) == 2
    assert {f.project for f in output} == {TEST_PROJECT, OTHER_PROJECT}
    for f in output:
        assert f.cached_desc.project == f.project
    assert fake_transport.find_calls[0]["id"] == [file_id]
    assert "scope" not in fake_transport.find_calls[0]


def test_file_in_two_projects_must_be_unique(dx_api, fake_transport):
    file_id = make_file_id(99)
    fake_transport.add_file(TEST_PROJECT, "/a", "shared.txt", file_id=file_id)
    fake_transport.add_file(OTHER_PROJECT, "/b", "shared.txt", file_id=file_id)

    with pytest.raises(AmbiguousObjectError) as exc_info:
        dx_api.describe_files_bulk([dx_api.file(file_id)], require_unique=True)

    assert exc_info.value.object_id == file_id
    assert exc_info.value.containers == sorted([TEST_PROJECT, OTHER_PROJECT])


def test_asserted_name_picks_matching_project(dx_api, fake_transport):
    file_id = make_file_id(99)
    fake_transport.add_file(TEST_PROJECT, "/a", "one.txt", file_id=file_id)
    fake_transport.add_file(OTHER_PROJECT, "/b", "two.txt", file_id=file_id)
    dx_file = DxFile(file_id, None, dx_api, name="two.txt")

    output = dx_api.describe_files_bulk([dx_file], require_unique=True)

    assert [f.project for f in output] == [OTHER_PROJECT]
    assert dx_file.cached_desc.project == OTHER_PROJECT


def test_asserted_name_mismatch(dx_api, fake_transport):
    file_id = fake_transport.add_file(TEST_PROJECT, "/a", "actual.txt")

    with pytest.raises(AmbiguousObjectError) as exc_info:
        dx_api.describe_files_bulk([DxFile(file_id, TEST_PROJECT, dx_api, name="expected.txt")])

    assert "expected.txt" in str(exc_info.value)
    assert "actual.txt" in str(exc_info.value)


def test_validate_reports_every_missing_id(dx_api, fake_transport):
    present = fake_transport.add_file(TEST_PROJECT, "/", "here.txt")
    missing = [make_file_id(500), make_file_id(501)]
    files = [dx_api.file(present, TEST_PROJECT), dx_api.file(missing[0], TEST_PROJECT), dx_api.file(missing[1])]

    with pytest.raises(ObjectNotFoundError) as exc_info:
        dx_api.describe_files_bulk(files, validate=True)

    assert exc_info.value.ids == missing


def test_missing_ids_are_omitted_without_validate(dx_api, fake_transport, caplog):
    present = fake_transport.add_file(TEST_PROJECT, "/", "here.txt")

    output = dx_api.describe_files_bulk(
        [dx_api.file(present, TEST_PROJECT), dx_api.file(make_file_id(500), TEST_PROJECT)]
    )

    assert [f.id for f in output] == [present]
    assert make_file_id(500) in caplog.text


def test_failure_is_reported_per_project(dx_api, fake_transport):
    good = fake_transport.add_file(TEST_PROJECT, "/", "good.txt")
    bad = fake_transport.add_file(OTHER_PROJECT, "/", "bad.txt")
    error = TransportError("service unavailable", status_code=503)
    fake_transport.fail_project(OTHER_PROJECT, error)

    with pytest.raises(BulkDescribeError) as exc_info:
        dx_api.describe_files_bulk([dx_api.file(good, TEST_PROJECT), dx_api.file(bad, OTHER_PROJECT)])

    assert exc_info.value.failures == {OTHER_PROJECT: error}
    assert [f.id for f in exc_info.value.results] == [good]
    assert dx_api.cache.get(good, TEST_PROJECT) is not None


def test_extra_fields_are_fetched(dx_api, fake_transport):
    file_id = fake_transport.add_file(TEST_PROJECT, "/", "a.txt")
    dx_file = dx_api.file(file_id, TEST_PROJECT)
    dx_api.describe_files_bulk([dx_file])

    dx_api.describe_files_bulk([dx_file], extra_fields=[Field.DETAILS])

    assert len(fake_transport.describe_calls) == 2
    assert fake_transport.describe_calls[1]["fields"]["details"] is True
    assert dx_file.has_cached_fields([Field.DETAILS])


def test_search_workspace_first(dx_api, fake_transport):
    file_id = fake_transport.add_file(WORKSPACE, "/out", "result.txt")

    output = dx_api.describe_files_bulk([dx_api.file(file_id)], search_workspace_first=True)

    assert [f.project for f in output] == [WORKSPACE]
    assert fake_transport.describe_calls[0]["project"] == WORKSPACE
    assert fake_transport.find_calls == []


def test_empty_input(dx_api, fake_transport):
    assert dx_api.describe_files_bulk([]) == []
    assert fake_transport.describe_calls == []


def test_invalid_limit(dx_api):
    with pytest.raises(ValueError):
        BulkDescriber(dx_api, limit=-1)


def test_workspace_failure_is_reported_per_project(dx_api, fake_transport):
    good = fake_transport.add_file(TEST_PROJECT, "/", "good.txt")
    elsewhere = fake_transport.add_file(OTHER_PROJECT, "/", "elsewhere.txt")
    error = TransportError("down")
    fake_transport.fail_project(WORKSPACE, error)

    with pytest.raises(BulkDescribeError) as exc_info:
        dx_api.describe_files_bulk([dx_api.file(good, TEST_PROJECT), dx_api.file(elsewhere)],
                                   search_workspace_first=True)

    assert exc_info.value.failures == {WORKSPACE: error}
    assert [(f.id, f.project) for f in exc_info.value.results] == [(good, TEST_PROJECT),
                                                                   (elsewhere, OTHER_PROJECT)]
    assert fake_transport.find_calls[0]["id"] == [elsewhere]


def test_parallel_project_batches_stay_separate(dx_api, fake_transport):
    projects = [f"project-{str(i) * 24}" for i in range(6)]
    files = [dx_api.file(fake_transport.add_file(project, "/", f"{project[-1]}-{n}.txt"), project)
             for n in range(3) for project in projects]

    output = BulkDescriber(dx_api, max_workers=4).describe(files)

    assert [f.id for f in output] == [f.id for f in files]
    for dx_file in output:
        assert dx_file.cached_desc.project == dx_file.project
        assert dx_file.cached_desc.name.startswith(dx_file.project[-1])
        assert dx_api.cache.get(dx_file.id, dx_file.project) is not None
    assert sorted(call["project"] for call in fake_transport.describe_calls) == sorted(projects)
