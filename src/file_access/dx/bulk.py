"""
Bulk describe of platform files.

References are grouped by project and described with one call per project
per ``limit`` ids. References without a project are looked up with an id
query across all projects, which may find the same file in several projects;
every association is kept. Independent per-project batches run in a thread
pool, and each finished sub-batch is merged into the description cache
straight away, so it survives a failure elsewhere.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from file_access.dx.cache import DxFileDescCache
from file_access.dx.models import DEFAULT_FILE_FIELDS, DxFile, DxFileDescribe, Field, request_fields
from file_access.dx.query import DxFindDataObjects, DxFindDataObjectsConstraints
from file_access.exceptions import AmbiguousObjectError, BulkDescribeError, ObjectNotFoundError
from file_access.settings import get_settings
from file_access.utils.decorators import log_execution_time

if TYPE_CHECKING:
    from file_access.dx.api import DxApi

logger = logging.getLogger(__name__)

RefKey = Tuple[str, Optional[str]]


def chunked(items: Sequence[str], size: int) -> Iterable[List[str]]:
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


@dataclass
class _Plan:
    """Ids still to be described, by project (``None`` for unknown project)."""
    by_project: Dict[Optional[str], List[str]] = field(default_factory=dict)

    def add(self, file_id: str, project: Optional[str]) -> None:
        ids = self.by_project.setdefault(project, [])
        if file_id not in ids:
            ids.append(file_id)


class BulkDescriber:
    """Describes many files with as few calls as possible.

    Args:
        api: Source of the transport, and of defaults for the other arguments
        cache: Description cache; the API's cache by default
        limit: Maximum number of ids per call
        max_workers: Threads used for independent per-project batches
    """

    def __init__(self, api: "DxApi", cache: Optional[DxFileDescCache] = None,
                 limit: Optional[int] = None, max_workers: Optional[int] = None):
        self.api = api
        self.cache = cache if cache is not None else api.cache
        self.limit = limit or api.limit
        self.max_workers = max_workers or api.max_workers or get_settings().max_workers
        if self.limit <= 0:
            raise ValueError(f"limit must be positive, got {self.limit}")

    def _describe_in_project(self, ids: List[str], project: str,
                             fields: Set[Field]) -> List[DxFileDescribe]:
        descs: List[DxFileDescribe] = []
        for chunk in chunked(ids, self.limit):
            logger.debug(f"Describing {len(chunk)} file(s) in {project}")
            described = self.api.transport.describe(chunk, project, request_fields(fields))
            batch = [DxFileDescribe.from_json(desc, project) for desc in described.values()]
            self.cache.update(batch)
            descs.extend(batch)
        return descs

    def _search_all_projects(self, ids: List[str], fields: Set[Field]) -> List[DxFileDescribe]:
        finder = DxFindDataObjects(self.api, self.limit)
        descs: List[DxFileDescribe] = []
        for chunk in chunked(ids, self.limit):
            constraints = DxFindDataObjectsConstraints(object_class="file", ids=chunk)
            for page in finder.query_pages(constraints, extra_fields=fields - DEFAULT_FILE_FIELDS):
                batch = [desc for _, desc in page.results if isinstance(desc, DxFileDescribe)]
                self.cache.update(batch)
                descs.extend(batch)
        return descs

    def _run(self, project: Optional[str], ids: List[str], fields: Set[Field]) -> List[DxFileDescribe]:
        if project is None:
            return self._search_all_projects(ids, fields)
        return self._describe_in_project(ids, project, fields)

    def _execute(self, plan: _Plan, fields: Set[Field]) -> Tuple[Dict[Optional[str], List[DxFileDescribe]],
                                                                  Dict[Optional[str], BaseException]]:
        results: Dict[Optional[str], List[DxFileDescribe]] = {}
        failures: Dict[Optional[str], BaseException] = {}
        if not plan.by_project:
            return results, failures
        workers = min(self.max_workers, len(plan.by_project))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                project: executor.submit(self._run, project, ids, fields)
                for project, ids in plan.by_project.items()
            }
            for project, future in futures.items():
                try:
                    results[project] = future.result()
                except Exception as e:
                    logger.error(f"Describe failed for {project or 'files without a project'}: {e}")
                    failures[project] = e
        return results, failures

    @log_execution_time
    def describe(self, files: Sequence[DxFile], extra_fields: Iterable[Field] = (),
                 validate: bool = False, require_unique: bool = False,
                 search_workspace_first: bool = False) -> List[DxFile]:
        """Describe ``files``, returning one described file per input in input order.

        A file without a project that is found in several projects expands to
        one result per project.

        Args:
            files: Files to describe; may contain duplicates
            extra_fields: Fields to describe in addition to the defaults
            validate: Raise if any file is not found
            require_unique: Raise if a file without a project is found in more
                than one project
            search_workspace_first: Look for files without a project in the
                current workspace before searching every project

        Raises:
            BulkDescribeError: If the batch of any project failed
            ObjectNotFoundError: If ``validate`` and some files were not found
            AmbiguousObjectError: If ``require_unique`` and a file was found in
                several projects, or if a file's asserted name does not match
        """
        if not files:
            return []
        fields = set(DEFAULT_FILE_FIELDS) | {Field(f) for f in extra_fields}

        unique: Dict[RefKey, DxFile] = {}
        for dx_file in files:
            unique.setdefault((dx_file.id, dx_file.project), dx_file)

        plan = _Plan()
        for (file_id, project), dx_file in unique.items():
            if dx_file.has_cached_fields(fields):
                continue
            if project is not None and fields == DEFAULT_FILE_FIELDS and self.cache.update_file(dx_file):
                continue
            plan.add(file_id, project)

        workspace_results: List[DxFileDescribe] = []
        workspace_failures: Dict[Optional[str], BaseException] = {}
        workspace = self.api.workspace
        if search_workspace_first and workspace is not None and None in plan.by_project:
            unknown = plan.by_project.pop(None)
            try:
                workspace_results = self._describe_in_project(unknown, workspace, fields)
            except Exception as e:
                logger.error(f"Describe failed for workspace {workspace}: {e}")
                workspace_failures[workspace] = e
            found = {desc.id for desc in workspace_results}
            remaining = [file_id for file_id in unknown if file_id not in found]
            if remaining:
                plan.by_project[None] = remaining

        results, failures = self._execute(plan, fields)
        for project, error in workspace_failures.items():
            failures.setdefault(project, error)
        if workspace_results:
            results.setdefault(None, []).extend(workspace_results)

        described: Dict[RefKey, DxFileDescribe] = {}
        unknown_project: Dict[str, List[DxFileDescribe]] = {}
        for project, descs in results.items():
            for desc in descs:
                if project is None:
                    unknown_project.setdefault(desc.id, []).append(desc)
                else:
                    described[(desc.id, project)] = desc

        output = self._project(files, unique, fields, described, unknown_project, failures)

        if failures:
            raise BulkDescribeError(failures, output)

        missing = [file_id for (file_id, project), dx_file in unique.items()
                   if not self._is_described(dx_file, project, described, unknown_project)]
        if missing:
            if validate:
                raise ObjectNotFoundError(missing)
            logger.warning(f"{len(missing)} file(s) were not found: {','.join(sorted(set(missing)))}")

        if require_unique:
            for (file_id, project), dx_file in unique.items():
                descs = unknown_project.get(file_id)
                if project is not None or not descs:
                    continue
                descs = self._check_name(dx_file, descs)
                if len(descs) > 1:
                    raise AmbiguousObjectError(
                        file_id,
                        "no project was specified and the file was found in multiple projects",
                        [desc.project for desc in descs],
                    )
        return output

    @staticmethod
    def _is_described(dx_file: DxFile, project: Optional[str], described: Dict[RefKey, DxFileDescribe],
                      unknown_project: Dict[str, List[DxFileDescribe]]) -> bool:
        if dx_file.has_cached_desc:
            return True
        if project is None:
            return bool(unknown_project.get(dx_file.id))
        return (dx_file.id, project) in described

    def _project(self, files: Sequence[DxFile], unique: Dict[RefKey, DxFile], fields: Set[Field],
                 described: Dict[RefKey, DxFileDescribe], unknown_project: Dict[str, List[DxFileDescribe]],
                 failures: Dict[Optional[str], BaseException]) -> List[DxFile]:
        """Project the descriptions back onto every input, in input order."""
        output: List[DxFile] = []
        for dx_file in files:
            key = (dx_file.id, dx_file.project)
            if dx_file.project in failures:
                continue
            if dx_file.project is not None:
                desc = described.get(key)
                if desc is None:
                    desc = unique[key].cached_desc
                if desc is None:
                    continue
                self._check_name(dx_file, [desc])
                dx_file.cache_describe(desc, fields)
                output.append(dx_file)
                continue

            descs = unknown_project.get(dx_file.id)
            if not descs:
                first = unique[key]
                if first.cached_desc is None:
                    continue
                descs = [first.cached_desc]
            descs = self._check_name(dx_file, descs)
            if len(descs) == 1:
                dx_file.cache_describe(descs[0], fields)
            for desc in descs:
                expanded = DxFile(dx_file.id, desc.project, self.api,
                                  dx_file.asserted_name, dx_file.asserted_folder)
                expanded.cache_describe(desc, fields)
                output.append(expanded)
        return output

    @staticmethod
    def _check_name(dx_file: DxFile, descs: List[DxFileDescribe]) -> List[DxFileDescribe]:
        """Keep the descriptions that match the caller-asserted name, if any."""
        asserted = dx_file.asserted_name
        if asserted is None:
            return descs
        matching = [desc for desc in descs if desc.name == asserted]
        if not matching:
            names = sorted({desc.name for desc in descs})
            raise AmbiguousObjectError(
                dx_file.id,
                f"expected name '{asserted}' but the file is named {', '.join(names)}",
                [desc.project for desc in descs],
            )
        return matching
