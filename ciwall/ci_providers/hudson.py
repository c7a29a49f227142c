"""
Hudson/Jenkins connector.

Maps Hudson jobs to projects and Hudson views to views. The vendor id of a
project is its job name.
"""

import logging
from typing import Any, Dict, List, Optional

from .base import CIProviderInterface
from .clients.hudson import (
    HudsonBuildNotFoundError,
    HudsonClient,
    HudsonNotFoundError,
    HudsonProjectNotFoundError,
    HudsonTestReportNotFoundError,
    HudsonViewNotFoundError,
)
from .exceptions import BuildNotFoundError, ProjectNotFoundError, ViewNotFoundError
from .factory import CIProviderRegistry
from .identifiers import dedupe_commiters
from .models import (
    HUDSON_ID,
    Build,
    BuildState,
    Capability,
    CIProvider,
    Commiter,
    Listing,
    Project,
    ProjectKey,
    SoftwareProjectId,
    TestResult,
)
from .status import map_status
from .test_results import counts_to_result

logger = logging.getLogger(__name__)

STATUS_MAP = {
    "success": BuildState.SUCCESS,
    "failure": BuildState.FAILURE,
    "unstable": BuildState.UNSTABLE,
    "aborted": BuildState.ABORTED,
    "not_built": BuildState.NOTBUILT,
}


def _artifact_id(job: Dict[str, Any]) -> Optional[str]:
    # Maven modules are named "groupId:artifactId"; the first one is the root.
    for module in job.get("modules") or []:
        name = module.get("name")
        if name:
            return name.split(":")[-1]
    return None


def _mail_address(user: Dict[str, Any]) -> Optional[str]:
    for prop in user.get("property") or []:
        if prop and prop.get("address"):
            return prop["address"]
    return None


@CIProviderRegistry.register(CIProvider.HUDSON)
class HudsonProvider(CIProviderInterface):
    capabilities = frozenset({Capability.VIEW, Capability.BUILD, Capability.TEST})
    vendor_key = HUDSON_ID

    @property
    def provider_type(self) -> CIProvider:
        return CIProvider.HUDSON

    @property
    def name(self) -> str:
        return "Hudson"

    def _create_client(self, url: str, login: str, password: str) -> HudsonClient:
        return HudsonClient(url, login, password)

    def normalize_status(self, raw_status: Optional[str]) -> BuildState:
        return map_status(STATUS_MAP, raw_status)

    # --- Projects ---

    def _to_project_id(self, job: Dict[str, Any], job_name: str) -> SoftwareProjectId:
        name = job.get("name") or job_name
        return SoftwareProjectId(
            name=name, artifact_id=_artifact_id(job), ids={HUDSON_ID: name}
        )

    def _find_job(self, client: HudsonClient, job_name: str) -> Dict[str, Any]:
        try:
            return client.find_job(job_name)
        except HudsonProjectNotFoundError as exc:
            raise ProjectNotFoundError(
                f"Can't find Hudson project {job_name}", key=job_name
            ) from exc

    def _find_project_names(self, client: HudsonClient) -> List[str]:
        try:
            return client.find_job_names()
        except HudsonNotFoundError as exc:
            logger.debug(f"Cannot build list of project names: {exc}")
            return []

    def _find_all_projects(self, client: HudsonClient) -> Listing[SoftwareProjectId]:
        listing: Listing[SoftwareProjectId] = Listing()
        for job_name in self._find_project_names(client):
            try:
                job = client.find_job(job_name)
            except HudsonProjectNotFoundError as exc:
                logger.warning(f"Cannot find project {job_name}: {exc}")
                listing.skip(job_name, exc)
                continue
            listing.items.append(self._to_project_id(job, job_name))
        return listing

    def _identify(self, client: HudsonClient, project_key: ProjectKey) -> SoftwareProjectId:
        return self._to_project_id(self._find_job(client, project_key.name), project_key.name)

    def _load_project(self, client: HudsonClient, job_name: str) -> Project:
        job = self._find_job(client, job_name)
        return Project(
            name=job.get("name") or job_name,
            description=job.get("description"),
            artifact_id=_artifact_id(job),
            disabled=not job.get("buildable", True),
            ids={HUDSON_ID: job_name},
        )

    # --- Builds ---

    def _get_build_ids(self, client: HudsonClient, job_name: str) -> List[str]:
        job = self._find_job(client, job_name)
        return [str(build["number"]) for build in job.get("builds") or []]

    def _get_last_build_id(self, client: HudsonClient, job_name: str) -> str:
        last_build = self._find_job(client, job_name).get("lastBuild")
        if not last_build:
            raise BuildNotFoundError(f"Project {job_name} has no build", key=job_name)
        return str(last_build["number"])

    def _fetch_build(self, client: HudsonClient, job_name: str, build_id: str) -> Dict[str, Any]:
        try:
            return client.find_build(job_name, build_id)
        except HudsonProjectNotFoundError as exc:
            raise ProjectNotFoundError(
                f"Can't find Hudson project {job_name}", key=job_name
            ) from exc
        except HudsonBuildNotFoundError as exc:
            raise BuildNotFoundError(
                f"Cannot find build #{build_id} of {job_name}", key=build_id
            ) from exc

    def _parse_build(self, build: Dict[str, Any]) -> Build:
        building = bool(build.get("building"))
        duration = build.get("duration")
        estimated = build.get("estimatedDuration")
        return Build(
            build_id=str(build.get("number")),
            state=BuildState.UNKNOWN if building else self.normalize_status(build.get("result")),
            building=building,
            start_time=self._parse_epoch_millis(build.get("timestamp")),
            duration_seconds=duration / 1000 if duration else None,
            estimated_duration_seconds=estimated / 1000 if estimated and estimated > 0 else None,
        )

    def _find_build(self, client: HudsonClient, job_name: str, build_id: str) -> Build:
        return self._parse_build(self._fetch_build(client, job_name, build_id))

    def _find_build_with_commiters(
        self, client: HudsonClient, job_name: str, build_id: str
    ) -> Build:
        raw = self._fetch_build(client, job_name, build_id)
        build = self._parse_build(raw)
        return build.model_copy(update={"commiters": self._commiters_of(client, raw)})

    def _find_running_build(self, client: HudsonClient, job_name: str) -> Build:
        try:
            return self._parse_build(client.find_running_build(job_name))
        except HudsonProjectNotFoundError as exc:
            raise ProjectNotFoundError(
                f"Can't find Hudson project {job_name}", key=job_name
            ) from exc
        except HudsonBuildNotFoundError as exc:
            raise BuildNotFoundError(
                f"No running build for project {job_name}", key=job_name
            ) from exc

    def _get_build_commiters(
        self, client: HudsonClient, job_name: str, build_id: str
    ) -> List[Commiter]:
        return self._commiters_of(client, self._fetch_build(client, job_name, build_id))

    def _commiters_of(self, client: HudsonClient, build: Dict[str, Any]) -> List[Commiter]:
        def lookup(user_id: str) -> Commiter:
            user = client.find_user(user_id)
            return Commiter(
                username=user.get("id") or user_id,
                name=user.get("fullName"),
                email=_mail_address(user),
            )

        commiters = []
        for item in (build.get("changeSet") or {}).get("items") or []:
            author = item.get("author") or {}
            user_id = author.get("id")
            username = user_id or author.get("fullName")
            if not username:
                continue
            commiters.append(self._resolve_commiter(username, user_id, lookup))
        return dedupe_commiters(commiters)

    # --- Views ---

    def _find_views(self, client: HudsonClient) -> Listing[str]:
        listing: Listing[str] = Listing()
        try:
            listing.items.extend(client.find_view_names())
        except HudsonNotFoundError as exc:
            logger.debug(f"Can't build list of views: {exc}")
        return listing

    def _find_project_names_by_view(self, client: HudsonClient, view_name: str) -> List[str]:
        try:
            return client.find_job_names_in_view(view_name)
        except HudsonViewNotFoundError as exc:
            raise ViewNotFoundError(
                f"Cannot find project names for view: {view_name}", key=view_name
            ) from exc

    def _find_project_ids_by_view(
        self, client: HudsonClient, view_name: str
    ) -> List[SoftwareProjectId]:
        return [
            SoftwareProjectId(name=job_name, ids={HUDSON_ID: job_name})
            for job_name in self._find_project_names_by_view(client, view_name)
        ]

    # --- Tests ---

    def _analyze_unit_tests(self, client: HudsonClient, job_name: str) -> TestResult:
        last_completed = self._find_job(client, job_name).get("lastCompletedBuild")
        if not last_completed:
            return TestResult()
        try:
            report = client.find_test_report(job_name, str(last_completed["number"]))
        except HudsonTestReportNotFoundError:
            return TestResult()
        failed = report.get("failCount") or 0
        skipped = report.get("skipCount") or 0
        passed = report.get("passCount")
        if passed is None:
            passed = (report.get("totalCount") or 0) - failed - skipped
        return counts_to_result(failed, passed, skipped)
