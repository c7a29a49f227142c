"""
TeamCity connector.

A TeamCity build type is a project on the wall and a TeamCity project is a
view. The vendor id of a project is its build type id.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .base import CIProviderInterface
from .clients.teamcity import (
    TeamCityBuildListNotFoundError,
    TeamCityBuildNotFoundError,
    TeamCityBuildTypeNotFoundError,
    TeamCityBuildTypesNotFoundError,
    TeamCityChangesNotFoundError,
    TeamCityClient,
    TeamCityProjectNotFoundError,
    TeamCityProjectsNotFoundError,
)
from .exceptions import BuildNotFoundError, ProjectNotFoundError, ViewNotFoundError
from .factory import CIProviderRegistry
from .models import (
    TEAMCITY_ID,
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
from .test_results import TestResultExtractor

logger = logging.getLogger(__name__)

STATUS_MAP = {
    "success": BuildState.SUCCESS,
    "failure": BuildState.FAILURE,
    "error": BuildState.FAILURE,
    "unknown": BuildState.UNKNOWN,
}

DATE_FORMAT = "%Y%m%dT%H%M%S%z"


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value, DATE_FORMAT)
    except ValueError:
        logger.debug(f"Unparseable TeamCity date: {value}")
        return None


def _build_types(project: Dict[str, Any]) -> List[Dict[str, Any]]:
    return (project.get("buildTypes") or {}).get("buildType") or []


@CIProviderRegistry.register(CIProvider.TEAMCITY)
class TeamCityProvider(CIProviderInterface):
    capabilities = frozenset({Capability.VIEW, Capability.BUILD, Capability.TEST})
    vendor_key = TEAMCITY_ID

    def __init__(self, client_factory=None):
        super().__init__(client_factory=client_factory)
        self._extractor = TestResultExtractor()

    @property
    def provider_type(self) -> CIProvider:
        return CIProvider.TEAMCITY

    @property
    def name(self) -> str:
        return "TeamCity"

    def _create_client(self, url: str, login: str, password: str) -> TeamCityClient:
        return TeamCityClient(url, login, password)

    def normalize_status(self, raw_status: Optional[str]) -> BuildState:
        return map_status(STATUS_MAP, raw_status)

    # --- Projects ---

    @staticmethod
    def _to_project_id(build_type: Dict[str, Any]) -> SoftwareProjectId:
        return SoftwareProjectId(
            name=build_type["name"], ids={TEAMCITY_ID: build_type["id"]}
        )

    def _find_build_type(self, client: TeamCityClient, build_type_id: str) -> Dict[str, Any]:
        try:
            return client.find_build_type(build_type_id)
        except TeamCityBuildTypeNotFoundError as exc:
            raise ProjectNotFoundError(
                f"Can't find project with software project id: {build_type_id}",
                key=build_type_id,
            ) from exc

    def _find_all_projects(self, client: TeamCityClient) -> Listing[SoftwareProjectId]:
        listing: Listing[SoftwareProjectId] = Listing()
        try:
            projects = client.find_all_projects()
        except TeamCityProjectsNotFoundError as exc:
            logger.debug(f"Cannot build list of software project ids: {exc}")
            return listing

        for summary in projects:
            try:
                project = client.find_project(summary["id"])
            except TeamCityProjectNotFoundError as exc:
                logger.warning(f"Cannot find project with id {summary['id']}: {exc}")
                listing.skip(summary.get("name") or summary["id"], exc)
                continue
            listing.items.extend(self._to_project_id(bt) for bt in _build_types(project))
        return listing

    def _identify(self, client: TeamCityClient, project_key: ProjectKey) -> SoftwareProjectId:
        try:
            build_types = client.find_all_build_types()
        except TeamCityBuildTypesNotFoundError as exc:
            logger.debug(f"Cannot build list of build types: {exc}")
            build_types = []
        for build_type in build_types:
            if build_type.get("name") == project_key.name:
                return self._to_project_id(build_type)
        raise ProjectNotFoundError(
            f"Can't identify software project id with project key: {project_key.name}",
            key=project_key.name,
        )

    def _load_project(self, client: TeamCityClient, build_type_id: str) -> Project:
        build_type = self._find_build_type(client, build_type_id)
        return Project(
            name=build_type.get("name") or build_type_id,
            description=build_type.get("description"),
            disabled=str(build_type.get("paused", False)).lower() == "true",
            ids={TEAMCITY_ID: build_type_id},
        )

    # --- Builds ---

    def _get_build_ids(self, client: TeamCityClient, build_type_id: str) -> List[str]:
        try:
            items = client.find_build_list(build_type_id)
        except TeamCityBuildListNotFoundError as exc:
            logger.debug(f"No build list for {build_type_id}: {exc}")
            items = []
        build_ids = [str(item["id"]) for item in items]

        # The build list leaves out the running build; the last-build query
        # includes it, so both are merged.
        try:
            build_ids.append(str(client.find_last_build(build_type_id)["id"]))
        except TeamCityBuildTypeNotFoundError as exc:
            raise ProjectNotFoundError(
                f"Cannot find build numbers of software project id: {build_type_id}",
                key=build_type_id,
            ) from exc
        except TeamCityBuildNotFoundError:
            pass
        return build_ids

    def _get_last_build_id(self, client: TeamCityClient, build_type_id: str) -> str:
        try:
            return str(client.find_last_build(build_type_id)["id"])
        except TeamCityBuildTypeNotFoundError as exc:
            raise ProjectNotFoundError(
                f"Cannot find project with software project id {build_type_id}",
                key=build_type_id,
            ) from exc
        except TeamCityBuildNotFoundError as exc:
            raise BuildNotFoundError(
                f"Project {build_type_id} has no build", key=build_type_id
            ) from exc

    def _parse_build(self, build: Dict[str, Any]) -> Build:
        running = bool(build.get("running")) or build.get("state") == "running"
        start_time = _parse_date(build.get("startDate"))
        finish_time = _parse_date(build.get("finishDate"))
        running_info = build.get("running-info") or {}

        if start_time is None and running_info.get("elapsedSeconds") is not None:
            start_time = datetime.now(timezone.utc) - timedelta(
                seconds=running_info["elapsedSeconds"]
            )
        duration = None
        if start_time is not None and finish_time is not None:
            duration = (finish_time - start_time).total_seconds()

        return Build(
            build_id=str(build.get("id")),
            state=BuildState.UNKNOWN if running else self.normalize_status(build.get("status")),
            building=running,
            start_time=start_time,
            duration_seconds=duration,
            estimated_duration_seconds=running_info.get("estimatedTotalSeconds"),
            test_result=self._extractor.extract(build.get("statusText")),
        )

    def _find_build(self, client: TeamCityClient, build_type_id: str, build_id: str) -> Build:
        try:
            return self._parse_build(client.find_build(build_type_id, build_id))
        except TeamCityBuildTypeNotFoundError as exc:
            raise ProjectNotFoundError(
                f"Cannot find build type for software project id: {build_type_id}",
                key=build_type_id,
            ) from exc
        except TeamCityBuildNotFoundError as exc:
            try:
                running = self._find_running_build(client, build_type_id)
            except BuildNotFoundError:
                running = None
            if running is not None and running.build_id == build_id:
                return running
            raise BuildNotFoundError(
                f"Cannot find build #{build_id} for software project id: {build_type_id}",
                key=build_id,
            ) from exc

    def _find_running_build(self, client: TeamCityClient, build_type_id: str) -> Build:
        try:
            return self._parse_build(client.find_running_build(build_type_id))
        except TeamCityBuildTypeNotFoundError as exc:
            raise ProjectNotFoundError(
                f"Cannot find build type for software project id: {build_type_id}",
                key=build_type_id,
            ) from exc
        except TeamCityBuildNotFoundError as exc:
            raise BuildNotFoundError(
                f"Cannot find a running build for {build_type_id}", key=build_type_id
            ) from exc

    def _get_build_commiters(
        self, client: TeamCityClient, build_type_id: str, build_id: str
    ) -> List[Commiter]:
        try:
            changes = client.find_changes(build_id)
        except TeamCityChangesNotFoundError as exc:
            logger.debug(f"No changes for build #{build_id}: {exc}")
            return []

        def lookup(user_id: str) -> Commiter:
            user = client.find_user(user_id)
            logger.debug(f"Retrieved user: {user}")
            return Commiter(
                username=user.get("username") or user_id,
                name=user.get("name"),
                email=user.get("email"),
            )

        commiters = []
        for change in changes:
            user = change.get("user") or {}
            username = change.get("username") or user.get("username")
            if not username:
                continue
            user_id = user.get("id")
            commiters.append(
                self._resolve_commiter(username, str(user_id) if user_id else None, lookup)
            )
        return commiters

    # --- Views ---

    def _find_views(self, client: TeamCityClient) -> Listing[str]:
        listing: Listing[str] = Listing()
        try:
            projects = client.find_all_projects()
        except TeamCityProjectsNotFoundError as exc:
            logger.debug(f"Can't build list of views: {exc}")
            return listing
        listing.items.extend(project["name"] for project in projects if project.get("name"))
        return listing

    def _view_build_types(self, client: TeamCityClient, view_name: str) -> List[Dict[str, Any]]:
        try:
            summary = client.find_project_by_name(view_name)
            project = client.find_project(summary["id"])
        except TeamCityProjectNotFoundError as exc:
            raise ViewNotFoundError(
                f"Cannot find project names for view: {view_name}", key=view_name
            ) from exc
        return _build_types(project)

    def _find_project_names_by_view(self, client: TeamCityClient, view_name: str) -> List[str]:
        return [bt["name"] for bt in self._view_build_types(client, view_name)]

    def _find_project_ids_by_view(
        self, client: TeamCityClient, view_name: str
    ) -> List[SoftwareProjectId]:
        return [self._to_project_id(bt) for bt in self._view_build_types(client, view_name)]

    # --- Tests ---

    def _analyze_unit_tests(self, client: TeamCityClient, build_type_id: str) -> TestResult:
        last_build_id = self._get_last_build_id(client, build_type_id)
        build = self._find_build(client, build_type_id, last_build_id)
        if build.building:
            return TestResult()
        return build.test_result
