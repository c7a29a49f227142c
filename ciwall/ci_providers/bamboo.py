"""
Bamboo connector.

A Bamboo plan is a project and its results are builds. Bamboo has no
view concept, so this connector only offers the build and test capabilities.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .base import CIProviderInterface
from .clients.bamboo import (
    RUNNING_LIFE_CYCLE_STATES,
    BambooClient,
    BambooNotFoundError,
    BambooPlanNotFoundError,
    BambooResultNotFoundError,
)
from .exceptions import BuildNotFoundError, ProjectNotFoundError
from .factory import CIProviderRegistry
from .identifiers import dedupe_commiters
from .models import (
    BAMBOO_ID,
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
from .test_results import TestResultExtractor, counts_to_result

logger = logging.getLogger(__name__)

STATUS_MAP = {
    "successful": BuildState.SUCCESS,
    "failed": BuildState.FAILURE,
    "notbuilt": BuildState.NOTBUILT,
    "not built": BuildState.NOTBUILT,
}


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable Bamboo time: {value}")
        return None


@CIProviderRegistry.register(CIProvider.BAMBOO)
class BambooProvider(CIProviderInterface):
    capabilities = frozenset({Capability.BUILD, Capability.TEST})
    vendor_key = BAMBOO_ID

    def __init__(self, client_factory=None):
        super().__init__(client_factory=client_factory)
        self._extractor = TestResultExtractor()

    @property
    def provider_type(self) -> CIProvider:
        return CIProvider.BAMBOO

    @property
    def name(self) -> str:
        return "Bamboo"

    def _create_client(self, url: str, login: str, password: str) -> BambooClient:
        return BambooClient(url, login, password)

    def normalize_status(self, raw_status: Optional[str]) -> BuildState:
        return map_status(STATUS_MAP, raw_status)

    # --- Plans ---

    def _find_plan(self, client: BambooClient, plan_key: str) -> Dict[str, Any]:
        try:
            return client.find_plan(plan_key)
        except BambooPlanNotFoundError as exc:
            raise ProjectNotFoundError(f"Can't find Bamboo plan {plan_key}", key=plan_key) from exc

    def _find_all_projects(self, client: BambooClient) -> Listing[SoftwareProjectId]:
        listing: Listing[SoftwareProjectId] = Listing()
        try:
            plans = client.find_all_plans()
        except BambooNotFoundError as exc:
            logger.debug(f"Cannot build list of plans: {exc}")
            return listing

        for summary in plans:
            plan_key = summary["key"]
            try:
                plan = client.find_plan(plan_key)
            except BambooPlanNotFoundError as exc:
                logger.warning(f"Cannot find plan {plan_key}: {exc}")
                listing.skip(summary.get("name") or plan_key, exc)
                continue
            listing.items.append(
                SoftwareProjectId(name=plan.get("name") or plan_key, ids={BAMBOO_ID: plan_key})
            )
        return listing

    def _identify(self, client: BambooClient, project_key: ProjectKey) -> SoftwareProjectId:
        # The expanded plan list already carries names; no per-plan lookup.
        try:
            plans = client.find_all_plans()
        except BambooNotFoundError as exc:
            logger.debug(f"Cannot build list of plans: {exc}")
            plans = []
        for summary in plans:
            if summary.get("name") == project_key.name:
                return SoftwareProjectId(name=summary["name"], ids={BAMBOO_ID: summary["key"]})
        raise ProjectNotFoundError(
            f"Can't identify software project id with project key: {project_key.name}",
            key=project_key.name,
        )

    def _load_project(self, client: BambooClient, plan_key: str) -> Project:
        plan = self._find_plan(client, plan_key)
        return Project(
            name=plan.get("name") or plan_key,
            description=plan.get("description"),
            disabled=not plan.get("enabled", True),
            ids={BAMBOO_ID: plan_key},
        )

    # --- Results ---

    def _get_build_ids(self, client: BambooClient, plan_key: str) -> List[str]:
        try:
            results = client.find_results(plan_key)
        except BambooPlanNotFoundError as exc:
            raise ProjectNotFoundError(
                f"Cannot find build numbers of plan {plan_key}", key=plan_key
            ) from exc
        build_ids = [str(result["buildNumber"]) for result in results]
        try:
            build_ids.append(str(client.find_running_result(plan_key)["buildNumber"]))
        except BambooResultNotFoundError:
            pass
        return build_ids

    def _get_last_build_id(self, client: BambooClient, plan_key: str) -> str:
        try:
            return str(client.find_running_result(plan_key)["buildNumber"])
        except BambooResultNotFoundError:
            pass
        except BambooPlanNotFoundError as exc:
            raise ProjectNotFoundError(f"Can't find Bamboo plan {plan_key}", key=plan_key) from exc

        try:
            return str(client.find_latest_result(plan_key)["buildNumber"])
        except BambooPlanNotFoundError as exc:
            raise ProjectNotFoundError(f"Can't find Bamboo plan {plan_key}", key=plan_key) from exc
        except BambooResultNotFoundError as exc:
            raise BuildNotFoundError(f"Plan {plan_key} has no build", key=plan_key) from exc

    def _fetch_result(self, client: BambooClient, plan_key: str, build_id: str) -> Dict[str, Any]:
        try:
            return client.find_result(plan_key, build_id)
        except BambooPlanNotFoundError as exc:
            raise ProjectNotFoundError(f"Can't find Bamboo plan {plan_key}", key=plan_key) from exc
        except BambooResultNotFoundError as exc:
            raise BuildNotFoundError(
                f"Cannot find build #{build_id} of plan {plan_key}", key=build_id
            ) from exc

    def _parse_result(self, result: Dict[str, Any]) -> Build:
        life_cycle = str(result.get("lifeCycleState", "")).lower()
        building = life_cycle in RUNNING_LIFE_CYCLE_STATES
        if building:
            state = BuildState.UNKNOWN
        elif life_cycle == "notbuilt":
            state = BuildState.NOTBUILT
        else:
            state = self.normalize_status(result.get("buildState") or result.get("state"))

        progress = result.get("progress") or {}
        start_time = _parse_time(result.get("buildStartedTime") or progress.get("startedTime"))
        duration = result.get("buildDurationInSeconds")

        if any(
            key in result
            for key in ("failedTestCount", "successfulTestCount", "skippedTestCount")
        ):
            test_result = counts_to_result(
                result.get("failedTestCount"),
                result.get("successfulTestCount"),
                result.get("skippedTestCount"),
            )
        else:
            test_result = self._extractor.extract(result.get("buildTestSummary"))

        return Build(
            build_id=str(result.get("buildNumber")),
            state=state,
            building=building,
            start_time=start_time,
            duration_seconds=float(duration) if duration is not None else None,
            estimated_duration_seconds=progress.get("averageBuildTimeInSeconds"),
            test_result=test_result,
        )

    def _find_build(self, client: BambooClient, plan_key: str, build_id: str) -> Build:
        return self._parse_result(self._fetch_result(client, plan_key, build_id))

    def _find_build_with_commiters(
        self, client: BambooClient, plan_key: str, build_id: str
    ) -> Build:
        raw = self._fetch_result(client, plan_key, build_id)
        return self._parse_result(raw).model_copy(update={"commiters": self._commiters_of(raw)})

    def _find_running_build(self, client: BambooClient, plan_key: str) -> Build:
        try:
            return self._parse_result(client.find_running_result(plan_key))
        except BambooPlanNotFoundError as exc:
            raise ProjectNotFoundError(f"Can't find Bamboo plan {plan_key}", key=plan_key) from exc
        except BambooResultNotFoundError as exc:
            raise BuildNotFoundError(
                f"Cannot find a running build for plan {plan_key}", key=plan_key
            ) from exc

    def _get_build_commiters(
        self, client: BambooClient, plan_key: str, build_id: str
    ) -> List[Commiter]:
        return self._commiters_of(self._fetch_result(client, plan_key, build_id))

    def _commiters_of(self, result: Dict[str, Any]) -> List[Commiter]:
        # Bamboo exposes no user endpoint; authors stay as reported.
        commiters = []
        for change in (result.get("changes") or {}).get("change") or []:
            author = change.get("author")
            username = change.get("userName") or author
            if not username:
                continue
            commiter = self._resolve_commiter(username, None)
            if author and author != username:
                commiter = commiter.model_copy(update={"name": author})
            commiters.append(commiter)
        return dedupe_commiters(commiters)

    # --- Tests ---

    def _analyze_unit_tests(self, client: BambooClient, plan_key: str) -> TestResult:
        try:
            latest = client.find_latest_result(plan_key)
        except BambooResultNotFoundError:
            return TestResult()
        except BambooPlanNotFoundError as exc:
            raise ProjectNotFoundError(f"Can't find Bamboo plan {plan_key}", key=plan_key) from exc
        return self._parse_result(latest).test_result
