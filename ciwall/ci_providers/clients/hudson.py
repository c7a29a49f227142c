"""
Hudson/Jenkins JSON API client.

Object graph: views -> jobs -> builds. Builds are addressed by job name and
build number.
"""

import logging
from typing import Any, Dict, List
from urllib.parse import quote

from .base import JsonApiClient, VendorNotFoundError

logger = logging.getLogger(__name__)

JOB_TREE = (
    "name,description,buildable,color,"
    "builds[number],lastBuild[number],lastCompletedBuild[number],modules[name]"
)
BUILD_TREE = (
    "number,result,building,timestamp,duration,estimatedDuration,"
    "changeSet[items[author[id,fullName,absoluteUrl],authorEmail]]"
)
RUNNING_TREE = "number,building,timestamp,estimatedDuration"
TEST_REPORT_TREE = "failCount,passCount,skipCount,totalCount"
VIEW_TREE = "name,jobs[name]"

# Hudson always exposes this view; it is not a user-defined grouping.
DEFAULT_VIEW = "All"


class HudsonNotFoundError(VendorNotFoundError):
    pass


class HudsonViewNotFoundError(HudsonNotFoundError):
    pass


class HudsonProjectNotFoundError(HudsonNotFoundError):
    pass


class HudsonBuildNotFoundError(HudsonNotFoundError):
    pass


class HudsonTestReportNotFoundError(HudsonNotFoundError):
    pass


class HudsonUserNotFoundError(HudsonNotFoundError):
    pass


def _path(segment: str) -> str:
    return quote(str(segment), safe="")


class HudsonClient(JsonApiClient):
    vendor = "Hudson"

    def find_view_names(self) -> List[str]:
        data = self._get_json(
            "/api/json", HudsonNotFoundError, params={"tree": "views[name]"}
        )
        names = [view.get("name") for view in data.get("views", [])]
        return [name for name in names if name and name != DEFAULT_VIEW]

    def find_job_names_in_view(self, view_name: str) -> List[str]:
        data = self._get_json(
            f"/view/{_path(view_name)}/api/json",
            HudsonViewNotFoundError,
            key=view_name,
            params={"tree": VIEW_TREE},
        )
        return [job["name"] for job in data.get("jobs", []) if job.get("name")]

    def find_job_names(self) -> List[str]:
        data = self._get_json(
            "/api/json", HudsonNotFoundError, params={"tree": "jobs[name]"}
        )
        return [job["name"] for job in data.get("jobs", []) if job.get("name")]

    def find_job(self, job_name: str) -> Dict[str, Any]:
        return self._get_json(
            f"/job/{_path(job_name)}/api/json",
            HudsonProjectNotFoundError,
            key=job_name,
            params={"tree": JOB_TREE},
        )

    def find_build(self, job_name: str, build_number: str) -> Dict[str, Any]:
        try:
            return self._get_json(
                f"/job/{_path(job_name)}/{_path(build_number)}/api/json",
                HudsonBuildNotFoundError,
                key=str(build_number),
                params={"tree": BUILD_TREE},
            )
        except HudsonBuildNotFoundError:
            # A 404 here is ambiguous; a missing job wins over a missing build.
            self.find_job(job_name)
            raise

    def find_running_build(self, job_name: str) -> Dict[str, Any]:
        """Return the job's last build if it is still building."""
        try:
            build = self._get_json(
                f"/job/{_path(job_name)}/lastBuild/api/json",
                HudsonBuildNotFoundError,
                key=job_name,
                params={"tree": RUNNING_TREE},
            )
        except HudsonBuildNotFoundError:
            self.find_job(job_name)
            raise
        if not build or not build.get("building"):
            raise HudsonBuildNotFoundError(
                f"No running build for job {job_name}", key=job_name
            )
        return build

    def find_test_report(self, job_name: str, build_number: str) -> Dict[str, Any]:
        return self._get_json(
            f"/job/{_path(job_name)}/{_path(build_number)}/testReport/api/json",
            HudsonTestReportNotFoundError,
            key=str(build_number),
            params={"tree": TEST_REPORT_TREE},
        )

    def find_user(self, user_id: str) -> Dict[str, Any]:
        return self._get_json(
            f"/user/{_path(user_id)}/api/json",
            HudsonUserNotFoundError,
            key=user_id,
            params={"tree": "id,fullName,property[address]"},
        )
