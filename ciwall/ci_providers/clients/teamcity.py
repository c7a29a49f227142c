"""
TeamCity REST client.

Object graph: projects -> build types -> builds. Anonymous sessions go
through ``/guestAuth``, authenticated ones through ``/httpAuth``.
"""

import logging
from typing import Any, Dict, List

from .base import JsonApiClient, VendorNotFoundError

logger = logging.getLogger(__name__)

CHANGE_FIELDS = "change(id,version,username,date,user(id,username,name))"


class TeamCityNotFoundError(VendorNotFoundError):
    pass


class TeamCityProjectsNotFoundError(TeamCityNotFoundError):
    pass


class TeamCityProjectNotFoundError(TeamCityNotFoundError):
    pass


class TeamCityBuildTypesNotFoundError(TeamCityNotFoundError):
    pass


class TeamCityBuildTypeNotFoundError(TeamCityNotFoundError):
    pass


class TeamCityBuildListNotFoundError(TeamCityNotFoundError):
    pass


class TeamCityBuildNotFoundError(TeamCityNotFoundError):
    pass


class TeamCityChangesNotFoundError(TeamCityNotFoundError):
    pass


class TeamCityUserNotFoundError(TeamCityNotFoundError):
    pass


class TeamCityClient(JsonApiClient):
    vendor = "TeamCity"

    @property
    def _rest(self) -> str:
        return "/guestAuth/app/rest" if self.anonymous else "/httpAuth/app/rest"

    def find_all_projects(self) -> List[Dict[str, Any]]:
        data = self._get_json(f"{self._rest}/projects", TeamCityProjectsNotFoundError)
        return data.get("project", [])

    def find_project(self, project_id: str) -> Dict[str, Any]:
        return self._get_json(
            f"{self._rest}/projects/id:{project_id}",
            TeamCityProjectNotFoundError,
            key=project_id,
        )

    def find_project_by_name(self, name: str) -> Dict[str, Any]:
        return self._get_json(
            f"{self._rest}/projects/name:{name}",
            TeamCityProjectNotFoundError,
            key=name,
        )

    def find_all_build_types(self) -> List[Dict[str, Any]]:
        data = self._get_json(f"{self._rest}/buildTypes", TeamCityBuildTypesNotFoundError)
        return data.get("buildType", [])

    def find_build_type(self, build_type_id: str) -> Dict[str, Any]:
        return self._get_json(
            f"{self._rest}/buildTypes/id:{build_type_id}",
            TeamCityBuildTypeNotFoundError,
            key=build_type_id,
        )

    def find_build_list(self, build_type_id: str) -> List[Dict[str, Any]]:
        data = self._get_json(
            f"{self._rest}/buildTypes/id:{build_type_id}/builds",
            TeamCityBuildListNotFoundError,
            key=build_type_id,
        )
        return data.get("build", [])

    def find_build(self, build_type_id: str, build_id: str) -> Dict[str, Any]:
        # Resolve the build type first so a missing project is not
        # reported as a missing build.
        self.find_build_type(build_type_id)
        return self._get_json(
            f"{self._rest}/buildTypes/id:{build_type_id}/builds/id:{build_id}",
            TeamCityBuildNotFoundError,
            key=str(build_id),
        )

    def find_last_build(self, build_type_id: str) -> Dict[str, Any]:
        self.find_build_type(build_type_id)
        data = self._get_json(
            f"{self._rest}/builds",
            TeamCityBuildNotFoundError,
            key=build_type_id,
            params={"locator": f"buildType:(id:{build_type_id}),running:any,count:1"},
        )
        builds = data.get("build", [])
        if not builds:
            raise TeamCityBuildNotFoundError(
                f"No build for build type {build_type_id}", key=build_type_id
            )
        return builds[0]

    def find_running_build(self, build_type_id: str) -> Dict[str, Any]:
        """Return the build type's running build, with its running-info."""
        self.find_build_type(build_type_id)
        data = self._get_json(
            f"{self._rest}/builds",
            TeamCityBuildNotFoundError,
            key=build_type_id,
            params={"locator": f"buildType:(id:{build_type_id}),running:true,count:1"},
        )
        builds = data.get("build", [])
        if not builds:
            raise TeamCityBuildNotFoundError(
                f"No running build for build type {build_type_id}", key=build_type_id
            )
        return self._get_json(
            f"{self._rest}/builds/id:{builds[0]['id']}",
            TeamCityBuildNotFoundError,
            key=str(builds[0]["id"]),
        )

    def find_changes(self, build_id: str) -> List[Dict[str, Any]]:
        data = self._get_json(
            f"{self._rest}/changes",
            TeamCityChangesNotFoundError,
            key=str(build_id),
            params={"locator": f"build:(id:{build_id})", "fields": CHANGE_FIELDS},
        )
        return data.get("change", [])

    def find_user(self, user_id: str) -> Dict[str, Any]:
        return self._get_json(
            f"{self._rest}/users/id:{user_id}",
            TeamCityUserNotFoundError,
            key=str(user_id),
        )
