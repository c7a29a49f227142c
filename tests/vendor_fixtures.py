"""
One logical CI server, served through each vendor's JSON API.

The same projects, views, builds and users are rendered in the shapes
Hudson, TeamCity and Bamboo answer with, behind an ``httpx.MockTransport``,
so connectors and their real transport clients run end to end.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import httpx

from ciwall.ci_providers import CIProvider, get_ci_provider
from ciwall.ci_providers.clients import BambooClient, HudsonClient, TeamCityClient

BASE_URL = "http://ci.example.com"
START = datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)
BUILD_DURATION_SECONDS = 300
ESTIMATED_DURATION_SECONDS = 600

VIEWS = {
    "View1": ["client-teamcity", "dev-radar"],
    "View2": ["fluxx", "visuwall"],
}
PROJECT_NAMES = ["client-teamcity", "dev-radar", "fluxx", "visuwall"]
# Listed by the server, but gone when its details are fetched.
MISSING_PROJECT = "ghost"

USERS = {"jdoe": {"name": "John Doe", "email": "jdoe@example.com"}}


@dataclass
class Change:
    username: str
    # None for a change that only carries a raw username
    user_key: Optional[str] = None


@dataclass
class FixtureBuild:
    number: str
    state: Optional[str] = None
    tests: Tuple[int, int, int] = (0, 0, 0)
    offset_minutes: int = 0
    changes: List[Change] = field(default_factory=list)
    building: bool = False

    @property
    def start(self) -> datetime:
        return START + timedelta(minutes=self.offset_minutes)

    @property
    def finish(self) -> datetime:
        return self.start + timedelta(seconds=BUILD_DURATION_SECONDS)


@dataclass
class FixtureProject:
    name: str
    description: Optional[str] = None
    builds: List[FixtureBuild] = field(default_factory=list)

    def find_build(self, number: str) -> Optional[FixtureBuild]:
        for build in self.builds:
            if build.number == str(number):
                return build
        return None

    def finished_builds(self) -> List[FixtureBuild]:
        return [build for build in self.builds if not build.building]


RUNNING_BUILD = FixtureBuild("11", offset_minutes=20, building=True)

PROJECTS: Dict[str, FixtureProject] = {
    "client-teamcity": FixtureProject(
        "client-teamcity",
        "Java client for the TeamCity REST API",
        [FixtureBuild("3", "failure", tests=(2, 5, 1))],
    ),
    "dev-radar": FixtureProject("dev-radar"),
    "fluxx": FixtureProject(
        "fluxx",
        "Fluxx card game",
        [
            FixtureBuild("9", "success", tests=(0, 7, 0)),
            FixtureBuild(
                "10",
                "failure",
                tests=(2, 5, 1),
                offset_minutes=10,
                changes=[
                    Change("jdoe"),
                    Change("asmith", user_key="asmith"),
                    Change("jdoe", user_key="jdoe"),
                ],
            ),
            RUNNING_BUILD,
        ],
    ),
    "visuwall": FixtureProject(
        "visuwall", "Build wall", [FixtureBuild("1", "success", tests=(0, 12, 0))]
    ),
}


def _ok(data) -> httpx.Response:
    return httpx.Response(200, json=data)


def _not_found() -> httpx.Response:
    return httpx.Response(404, json={"message": "Not Found"})


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


def server_error(request: httpx.Request) -> httpx.Response:
    return httpx.Response(500, text="Internal Server Error")


class FixtureServer:
    """Callable MockTransport handler that records the requests it served."""

    def __init__(self):
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.route(request)
        return response if response is not None else _not_found()

    def route(self, request: httpx.Request) -> Optional[httpx.Response]:
        raise NotImplementedError


# --- Hudson ---

HUDSON_STATES = {"success": "SUCCESS", "failure": "FAILURE"}


class HudsonServer(FixtureServer):
    def route(self, request):
        path = request.url.path
        tree = request.url.params.get("tree", "")
        if path == "/api/json":
            if tree.startswith("views"):
                views = [{"name": "All"}] + [{"name": name} for name in VIEWS]
                return _ok({"views": views})
            return _ok({"jobs": [{"name": name} for name in PROJECT_NAMES + [MISSING_PROJECT]]})

        parts = path.strip("/").split("/")
        if len(parts) < 4 or parts[-2:] != ["api", "json"]:
            return None
        kind, name, rest = parts[0], parts[1], parts[2:-2]

        if kind == "view" and not rest:
            if name not in VIEWS:
                return None
            return _ok(
                {
                    "name": name,
                    "url": f"{BASE_URL}/view/{name}/",
                    "jobs": [{"name": job} for job in VIEWS[name]],
                }
            )
        if kind == "user" and not rest:
            return self._user(name)
        if kind != "job" or name not in PROJECTS:
            return None

        project = PROJECTS[name]
        if not rest:
            return _ok(self._job(project))
        if rest == ["lastBuild"]:
            return _ok(self._build(project.builds[-1])) if project.builds else None
        build = project.find_build(rest[0])
        if build is None:
            return None
        if len(rest) == 1:
            return _ok(self._build(build))
        if rest[1:] == ["testReport"] and not build.building:
            failed, passed, skipped = build.tests
            return _ok(
                {
                    "failCount": failed,
                    "passCount": passed,
                    "skipCount": skipped,
                    "totalCount": failed + passed + skipped,
                }
            )
        return None

    @staticmethod
    def _job(project: FixtureProject) -> dict:
        finished = project.finished_builds()
        return {
            "name": project.name,
            "description": project.description,
            "buildable": True,
            "color": "blue",
            "builds": [{"number": int(b.number)} for b in reversed(project.builds)],
            "lastBuild": {"number": int(project.builds[-1].number)} if project.builds else None,
            "lastCompletedBuild": {"number": int(finished[-1].number)} if finished else None,
            "modules": [{"name": f"net.awired:{project.name}"}],
        }

    @staticmethod
    def _build(build: FixtureBuild) -> dict:
        items = []
        for change in build.changes:
            if change.user_key:
                author = {"id": change.user_key, "fullName": change.username}
            else:
                author = {"fullName": change.username}
            items.append({"author": author, "authorEmail": None})
        return {
            "number": int(build.number),
            "result": None if build.building else HUDSON_STATES[build.state],
            "building": build.building,
            "timestamp": int(build.start.timestamp() * 1000),
            "duration": 0 if build.building else BUILD_DURATION_SECONDS * 1000,
            "estimatedDuration": ESTIMATED_DURATION_SECONDS * 1000,
            "changeSet": {"items": items},
        }

    @staticmethod
    def _user(user_id: str):
        user = USERS.get(user_id)
        if user is None:
            return None
        return _ok(
            {
                "id": user_id,
                "fullName": user["name"],
                "property": [{}, {"address": user["email"]}],
            }
        )


# --- TeamCity ---

TEAMCITY_STATES = {"success": "SUCCESS", "failure": "FAILURE"}
TEAMCITY_PROJECTS = [("project1", "View1"), ("project2", "View2"), ("project3", MISSING_PROJECT)]
BUILD_TYPE_IDS = {name: f"bt{i}" for i, name in enumerate(PROJECT_NAMES, start=1)}
TEAMCITY_USER_IDS = {"jdoe": "1", "asmith": "2"}
TEAMCITY_DATE_FORMAT = "%Y%m%dT%H%M%S%z"

BUILDS_LOCATOR = re.compile(r"buildType:\(id:(?P<bt>[^)]+)\),running:(?P<running>\w+)")
CHANGES_LOCATOR = re.compile(r"build:\(id:(?P<id>[^)]+)\)")
BUILD_TYPE_PATH = re.compile(r"^/buildTypes/id:(?P<bt>[^/]+)(?P<builds>/builds(?:/id:(?P<id>.+))?)?$")


def _project_by_build_type(build_type_id: str) -> Optional[FixtureProject]:
    for name, bt in BUILD_TYPE_IDS.items():
        if bt == build_type_id:
            return PROJECTS[name]
    return None


def _teamcity_date(value: datetime) -> str:
    return value.strftime(TEAMCITY_DATE_FORMAT)


class TeamCityServer(FixtureServer):
    PREFIXES = ("/httpAuth/app/rest", "/guestAuth/app/rest")

    def route(self, request):
        path = request.url.path
        for prefix in self.PREFIXES:
            if path.startswith(prefix):
                path = path[len(prefix):]
                break
        else:
            return None
        params = request.url.params

        if path == "/projects":
            projects = [{"id": pid, "name": name} for pid, name in TEAMCITY_PROJECTS]
            return _ok({"count": len(projects), "project": projects})
        if path.startswith("/projects/id:"):
            return self._project(path[len("/projects/id:"):])
        if path.startswith("/projects/name:"):
            wanted = path[len("/projects/name:"):]
            for pid, name in TEAMCITY_PROJECTS:
                if name == wanted:
                    return self._project(pid)
            return None
        if path == "/buildTypes":
            build_types = [
                build_type
                for pid, _ in TEAMCITY_PROJECTS
                for build_type in self._build_types(pid)
            ]
            return _ok({"count": len(build_types), "buildType": build_types})

        match = BUILD_TYPE_PATH.match(path)
        if match:
            project = _project_by_build_type(match.group("bt"))
            if project is None:
                return None
            if not match.group("builds"):
                return _ok(
                    {
                        "id": match.group("bt"),
                        "name": project.name,
                        "description": project.description,
                        "paused": False,
                    }
                )
            if match.group("id") is None:
                finished = [self._summary(b) for b in reversed(project.finished_builds())]
                return _ok({"count": len(finished), "build": finished})
            build = project.find_build(match.group("id"))
            return _ok(self._build(match.group("bt"), build)) if build else None

        if path == "/builds":
            locator = BUILDS_LOCATOR.search(params.get("locator", ""))
            project = _project_by_build_type(locator.group("bt")) if locator else None
            if project is None:
                return None
            if locator.group("running") == "true":
                candidates = [b for b in project.builds if b.building]
            else:
                candidates = list(project.builds)
            newest = [self._summary(b) for b in reversed(candidates)][:1]
            return _ok({"count": len(newest), "build": newest})
        if path.startswith("/builds/id:"):
            found = self._find_anywhere(path[len("/builds/id:"):])
            return _ok(self._build(*found)) if found else None

        if path == "/changes":
            locator = CHANGES_LOCATOR.search(params.get("locator", ""))
            found = self._find_anywhere(locator.group("id")) if locator else None
            if found is None:
                return None
            return _ok({"change": [self._change(i, c) for i, c in enumerate(found[1].changes)]})
        if path.startswith("/users/id:"):
            user_id = path[len("/users/id:"):]
            for username, tc_id in TEAMCITY_USER_IDS.items():
                if tc_id == user_id and username in USERS:
                    user = USERS[username]
                    return _ok(
                        {
                            "id": int(tc_id),
                            "username": username,
                            "name": user["name"],
                            "email": user["email"],
                        }
                    )
            return None
        return None

    @staticmethod
    def _build_types(project_id: str) -> list:
        for pid, name in TEAMCITY_PROJECTS:
            if pid == project_id and name in VIEWS:
                return [
                    {"id": BUILD_TYPE_IDS[job], "name": job, "projectId": pid}
                    for job in VIEWS[name]
                ]
        return []

    @classmethod
    def _project(cls, project_id: str):
        for pid, name in TEAMCITY_PROJECTS:
            if pid == project_id and name in VIEWS:
                build_types = cls._build_types(pid)
                return _ok(
                    {
                        "id": pid,
                        "name": name,
                        "buildTypes": {"count": len(build_types), "buildType": build_types},
                    }
                )
        return None

    @staticmethod
    def _find_anywhere(build_id: str):
        for name, project in PROJECTS.items():
            build = project.find_build(build_id)
            if build is not None:
                return BUILD_TYPE_IDS[name], build
        return None

    @staticmethod
    def _summary(build: FixtureBuild) -> dict:
        return {"id": int(build.number), "number": build.number}

    @staticmethod
    def _build(build_type_id: str, build: FixtureBuild) -> dict:
        data = {
            "id": int(build.number),
            "number": build.number,
            "buildTypeId": build_type_id,
            "startDate": _teamcity_date(build.start),
        }
        if build.building:
            data.update(
                {
                    "state": "running",
                    "running": True,
                    "status": "SUCCESS",
                    "running-info": {
                        "estimatedTotalSeconds": ESTIMATED_DURATION_SECONDS,
                        "elapsedSeconds": 120,
                    },
                }
            )
            return data
        failed, passed, ignored = build.tests
        if failed:
            status_text = f"Tests failed: {failed}, passed: {passed}, ignored: {ignored}"
        else:
            status_text = f"Tests passed: {passed}, ignored: {ignored}"
        data.update(
            {
                "state": "finished",
                "status": TEAMCITY_STATES[build.state],
                "statusText": status_text,
                "finishDate": _teamcity_date(build.finish),
            }
        )
        return data

    @staticmethod
    def _change(index: int, change: Change) -> dict:
        data = {"id": index + 1, "version": f"r{index + 1}", "username": change.username}
        if change.user_key:
            data["user"] = {"id": int(TEAMCITY_USER_IDS[change.user_key])}
        return data


# --- Bamboo ---

BAMBOO_STATES = {"success": "Successful", "failure": "Failed"}
PLAN_KEYS = {
    "client-teamcity": "CT-MAIN",
    "dev-radar": "DR-MAIN",
    "fluxx": "FLUXX-MAIN",
    "visuwall": "VW-MAIN",
    MISSING_PROJECT: "GHOST-MAIN",
}


def _project_by_plan_key(plan_key: str) -> Optional[FixtureProject]:
    for name, key in PLAN_KEYS.items():
        if key == plan_key:
            return PROJECTS.get(name)
    return None


class BambooServer(FixtureServer):
    PREFIX = "/rest/api/latest"

    def route(self, request):
        path = request.url.path
        if not path.startswith(self.PREFIX):
            return None
        path = path[len(self.PREFIX):]
        params = request.url.params

        if path == "/plan":
            plans = [{"key": key, "name": name} for name, key in PLAN_KEYS.items()]
            return _ok({"plans": {"size": len(plans), "plan": plans}})
        if path.startswith("/plan/"):
            plan_key = path[len("/plan/"):]
            project = _project_by_plan_key(plan_key)
            if project is None:
                return None
            return _ok(
                {
                    "key": plan_key,
                    "name": project.name,
                    "description": project.description,
                    "enabled": True,
                }
            )
        if not path.startswith("/result/"):
            return None

        segments = path[len("/result/"):].split("/")
        project = _project_by_plan_key(segments[0])
        if project is not None:
            if segments[1:] == ["latest"]:
                finished = project.finished_builds()
                return _ok(self._result(segments[0], finished[-1])) if finished else None
            if params.get("includeAllStates") == "true":
                candidates = list(project.builds)
            else:
                candidates = project.finished_builds()
            results = [self._result(segments[0], b) for b in reversed(candidates)]
            if params.get("max-result"):
                results = results[: int(params["max-result"])]
            return _ok({"results": {"size": len(results), "result": results}})

        plan_key, _, number = segments[0].rpartition("-")
        project = _project_by_plan_key(plan_key)
        build = project.find_build(number) if project is not None else None
        if build is None:
            return None
        return _ok(self._result(plan_key, build))

    @staticmethod
    def _result(plan_key: str, build: FixtureBuild) -> dict:
        data = {
            "key": f"{plan_key}-{build.number}",
            "buildNumber": int(build.number),
            "buildStartedTime": build.start.isoformat(timespec="milliseconds"),
        }
        if build.building:
            data.update(
                {
                    "lifeCycleState": "InProgress",
                    "buildState": "Unknown",
                    "progress": {
                        "averageBuildTimeInSeconds": ESTIMATED_DURATION_SECONDS,
                        "startedTime": build.start.isoformat(timespec="milliseconds"),
                    },
                }
            )
            return data
        failed, passed, skipped = build.tests
        changes = []
        for change in build.changes:
            entry = {"userName": change.username}
            if change.user_key in USERS:
                entry["author"] = USERS[change.user_key]["name"]
            changes.append(entry)
        data.update(
            {
                "lifeCycleState": "Finished",
                "buildState": BAMBOO_STATES[build.state],
                "buildDurationInSeconds": BUILD_DURATION_SECONDS,
                "successfulTestCount": passed,
                "failedTestCount": failed,
                "skippedTestCount": skipped,
                "buildTestSummary": f"{failed} of {failed + passed + skipped} failed",
                "changes": {"size": len(changes), "change": changes},
            }
        )
        return data


# --- Harnesses ---


@dataclass
class VendorHarness:
    """Builds connectors for one vendor, wired to a fixture server."""

    provider_type: CIProvider
    client_class: type
    server_class: type
    vendor_ids: Dict[str, str]

    @property
    def name(self) -> str:
        return self.provider_type.value

    def new_connector(self, handler=None):
        transport = httpx.MockTransport(handler or self.server_class())

        def client_factory(url, login, password):
            return self.client_class(url, login, password, transport=transport)

        return get_ci_provider(self.provider_type, client_factory=client_factory)

    def connect(self, handler=None, login="admin", password="secret"):
        connector = self.new_connector(handler)
        connector.connect(BASE_URL, login, password)
        return connector


HARNESSES = [
    VendorHarness(
        CIProvider.HUDSON,
        HudsonClient,
        HudsonServer,
        {name: name for name in PROJECT_NAMES},
    ),
    VendorHarness(CIProvider.TEAMCITY, TeamCityClient, TeamCityServer, BUILD_TYPE_IDS),
    VendorHarness(
        CIProvider.BAMBOO,
        BambooClient,
        BambooServer,
        {name: PLAN_KEYS[name] for name in PROJECT_NAMES},
    ),
]
