import functools
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, FrozenSet, Iterable, List, Optional

from ciwall.config import settings

from .clients.base import VendorError
from .exceptions import (
    BuildNotFoundError,
    CapabilityNotSupportedError,
    ConnectorError,
    InvalidArgumentError,
    NotConnectedError,
    ProjectNotFoundError,
    VendorUnavailableError,
    ViewNotFoundError,
)
from .identifiers import build_id_sort_key, dedupe_commiters, sort_build_ids
from .models import (
    Build,
    BuildState,
    BuildTime,
    Capability,
    CIProvider,
    Commiter,
    ConnectionState,
    Listing,
    Project,
    ProjectKey,
    SoftwareProjectId,
    TestResult,
)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, str, str], Any]

_ALLOWED_TRANSITIONS = {
    ConnectionState.UNCONNECTED: {ConnectionState.CONNECTED, ConnectionState.CLOSED},
    ConnectionState.CONNECTED: {ConnectionState.CONNECTED, ConnectionState.CLOSED},
    ConnectionState.CLOSED: {ConnectionState.CONNECTED, ConnectionState.CLOSED},
}


def requires(capability: Optional[Capability] = None):
    """
    Guard a contract method.

    The connector must be connected and, when ``capability`` is given, must
    declare it. Vendor errors that escape the method body surface as
    VendorUnavailableError.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            self._require_client()
            if capability is not None and capability not in self.capabilities:
                raise CapabilityNotSupportedError(
                    f"{self.name} does not support the {capability.value} capability"
                )
            try:
                return func(self, *args, **kwargs)
            except VendorError as exc:
                raise VendorUnavailableError(
                    f"{self.name} did not answer {func.__name__}: {exc}"
                ) from exc

        wrapper.required_capability = capability
        return wrapper

    return decorator


class CIProviderInterface(ABC):
    """
    Contract shared by every CI server connector.

    Public methods validate arguments and connection state, then call the
    ``_``-prefixed hooks each vendor implements. Hooks receive the client
    captured at call time and raise canonical errors from exceptions.py.
    """

    capabilities: FrozenSet[Capability] = frozenset()
    vendor_key: str = ""

    def __init__(self, client_factory: Optional[ClientFactory] = None):
        self._client_factory = client_factory
        self._client: Any = None
        self._state = ConnectionState.UNCONNECTED

    @property
    @abstractmethod
    def provider_type(self) -> CIProvider:
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def _create_client(self, url: str, login: str, password: str) -> Any:
        """Build the vendor transport client for ``url``."""
        pass

    # --- Connection state ---

    @property
    def state(self) -> ConnectionState:
        return self._state

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def connect(
        self, url: Optional[str], login: Optional[str] = None, password: Optional[str] = None
    ) -> None:
        """
        Open a session on ``url``.

        A blank login falls back to the anonymous credentials. Connecting an
        already connected instance replaces its transport client.
        """
        if url is None or not str(url).strip():
            raise InvalidArgumentError("url is mandatory", key="url")
        if login is None or not str(login).strip():
            logger.info(f"Login is blank, using '{settings.ANONYMOUS_LOGIN}'")
            login, password = settings.ANONYMOUS_LOGIN, ""

        factory = self._client_factory or self._create_client
        client = factory(str(url).strip(), login, password or "")
        previous, self._client = self._client, client
        self._transition(ConnectionState.CONNECTED)
        if previous is not None and previous is not client:
            self._close_client(previous)

    def close(self) -> None:
        if self._state == ConnectionState.CLOSED:
            return
        client, self._client = self._client, None
        self._transition(ConnectionState.CLOSED)
        if client is not None:
            self._close_client(client)

    def is_closed(self) -> bool:
        return self._state != ConnectionState.CONNECTED

    def _transition(self, target: ConnectionState) -> None:
        if target not in _ALLOWED_TRANSITIONS[self._state]:
            raise NotConnectedError(
                f"{self.name}: cannot go from {self._state.value} to {target.value}"
            )
        logger.debug(f"{self.name} connector: {self._state.value} -> {target.value}")
        self._state = target

    def _require_client(self) -> Any:
        client = self._client
        if self._state != ConnectionState.CONNECTED or client is None:
            raise NotConnectedError(f"You must connect your {self.name} connector")
        return client

    @staticmethod
    def _close_client(client: Any) -> None:
        close = getattr(client, "close", None)
        if callable(close):
            close()

    # --- Argument checks ---

    def _vendor_id(self, project_id: Optional[SoftwareProjectId]) -> str:
        if project_id is None:
            raise InvalidArgumentError("project_id is mandatory", key="project_id")
        vendor_id = project_id.get_id(self.vendor_key)
        if not vendor_id:
            raise ProjectNotFoundError(
                f"Project {project_id.name} has no {self.vendor_key}",
                key=project_id.name,
            )
        return vendor_id

    @staticmethod
    def _check_build_id(build_id: Any) -> str:
        if build_id is None or not str(build_id).strip():
            raise InvalidArgumentError("build_id is mandatory", key="build_id")
        return str(build_id).strip()

    @staticmethod
    def _check_view_name(view_name: Optional[str]) -> str:
        if view_name is None or not str(view_name).strip():
            raise InvalidArgumentError("view_name is mandatory", key="view_name")
        return view_name

    # --- Connection-level operations ---

    @requires()
    def find_project_names(self) -> List[str]:
        return self._find_project_names(self._require_client())

    @requires()
    def find_all_projects(self) -> Listing[SoftwareProjectId]:
        return self._find_all_projects(self._require_client())

    @requires()
    def list_software_project_ids(self) -> Listing[SoftwareProjectId]:
        return self._find_all_projects(self._require_client())

    @requires()
    def identify(self, project_key: Optional[ProjectKey]) -> SoftwareProjectId:
        if project_key is None:
            raise InvalidArgumentError("project_key is mandatory", key="project_key")
        return self._identify(self._require_client(), project_key)

    @requires()
    def find_project(self, project_id: Optional[SoftwareProjectId]) -> Project:
        vendor_id = self._vendor_id(project_id)
        client = self._require_client()
        project = self._load_project(client, vendor_id)
        project.ids = {**project_id.ids, **project.ids}
        project.artifact_id = project.artifact_id or project_id.artifact_id
        self._populate(client, vendor_id, project)
        return project

    @requires()
    def populate(self, project: Optional[Project]) -> None:
        """Refresh the current/completed builds and state of ``project`` in place."""
        if project is None:
            raise InvalidArgumentError("project is mandatory", key="project")
        vendor_id = self._vendor_id(project.project_id())
        self._populate(self._require_client(), vendor_id, project)

    # --- Build capability ---

    @requires(Capability.BUILD)
    def get_name(self, project_id: Optional[SoftwareProjectId]) -> str:
        return self._load_project(self._require_client(), self._vendor_id(project_id)).name

    @requires(Capability.BUILD)
    def get_description(self, project_id: Optional[SoftwareProjectId]) -> Optional[str]:
        vendor_id = self._vendor_id(project_id)
        return self._load_project(self._require_client(), vendor_id).description

    @requires(Capability.BUILD)
    def get_artifact_id(self, project_id: Optional[SoftwareProjectId]) -> Optional[str]:
        vendor_id = self._vendor_id(project_id)
        return self._load_project(self._require_client(), vendor_id).artifact_id

    @requires(Capability.BUILD)
    def is_project_disabled(self, project_id: Optional[SoftwareProjectId]) -> bool:
        vendor_id = self._vendor_id(project_id)
        return self._load_project(self._require_client(), vendor_id).disabled

    @requires(Capability.BUILD)
    def get_build_ids(self, project_id: Optional[SoftwareProjectId]) -> List[str]:
        vendor_id = self._vendor_id(project_id)
        return sort_build_ids(self._get_build_ids(self._require_client(), vendor_id))

    @requires(Capability.BUILD)
    def get_last_build_id(self, project_id: Optional[SoftwareProjectId]) -> str:
        vendor_id = self._vendor_id(project_id)
        return self._get_last_build_id(self._require_client(), vendor_id)

    @requires(Capability.BUILD)
    def find_build(self, project_id: Optional[SoftwareProjectId], build_id: Any) -> Build:
        vendor_id = self._vendor_id(project_id)
        build_id = self._check_build_id(build_id)
        return self._find_build_with_commiters(self._require_client(), vendor_id, build_id)

    @requires(Capability.BUILD)
    def get_build_state(self, project_id: Optional[SoftwareProjectId], build_id: Any) -> BuildState:
        vendor_id = self._vendor_id(project_id)
        build_id = self._check_build_id(build_id)
        return self._find_build(self._require_client(), vendor_id, build_id).state

    @requires(Capability.BUILD)
    def get_build_time(self, project_id: Optional[SoftwareProjectId], build_id: Any) -> BuildTime:
        vendor_id = self._vendor_id(project_id)
        build_id = self._check_build_id(build_id)
        build = self._find_build(self._require_client(), vendor_id, build_id)
        return BuildTime(start_time=build.start_time, duration_seconds=build.duration_seconds)

    @requires(Capability.BUILD)
    def is_building(self, project_id: Optional[SoftwareProjectId], build_id: Any) -> bool:
        vendor_id = self._vendor_id(project_id)
        build_id = self._check_build_id(build_id)
        try:
            running = self._find_running_build(self._require_client(), vendor_id)
        except BuildNotFoundError:
            return False
        return running.build_id == build_id

    @requires(Capability.BUILD)
    def get_estimated_finish_time(
        self, project_id: Optional[SoftwareProjectId], build_id: Any
    ) -> datetime:
        """
        Estimate when ``build_id`` will finish.

        Only the project's single running build has an estimate; any other
        build id raises BuildNotFoundError.
        """
        vendor_id = self._vendor_id(project_id)
        build_id = self._check_build_id(build_id)
        running = self._find_running_build(self._require_client(), vendor_id)
        if running.build_id != build_id:
            raise BuildNotFoundError(
                f"Build #{build_id} of {vendor_id} is not the running build "
                f"(#{running.build_id})",
                key=build_id,
            )
        estimated = timedelta(seconds=running.estimated_duration_seconds or 0)
        if running.start_time is not None:
            return running.start_time + estimated
        return datetime.now(timezone.utc) + estimated

    @requires(Capability.BUILD)
    def get_build_commiters(
        self, project_id: Optional[SoftwareProjectId], build_id: Any
    ) -> List[Commiter]:
        vendor_id = self._vendor_id(project_id)
        build_id = self._check_build_id(build_id)
        client = self._require_client()
        return dedupe_commiters(self._get_build_commiters(client, vendor_id, build_id))

    # --- View capability ---

    @requires(Capability.VIEW)
    def find_views(self) -> Listing[str]:
        return self._find_views(self._require_client())

    @requires(Capability.VIEW)
    def find_project_names_by_view(self, view_name: Optional[str]) -> List[str]:
        view_name = self._check_view_name(view_name)
        return self._find_project_names_by_view(self._require_client(), view_name)

    @requires(Capability.VIEW)
    def find_software_project_ids_by_views(
        self, views: Optional[Iterable[str]]
    ) -> Listing[SoftwareProjectId]:
        if views is None:
            raise InvalidArgumentError("views is mandatory", key="views")
        client = self._require_client()
        listing: Listing[SoftwareProjectId] = Listing()
        for view_name in views:
            try:
                view_name = self._check_view_name(view_name)
                listing.items.extend(self._find_project_ids_by_view(client, view_name))
            except (ViewNotFoundError, InvalidArgumentError) as exc:
                logger.warning(f"Cannot add projects of view {view_name}: {exc}")
                listing.skip(str(view_name), exc)
        return listing

    @requires(Capability.VIEW)
    def find_project_ids_by_views(
        self, views: Optional[Iterable[str]]
    ) -> Listing[SoftwareProjectId]:
        return self.find_software_project_ids_by_views(views)

    @requires(Capability.VIEW)
    def find_project_ids_by_names(
        self, names: Optional[Iterable[str]]
    ) -> List[SoftwareProjectId]:
        """
        Resolve each name in the order given.

        The first unknown name raises ProjectNotFoundError.
        """
        if names is None:
            raise InvalidArgumentError("names is mandatory", key="names")
        client = self._require_client()
        return [self._identify(client, ProjectKey(name=name)) for name in names]

    # --- Test capability ---

    @requires(Capability.TEST)
    def analyze_unit_tests(self, project_id: Optional[SoftwareProjectId]) -> TestResult:
        if project_id is None:
            raise InvalidArgumentError("project_id is mandatory", key="project_id")
        try:
            return self._analyze_unit_tests(self._require_client(), self._vendor_id(project_id))
        except (ConnectorError, VendorError) as exc:
            logger.warning(f"Can't analyze unit tests for {project_id.name}: {exc}")
            return TestResult()

    @requires(Capability.TEST)
    def analyze_integration_tests(self, project_id: Optional[SoftwareProjectId]) -> TestResult:
        if project_id is None:
            raise InvalidArgumentError("project_id is mandatory", key="project_id")
        try:
            return self._analyze_integration_tests(
                self._require_client(), self._vendor_id(project_id)
            )
        except (ConnectorError, VendorError) as exc:
            logger.warning(f"Can't analyze integration tests for {project_id.name}: {exc}")
            return TestResult()

    # --- Shared helpers ---

    def _populate(self, client: Any, vendor_id: str, project: Project) -> None:
        try:
            last_build_id = self._get_last_build_id(client, vendor_id)
        except BuildNotFoundError:
            project.current_build = None
            project.completed_build = None
            project.building = False
            project.state = BuildState.NEW
            return

        last_build = self._find_build_with_commiters(client, vendor_id, last_build_id)
        completed: Optional[Build] = last_build
        if last_build.building:
            completed = self._find_previous_build(client, vendor_id, last_build_id)
            project.current_build = last_build
            project.building = True
        else:
            project.current_build = None
            project.building = False
        project.completed_build = completed
        project.state = completed.state if completed is not None else BuildState.NEW

    def _find_previous_build(self, client: Any, vendor_id: str, build_id: str) -> Optional[Build]:
        earlier = [
            candidate
            for candidate in sort_build_ids(self._get_build_ids(client, vendor_id))
            if build_id_sort_key(candidate) < build_id_sort_key(build_id)
        ]
        if not earlier:
            return None
        return self._find_build_with_commiters(client, vendor_id, earlier[-1])

    def _find_build_with_commiters(self, client: Any, vendor_id: str, build_id: str) -> Build:
        build = self._find_build(client, vendor_id, build_id)
        commiters = dedupe_commiters(self._get_build_commiters(client, vendor_id, build_id))
        return build.model_copy(update={"commiters": commiters})

    def _resolve_commiter(
        self,
        username: str,
        user_id: Optional[str],
        lookup: Optional[Callable[[str], Optional[Commiter]]] = None,
    ) -> Commiter:
        """
        Build a commiter from a raw username, enriched through ``lookup``
        when the server exposes a user id. A failed lookup keeps the raw record.
        """
        commiter = Commiter(username=username)
        if not user_id or lookup is None:
            return commiter
        try:
            enriched = lookup(user_id)
        except (ConnectorError, VendorError) as exc:
            logger.info(f"User not found for id {user_id}: {exc}")
            return commiter
        return enriched or commiter

    @staticmethod
    def _parse_epoch_millis(value: Any) -> Optional[datetime]:
        if not value:
            return None
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)

    # --- Vendor hooks ---

    def _find_project_names(self, client: Any) -> List[str]:
        return [project_id.name for project_id in self._find_all_projects(client)]

    def _find_all_projects(self, client: Any) -> Listing[SoftwareProjectId]:
        raise NotImplementedError

    def _identify(self, client: Any, project_key: ProjectKey) -> SoftwareProjectId:
        for project_id in self._find_all_projects(client):
            if project_id.name != project_key.name:
                continue
            if project_key.artifact_id and project_id.artifact_id not in (
                None,
                project_key.artifact_id,
            ):
                continue
            return project_id
        raise ProjectNotFoundError(
            f"Can't identify software project id with project key: {project_key.name}",
            key=project_key.name,
        )

    def _load_project(self, client: Any, vendor_id: str) -> Project:
        raise NotImplementedError

    def _get_build_ids(self, client: Any, vendor_id: str) -> Iterable[str]:
        raise NotImplementedError

    def _get_last_build_id(self, client: Any, vendor_id: str) -> str:
        raise NotImplementedError

    def _find_build(self, client: Any, vendor_id: str, build_id: str) -> Build:
        raise NotImplementedError

    def _find_running_build(self, client: Any, vendor_id: str) -> Build:
        raise NotImplementedError

    def _get_build_commiters(self, client: Any, vendor_id: str, build_id: str) -> List[Commiter]:
        raise NotImplementedError

    def _find_views(self, client: Any) -> Listing[str]:
        raise NotImplementedError

    def _find_project_names_by_view(self, client: Any, view_name: str) -> List[str]:
        raise NotImplementedError

    def _find_project_ids_by_view(self, client: Any, view_name: str) -> List[SoftwareProjectId]:
        raise NotImplementedError

    def _analyze_unit_tests(self, client: Any, vendor_id: str) -> TestResult:
        raise NotImplementedError

    def _analyze_integration_tests(self, client: Any, vendor_id: str) -> TestResult:
        return TestResult()
