import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ciwall.ci_providers import (
    Capability,
    CIProviderInterface,
    Listing,
    Project,
    ProjectNotFoundError,
    SkippedItem,
    SoftwareProjectId,
    VendorUnavailableError,
)
from ciwall.config import settings

logger = logging.getLogger(__name__)


@dataclass
class WallSnapshot:
    provider: str
    projects: List[Project] = field(default_factory=list)
    skipped: List[SkippedItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "provider": self.provider,
            "projects": [project.model_dump(mode="json") for project in self.projects],
            "skipped": [{"key": item.key, "reason": item.reason} for item in self.skipped],
        }


class WallService:
    """Builds the project list a wall displays for one connected CI server."""

    def __init__(self, connector: CIProviderInterface, max_workers: Optional[int] = None):
        self.connector = connector
        self.max_workers = max_workers or settings.WALL_MAX_WORKERS

    def snapshot(self, views: Optional[Iterable[str]] = None) -> WallSnapshot:
        """
        Resolve the wall's projects and fetch each one in parallel.

        With views, and a connector that supports them, only projects of
        those views are shown; otherwise every project on the server is.
        Projects that fail to load are reported in ``skipped``.
        """
        views = list(views or [])
        if views and self.connector.supports(Capability.VIEW):
            listing = self.connector.find_project_ids_by_views(views)
        else:
            if views:
                logger.info(
                    f"{self.connector.name} has no views, showing every project"
                )
            listing = self.connector.find_all_projects()

        snapshot = WallSnapshot(provider=self.connector.name, skipped=list(listing.skipped))
        loaded = self._run(self._load, listing.items)
        for project_id, (project, reason) in zip(listing.items, loaded):
            if project is None:
                snapshot.skipped.append(SkippedItem(key=project_id.name, reason=reason))
            else:
                snapshot.projects.append(project)
        return snapshot

    def refresh(self, projects: List[Project]) -> Listing[Project]:
        """Re-populate projects in parallel; failures are reported, not raised."""
        result: Listing[Project] = Listing()
        for project, (refreshed, reason) in zip(projects, self._run(self._populate, projects)):
            if refreshed is None:
                result.skip(project.name, reason)
            else:
                result.items.append(refreshed)
        return result

    def _run(self, func, items: list) -> list:
        if not items:
            return []
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(func, items))

    def _load(self, project_id: SoftwareProjectId):
        try:
            return self.connector.find_project(project_id), None
        except (ProjectNotFoundError, VendorUnavailableError) as exc:
            logger.warning(f"Cannot load project {project_id.name}: {exc}")
            return None, str(exc)

    def _populate(self, project: Project):
        try:
            self.connector.populate(project)
            return project, None
        except (ProjectNotFoundError, VendorUnavailableError) as exc:
            logger.warning(f"Cannot refresh project {project.name}: {exc}")
            return None, str(exc)
