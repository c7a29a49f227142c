from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, Generic, Iterator, List, Mapping, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

HUDSON_ID = "HUDSON_ID"
TEAMCITY_ID = "TEAMCITY_ID"
BAMBOO_ID = "BAMBOO_ID"

T = TypeVar("T")


class CIProvider(str, Enum):
    """Supported CI servers."""

    HUDSON = "hudson"
    TEAMCITY = "teamcity"
    BAMBOO = "bamboo"


class Capability(str, Enum):
    """Method groups a connector may implement."""

    VIEW = "view"
    BUILD = "build"
    TEST = "test"


class ConnectionState(str, Enum):
    UNCONNECTED = "unconnected"
    CONNECTED = "connected"
    CLOSED = "closed"


class BuildState(str, Enum):
    """Canonical build state. No total order is defined."""

    SUCCESS = "success"
    FAILURE = "failure"
    UNSTABLE = "unstable"
    ABORTED = "aborted"
    NOTBUILT = "notbuilt"
    NEW = "new"
    UNKNOWN = "unknown"


class TestResult(BaseModel):
    """Aggregate unit or integration test counts."""

    __test__ = False

    fail_count: int = Field(0, ge=0)
    pass_count: int = Field(0, ge=0)
    skip_count: int = Field(0, ge=0)

    @property
    def total_count(self) -> int:
        return self.fail_count + self.pass_count + self.skip_count


class Commiter(BaseModel):
    """Author of a change. Identity is the username only."""

    username: str
    name: Optional[str] = None
    email: Optional[str] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Commiter):
            return NotImplemented
        return self.username == other.username

    def __hash__(self) -> int:
        return hash(self.username)


class ProjectKey(BaseModel):
    """Human-facing key used to identify a project on a server."""

    model_config = ConfigDict(frozen=True)

    name: str
    artifact_id: Optional[str] = None


class SoftwareProjectId(BaseModel):
    """
    Canonical identity of a monitored project.

    Carries one vendor-local id per vendor key. Vendor ids are opaque and
    only meaningful for the connector session that produced them.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    artifact_id: Optional[str] = None
    ids: Mapping[str, str] = Field(default_factory=dict, validate_default=True)

    @field_validator("ids", mode="after")
    @classmethod
    def _freeze_ids(cls, ids: Mapping[str, str]) -> Mapping[str, str]:
        return MappingProxyType(dict(ids))

    @field_serializer("ids")
    def _serialize_ids(self, ids: Mapping[str, str]) -> Dict[str, str]:
        return dict(ids)

    def get_id(self, vendor_key: str) -> Optional[str]:
        return self.ids.get(vendor_key)

    def with_id(self, vendor_key: str, value: str) -> "SoftwareProjectId":
        return SoftwareProjectId(
            name=self.name, artifact_id=self.artifact_id, ids={**self.ids, vendor_key: value}
        )

    def __hash__(self) -> int:
        return hash((self.name, self.artifact_id, tuple(sorted(self.ids.items()))))


# Both names are used by callers; they denote the same identity.
ProjectId = SoftwareProjectId


class BuildTime(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_time: Optional[datetime] = None
    duration_seconds: Optional[float] = None


class Build(BaseModel):
    """Immutable snapshot of one build attempt."""

    model_config = ConfigDict(frozen=True)

    build_id: str
    state: BuildState = BuildState.UNKNOWN
    building: bool = False
    start_time: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    estimated_duration_seconds: Optional[float] = None
    commiters: List[Commiter] = Field(default_factory=list)
    test_result: TestResult = Field(default_factory=TestResult)


class Project(BaseModel):
    """Full project data, refreshed in place by ``populate``."""

    name: str
    description: Optional[str] = None
    state: BuildState = BuildState.UNKNOWN
    artifact_id: Optional[str] = None
    disabled: bool = False
    building: bool = False
    current_build: Optional[Build] = None
    completed_build: Optional[Build] = None
    ids: Dict[str, str] = Field(default_factory=dict)

    def project_id(self) -> SoftwareProjectId:
        return SoftwareProjectId(
            name=self.name, artifact_id=self.artifact_id, ids=dict(self.ids)
        )


class ProviderConfig(BaseModel):
    """Configuration for a CI server connection."""

    provider: CIProvider
    base_url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


@dataclass(frozen=True)
class SkippedItem:
    key: str
    reason: str


@dataclass
class Listing(Generic[T]):
    """Result of a listing call: what resolved, and what was skipped and why."""

    items: List[T] = field(default_factory=list)
    skipped: List[SkippedItem] = field(default_factory=list)

    def skip(self, key: str, reason: object) -> None:
        self.skipped.append(SkippedItem(key=key, reason=str(reason)))

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index: int) -> T:
        return self.items[index]
