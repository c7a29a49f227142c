# Core exports
from . import bamboo, hudson, teamcity
from .base import CIProviderInterface, requires
from .config import get_configured_provider, get_configured_providers, get_provider_config
from .exceptions import (
    BuildNotFoundError,
    CapabilityNotSupportedError,
    ConnectorError,
    ErrorKind,
    InvalidArgumentError,
    NotConnectedError,
    ProjectNotFoundError,
    VendorUnavailableError,
    ViewNotFoundError,
)
from .factory import CIProviderRegistry, get_ci_provider
from .models import (
    BAMBOO_ID,
    HUDSON_ID,
    TEAMCITY_ID,
    Build,
    BuildState,
    BuildTime,
    Capability,
    CIProvider,
    Commiter,
    ConnectionState,
    Listing,
    Project,
    ProjectId,
    ProjectKey,
    ProviderConfig,
    SkippedItem,
    SoftwareProjectId,
    TestResult,
)
from .test_results import TestResultExtractor

__all__ = [
    # Enums
    "CIProvider",
    "Capability",
    "ConnectionState",
    "BuildState",
    "ErrorKind",
    # Models
    "Build",
    "BuildTime",
    "Commiter",
    "Listing",
    "Project",
    "ProjectId",
    "ProjectKey",
    "ProviderConfig",
    "SkippedItem",
    "SoftwareProjectId",
    "TestResult",
    "HUDSON_ID",
    "TEAMCITY_ID",
    "BAMBOO_ID",
    # Errors
    "ConnectorError",
    "NotConnectedError",
    "InvalidArgumentError",
    "ProjectNotFoundError",
    "ViewNotFoundError",
    "BuildNotFoundError",
    "VendorUnavailableError",
    "CapabilityNotSupportedError",
    # Interface
    "CIProviderInterface",
    "requires",
    "TestResultExtractor",
    # Factory
    "CIProviderRegistry",
    "get_ci_provider",
    # Config helpers
    "get_provider_config",
    "get_configured_provider",
    "get_configured_providers",
]
