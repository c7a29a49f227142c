from typing import Mapping, Optional

from .models import BuildState


def map_status(status_map: Mapping[str, BuildState], raw_status: Optional[str]) -> BuildState:
    """
    Translate a vendor status string into a BuildState.

    Lookup is case-insensitive. None, blank or unmapped values give
    UNKNOWN; this never raises.
    """
    if not isinstance(raw_status, str):
        return BuildState.UNKNOWN
    return status_map.get(raw_status.strip().lower(), BuildState.UNKNOWN)
