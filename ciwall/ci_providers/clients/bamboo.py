"""
Bamboo REST client.

Object graph: plans -> results. A result is addressed as ``{planKey}-{number}``.
"""

import logging
from typing import Any, Dict, List

from .base import JsonApiClient, VendorNotFoundError

logger = logging.getLogger(__name__)

API_PREFIX = "/rest/api/latest"
MAX_RESULTS = 1000
RUNNING_LIFE_CYCLE_STATES = {"inprogress", "queued", "pending"}


class BambooNotFoundError(VendorNotFoundError):
    pass


class BambooPlanNotFoundError(BambooNotFoundError):
    pass


class BambooResultNotFoundError(BambooNotFoundError):
    pass


class BambooClient(JsonApiClient):
    vendor = "Bamboo"

    def find_all_plans(self) -> List[Dict[str, Any]]:
        data = self._get_json(
            f"{API_PREFIX}/plan",
            BambooNotFoundError,
            params={"expand": "plans.plan", "max-result": MAX_RESULTS},
        )
        return data.get("plans", {}).get("plan", [])

    def find_plan(self, plan_key: str) -> Dict[str, Any]:
        return self._get_json(
            f"{API_PREFIX}/plan/{plan_key}", BambooPlanNotFoundError, key=plan_key
        )

    def find_results(self, plan_key: str) -> List[Dict[str, Any]]:
        data = self._get_json(
            f"{API_PREFIX}/result/{plan_key}",
            BambooPlanNotFoundError,
            key=plan_key,
            params={"expand": "results.result", "max-result": MAX_RESULTS},
        )
        return data.get("results", {}).get("result", [])

    def find_result(self, plan_key: str, build_number: str) -> Dict[str, Any]:
        try:
            return self._get_json(
                f"{API_PREFIX}/result/{plan_key}-{build_number}",
                BambooResultNotFoundError,
                key=str(build_number),
                params={"expand": "changes.change"},
            )
        except BambooResultNotFoundError:
            self.find_plan(plan_key)
            raise

    def find_latest_result(self, plan_key: str) -> Dict[str, Any]:
        try:
            return self._get_json(
                f"{API_PREFIX}/result/{plan_key}/latest",
                BambooResultNotFoundError,
                key=plan_key,
            )
        except BambooResultNotFoundError:
            self.find_plan(plan_key)
            raise

    def find_running_result(self, plan_key: str) -> Dict[str, Any]:
        """Return the plan's newest result if it is queued or in progress."""
        data = self._get_json(
            f"{API_PREFIX}/result/{plan_key}",
            BambooPlanNotFoundError,
            key=plan_key,
            params={
                "expand": "results.result",
                "includeAllStates": "true",
                "max-result": 1,
            },
        )
        results = data.get("results", {}).get("result", [])
        if results:
            life_cycle = str(results[0].get("lifeCycleState", "")).lower()
            if life_cycle in RUNNING_LIFE_CYCLE_STATES:
                return results[0]
        raise BambooResultNotFoundError(
            f"No running result for plan {plan_key}", key=plan_key
        )
