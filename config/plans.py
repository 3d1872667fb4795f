"""
PlanRegistry — loads config/plans.yaml and exposes the subscription
catalogue to the billing and profile routes.
"""

import pathlib
from functools import lru_cache
from typing import Any, Dict, List, Optional

import yaml

from config.settings import config

DEFAULT_PLAN = "free"


class PlanRegistry:
    def __init__(self, registry_path: str | None = None):
        if registry_path is None:
            registry_path = str(
                pathlib.Path(__file__).parent / "plans.yaml"
            )
        with open(registry_path, "r", encoding="utf-8") as fh:
            self.registry: Dict[str, Any] = yaml.safe_load(fh)

    def get_plan(self, plan_name: str | None) -> Dict[str, Any]:
        """Return the plan config, falling back to the free plan."""
        plans = self.registry["plans"]
        return plans.get(plan_name or DEFAULT_PLAN) or plans[DEFAULT_PLAN]

    def is_known(self, plan_name: str | None) -> bool:
        return bool(plan_name) and plan_name in self.registry["plans"]

    def is_purchasable(self, plan_name: str | None) -> bool:
        return self.is_known(plan_name) and bool(
            self.registry["plans"][plan_name].get("purchasable")
        )

    def list_plan_names(self) -> List[str]:
        return list(self.registry["plans"].keys())

    def can_upgrade(self, current_plan: str, target_plan: str) -> bool:
        order: List[str] = self.registry["upgrade_order"]
        if target_plan not in order:
            return False
        current = order.index(current_plan) if current_plan in order else -1
        return order.index(target_plan) > current

    def get_limits(self, plan_name: str | None) -> Dict[str, int]:
        """Website / keyword limits written onto the user row."""
        plan = self.get_plan(plan_name)
        return {
            "website_limit": plan["website_limit"],
            "keyword_limit": plan["keyword_limit"],
        }

    # ── PayPal plan ids (configured through the environment) ──────────

    def paypal_plan_id(self, plan_name: str) -> Optional[str]:
        return config.get_paypal_plan_ids().get(plan_name)

    def plan_for_paypal_id(self, paypal_plan_id: str | None) -> Optional[str]:
        if not paypal_plan_id:
            return None
        for name, plan_id in config.get_paypal_plan_ids().items():
            if plan_id and plan_id == paypal_plan_id:
                return name
        return None


@lru_cache(maxsize=1)
def get_plan_registry() -> PlanRegistry:
    """Shared registry loaded from the bundled plans.yaml."""
    return PlanRegistry()
