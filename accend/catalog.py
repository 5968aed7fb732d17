#!/usr/bin/env python3
"""Static catalog: bookable environments and requestable resources."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from accend.models import Environment, ResourceType, RiskLevel, Role


@dataclass(frozen=True)
class EnvironmentDef:
    id: str
    name: str
    access_level_required: int
    lock_resource_id: str
    buffer_minutes: int = 0

    def to_row(self) -> Environment:
        return Environment(
            id=self.id,
            name=self.name,
            access_level_required=self.access_level_required,
            buffer_minutes=self.buffer_minutes,
            lock_version=0,
        )


@dataclass(frozen=True)
class ResourceDef:
    id: str
    name: str
    type: ResourceType
    risk_level: RiskLevel
    approver_role: Role
    tags: List[str]
    allowed_requester_roles: List[Role] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    def visible_to(self, role: Role) -> bool:
        if role == Role.admin or not self.allowed_requester_roles:
            return True
        return role in self.allowed_requester_roles


ENVIRONMENTS: List[EnvironmentDef] = [
    EnvironmentDef("env_dev", "Development", 1, "res_dev_lock"),
    EnvironmentDef("env_test", "Test", 2, "res_test_lock"),
    EnvironmentDef("env_staging", "Staging", 3, "res_staging_lock"),
    EnvironmentDef("env_uat", "UAT", 4, "res_uat_lock"),
]


def _env_lock(env_key: str, label: str) -> ResourceDef:
    return ResourceDef(
        id=f"res_{env_key}_lock",
        name=f"{label} Environment Lock",
        type=ResourceType.deployment_env_lock,
        risk_level=RiskLevel.medium,
        approver_role=Role.admin,
        tags=["deploy", label.lower()],
        allowed_requester_roles=[Role.developer, Role.qa],
        details={
            "environment": label.lower(),
            "allowedDurationHours": [1, 2, 4, 8],
            "maxDurationHours": 8,
        },
    )


RESOURCES: List[ResourceDef] = [
    _env_lock("dev", "Development"),
    _env_lock("test", "Test"),
    _env_lock("staging", "Staging"),
    _env_lock("uat", "UAT"),
    ResourceDef(
        id="res_test_run",
        name="Automated Test Run",
        type=ResourceType.test_run_request,
        risk_level=RiskLevel.low,
        approver_role=Role.admin,
        tags=["tests"],
        allowed_requester_roles=[Role.developer, Role.qa],
        details={"suites": ["smoke", "regression"]},
    ),
    ResourceDef(
        id="res_checkout_flag",
        name="Checkout Feature Flags",
        type=ResourceType.feature_flag_change,
        risk_level=RiskLevel.medium,
        approver_role=Role.admin,
        tags=["flags", "checkout"],
        allowed_requester_roles=[Role.developer],
    ),
    ResourceDef(
        id="res_orders_replica",
        name="Orders DB Read Replica",
        type=ResourceType.db_readonly,
        risk_level=RiskLevel.low,
        approver_role=Role.admin,
        tags=["database", "read-only"],
        allowed_requester_roles=[Role.developer, Role.qa],
        details={"maxDurationHours": 24},
    ),
    ResourceDef(
        id="res_console_poweruser",
        name="Cloud Console PowerUser",
        type=ResourceType.cloud_console_role,
        risk_level=RiskLevel.high,
        approver_role=Role.admin,
        tags=["cloud", "console"],
        allowed_requester_roles=[Role.developer],
        details={"maxDurationHours": 4},
    ),
    ResourceDef(
        id="res_prod_logs",
        name="Production Log Query",
        type=ResourceType.logging_query,
        risk_level=RiskLevel.low,
        approver_role=Role.admin,
        tags=["observability"],
    ),
]

_RESOURCES_BY_ID = {r.id: r for r in RESOURCES}
_ENVIRONMENTS_BY_ID = {e.id: e for e in ENVIRONMENTS}


def get_resource(resource_id: str) -> Optional[ResourceDef]:
    return _RESOURCES_BY_ID.get(resource_id)


def resources_for_role(role: Role) -> List[ResourceDef]:
    return [r for r in RESOURCES if r.visible_to(role)]


def lock_resource_for(env_id: str) -> str:
    """Ledger resource id mirrored for a booking on *env_id*."""
    env = _ENVIRONMENTS_BY_ID.get(env_id)
    return env.lock_resource_id if env else env_id


_BRANCH_REFS: Dict[str, List[str]] = {
    "web-app": ["main", "develop", "release/2025-08-15", "feature/checkout-refactor"],
    "default": ["main", "develop", "hotfix/login", "feature/test-run-mvp"],
}


def branch_refs(project_key: Optional[str] = None) -> List[str]:
    """Branches offered when requesting a test run or staging build."""
    project = (project_key or "default").lower()
    return list(_BRANCH_REFS.get(project, _BRANCH_REFS["default"]))
