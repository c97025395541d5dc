"""
Core data models for the Access Provisioner.

This module defines the Pydantic models used throughout the system
for policies, access groups, per-stage provisioning results and audit records.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import FrozenSet, List, Optional

from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoleName(str, Enum):
    """Permission levels understood by the identity provider."""
    ADMINISTRATOR = "Administrator"
    MANAGER = "Manager"
    EDITOR = "Editor"
    OPERATOR = "Operator"
    VIEWER = "Viewer"
    WRITER = "Writer"
    READER = "Reader"


class ScopeType(str, Enum):
    """Where a policy applies."""
    ACCOUNT_MANAGEMENT = "ACCOUNT_MANAGEMENT"
    SERVICE = "SERVICE"


class ResultStatus(str, Enum):
    """Classification of a single provider call."""
    SUCCESS = "SUCCESS"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    FAILED = "FAILED"


class GroupOutcome(str, Enum):
    """Outcome of ensuring the target access group."""
    CREATED = "CREATED"
    ALREADY_EXISTS = "ALREADY_EXISTS"


class RunState(str, Enum):
    """States of a provisioning run, in order."""
    INIT = "INIT"
    PREREQS_CHECKED = "PREREQS_CHECKED"
    CONFIRMED = "CONFIRMED"
    GROUP_ENSURED = "GROUP_ENSURED"
    POLICIES_ASSIGNED = "POLICIES_ASSIGNED"
    USERS_INVITED = "USERS_INVITED"
    MEMBERS_ADDED = "MEMBERS_ADDED"
    SUMMARIZED = "SUMMARIZED"
    DONE = "DONE"


class PolicyScope(BaseModel):
    """Account-wide account management, or a single (possibly wildcard) service."""
    scope_type: ScopeType
    service_name: Optional[str] = Field(None, description="Service name for SERVICE scopes, '*' for all")

    model_config = {"frozen": True}

    @field_validator('service_name')
    @classmethod
    def validate_service_name(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError('Service name must not be blank')
        return v

    @classmethod
    def account_management(cls) -> "PolicyScope":
        return cls(scope_type=ScopeType.ACCOUNT_MANAGEMENT)

    @classmethod
    def service(cls, name: str) -> "PolicyScope":
        return cls(scope_type=ScopeType.SERVICE, service_name=name)

    def describe(self) -> str:
        if self.scope_type == ScopeType.ACCOUNT_MANAGEMENT:
            return "account-management"
        if self.service_name == "*":
            return "all IAM-enabled services"
        return f"service '{self.service_name}'"


class PolicyDefinition(BaseModel):
    """A grant of one or more roles over a scope."""
    roles: FrozenSet[RoleName]
    scope: PolicyScope
    label: str = Field("", description="Human-readable name used in log lines")

    model_config = {"frozen": True}

    @field_validator('roles')
    @classmethod
    def validate_roles(cls, v: FrozenSet[RoleName]) -> FrozenSet[RoleName]:
        if not v:
            raise ValueError('A policy needs at least one role')
        return v

    def role_names(self) -> List[str]:
        """Role names in a stable order, Administrator first."""
        order = list(RoleName)
        return [r.value for r in sorted(self.roles, key=order.index)]

    def matches(self, other: "PolicyDefinition") -> bool:
        """Compare grants, ignoring labels."""
        return self.roles == other.roles and self.scope == other.scope

    def describe(self) -> str:
        return f"{'+'.join(self.role_names())} on {self.scope.describe()}"


class AccessGroupInfo(BaseModel):
    """Live view of an access group, used for the final report."""
    name: str
    description: str = ""
    group_id: Optional[str] = None
    members: List[str] = Field(default_factory=list)
    policies: List[PolicyDefinition] = Field(default_factory=list)


class StageResult(BaseModel):
    """Per-stage counters produced by one provisioning stage."""
    stage: str
    attempted: int = 0
    succeeded: int = 0
    already_present: int = 0
    failed: int = 0
    failed_items: List[str] = Field(default_factory=list)

    def record(self, item: str, status: ResultStatus) -> None:
        """Count one processed item."""
        self.attempted += 1
        if status == ResultStatus.SUCCESS:
            self.succeeded += 1
        elif status == ResultStatus.ALREADY_EXISTS:
            self.already_present += 1
        else:
            self.failed += 1
            self.failed_items.append(item)

    @property
    def invited_count(self) -> int:
        return self.succeeded

    @property
    def added_count(self) -> int:
        # An "already in group" answer still leaves the user in the group
        return self.succeeded + self.already_present

    @property
    def failed_count(self) -> int:
        return self.failed


class RunReport(BaseModel):
    """Folded result of a complete provisioning run."""
    run_id: str
    state: RunState = RunState.INIT
    exit_code: int = 0
    declined: bool = False
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None
    emails: List[str] = Field(default_factory=list)
    group_outcome: Optional[GroupOutcome] = None
    stages: List[StageResult] = Field(default_factory=list)
    group: Optional[AccessGroupInfo] = None
    errors: List[str] = Field(default_factory=list)

    def stage(self, name: str) -> Optional[StageResult]:
        for result in self.stages:
            if result.stage == name:
                return result
        return None

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.declined


class AuditRecord(BaseModel):
    """Audit record for one mutating provider call."""
    id: str = Field(..., description="Unique audit record ID")
    timestamp: datetime = Field(default_factory=_utcnow)
    run_id: Optional[str] = Field(None, description="ID of the run that issued the call")
    action: str = Field(..., description="Provider operation (invite_user, create_policy, etc.)")
    resource: str = Field(..., description="Access group the call concerns")
    target: Optional[str] = Field(None, description="Email or policy the call concerns")
    status: ResultStatus
    error_message: Optional[str] = Field(None, description="Error details if failed")
