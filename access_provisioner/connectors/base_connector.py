"""
Base Connector Classes for the Access Provisioner.

This module defines the identity-provider capability interface consumed by
the provisioning stages, the ConnectorResult value every call returns, and
an in-memory mock backend for testing and dry runs.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set, Tuple

from ..models import AccessGroupInfo, PolicyDefinition, ResultStatus

logger = logging.getLogger(__name__)

MUTATING_OPERATIONS = frozenset({
    "create_access_group",
    "create_policy",
    "invite_account_user",
    "add_user_to_access_group",
})


class ConnectorResult:
    """Result of a connector operation."""

    def __init__(self, success: bool, message: str = "", data: Optional[Any] = None,
                 error: Optional[str] = None, status: Optional[ResultStatus] = None,
                 error_code: Optional[str] = None):
        self.success = success
        self.message = message
        self.data = data
        self.error = error
        self.error_code = error_code
        if status is None:
            status = ResultStatus.SUCCESS if success else ResultStatus.FAILED
        self.status = status

    @classmethod
    def already_exists(cls, message: str, error_code: Optional[str] = "409") -> "ConnectorResult":
        """Provider answered that the requested state is already in place."""
        return cls(False, message, error=message, status=ResultStatus.ALREADY_EXISTS,
                   error_code=error_code)

    @classmethod
    def failure(cls, message: str, error_code: Optional[str] = None) -> "ConnectorResult":
        return cls(False, message, error=message, status=ResultStatus.FAILED, error_code=error_code)

    @property
    def is_already_exists(self) -> bool:
        return self.status == ResultStatus.ALREADY_EXISTS

    def __bool__(self):
        return self.success

    def __str__(self):
        return f"{'✓' if self.success else '✗'} {self.message}"

    def __repr__(self):
        return (f"ConnectorResult(status={self.status.value}, message={self.message!r}, "
                f"error_code={self.error_code!r})")


class BaseConnector(ABC):
    """
    Abstract capability interface over an IAM provider.

    Provider-side failures are returned as ConnectorResult values with a
    ResultStatus; connectors do not raise for them.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, mock_mode: bool = False):
        """
        Initialize the connector.

        Args:
            config: Connector settings (CLI path, timeouts, etc.)
            mock_mode: True for the simulated backend
        """
        self.config = config or {}
        self.mock_mode = mock_mode
        self.system_name = self.__class__.__name__.replace('Connector', '').lower()

        logger.debug(f"Initialized {self.__class__.__name__} (mock_mode={mock_mode})")

    @abstractmethod
    def is_available(self) -> bool:
        """Check that the provider tooling can be reached."""
        pass

    @abstractmethod
    def is_authenticated(self) -> bool:
        """Check that the operator has an active session."""
        pass

    @abstractmethod
    def list_access_groups(self) -> ConnectorResult:
        """
        List access groups in the account.

        Returns:
            ConnectorResult with a list of group names as data
        """
        pass

    @abstractmethod
    def create_access_group(self, name: str, description: str) -> ConnectorResult:
        """
        Create an access group.

        Args:
            name: Group name
            description: Group description

        Returns:
            ConnectorResult; ALREADY_EXISTS if a group with this name exists
        """
        pass

    @abstractmethod
    def create_policy(self, group_name: str, policy: PolicyDefinition) -> ConnectorResult:
        """
        Attach a policy to an access group.

        Args:
            group_name: Target group
            policy: Roles and scope to grant

        Returns:
            ConnectorResult; ALREADY_EXISTS if an identical policy is attached
        """
        pass

    @abstractmethod
    def invite_account_user(self, email: str) -> ConnectorResult:
        """
        Invite a user to the account.

        Returns:
            ConnectorResult; ALREADY_EXISTS if the user is already a member
        """
        pass

    @abstractmethod
    def add_user_to_access_group(self, group_name: str, email: str) -> ConnectorResult:
        """
        Add an account user to an access group.

        Returns:
            ConnectorResult; ALREADY_EXISTS if the user is already in the group
        """
        pass

    @abstractmethod
    def describe_access_group(self, group_name: str) -> ConnectorResult:
        """Return an AccessGroupInfo (without members/policies) as data."""
        pass

    @abstractmethod
    def list_group_members(self, group_name: str) -> ConnectorResult:
        """Return member emails as data."""
        pass

    @abstractmethod
    def list_group_policies(self, group_name: str) -> ConnectorResult:
        """Return attached PolicyDefinition objects as data."""
        pass

    def get_system_name(self) -> str:
        """Get the name of the system this connector manages."""
        return self.system_name

    def is_mock_mode(self) -> bool:
        """Check if this connector is running in mock mode."""
        return self.mock_mode


class MockConnector(BaseConnector):
    """
    In-memory identity provider.

    Keeps groups, policies and account users in dictionaries, records every
    call in `calls`, and supports failure injection per operation and target.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, mock_mode: bool = True):
        super().__init__(config, mock_mode=True)

        self.available = self.config.get("available", True)
        self.authenticated = self.config.get("authenticated", True)

        # In-memory state
        self.groups: Dict[str, Dict[str, Any]] = {}   # name -> {description, id, members, policies}
        self.account_users: Set[str] = set(self.config.get("account_users", []))
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self._failures: Dict[Tuple[str, Optional[str]], ConnectorResult] = {}
        self._next_id = 1

        for name in self.config.get("groups", []):
            self._store_group(name, "")

    def fail(self, operation: str, target: Optional[str] = None, message: str = "Simulated failure",
             status: ResultStatus = ResultStatus.FAILED, error_code: Optional[str] = "500"):
        """
        Make an operation fail.

        Args:
            operation: Connector method name
            target: Email, group or policy label the failure applies to; None for every call
            message: Error message to return
            status: FAILED or ALREADY_EXISTS
            error_code: Provider error code to report
        """
        self._failures[(operation, target)] = ConnectorResult(
            False, message, error=message, status=status, error_code=error_code
        )

    def _injected(self, operation: str, target: Optional[str]) -> Optional[ConnectorResult]:
        if (operation, target) in self._failures:
            return self._failures[(operation, target)]
        return self._failures.get((operation, None))

    def _store_group(self, name: str, description: str) -> Dict[str, Any]:
        group = {
            "description": description,
            "id": f"AccessGroupId-mock-{self._next_id:04d}",
            "members": [],
            "policies": [],
        }
        self._next_id += 1
        self.groups[name] = group
        return group

    def is_available(self) -> bool:
        self.calls.append(("is_available", ()))
        return self.available

    def is_authenticated(self) -> bool:
        self.calls.append(("is_authenticated", ()))
        return self.authenticated

    def list_access_groups(self) -> ConnectorResult:
        self.calls.append(("list_access_groups", ()))
        injected = self._injected("list_access_groups", None)
        if injected is not None:
            return injected
        return ConnectorResult(True, f"Found {len(self.groups)} access groups", list(self.groups))

    def create_access_group(self, name: str, description: str) -> ConnectorResult:
        self.calls.append(("create_access_group", (name, description)))
        injected = self._injected("create_access_group", name)
        if injected is not None:
            return injected
        if name in self.groups:
            return ConnectorResult.already_exists(f"Access group {name} already exists")

        group = self._store_group(name, description)
        logger.debug(f"Mock created access group {name}")
        return ConnectorResult(True, f"Created access group {name}", {"id": group["id"]})

    def create_policy(self, group_name: str, policy: PolicyDefinition) -> ConnectorResult:
        self.calls.append(("create_policy", (group_name, policy)))
        injected = self._injected("create_policy", policy.label)
        if injected is not None:
            return injected
        if group_name not in self.groups:
            return ConnectorResult.failure(f"Access group {group_name} not found", "404")

        policies = self.groups[group_name]["policies"]
        if any(existing.matches(policy) for existing in policies):
            return ConnectorResult.already_exists(f"Policy {policy.describe()} already exists")

        policies.append(policy)
        return ConnectorResult(True, f"Created policy {policy.describe()} for {group_name}")

    def invite_account_user(self, email: str) -> ConnectorResult:
        self.calls.append(("invite_account_user", (email,)))
        injected = self._injected("invite_account_user", email)
        if injected is not None:
            return injected
        if email in self.account_users:
            return ConnectorResult.already_exists(f"User {email} is already a member of the account")

        self.account_users.add(email)
        return ConnectorResult(True, f"Invited {email}")

    def add_user_to_access_group(self, group_name: str, email: str) -> ConnectorResult:
        self.calls.append(("add_user_to_access_group", (group_name, email)))
        injected = self._injected("add_user_to_access_group", email)
        if injected is not None:
            return injected
        if group_name not in self.groups:
            return ConnectorResult.failure(f"Access group {group_name} not found", "404")
        if email not in self.account_users:
            return ConnectorResult.failure(f"User {email} is not a member of the account", "404")

        members = self.groups[group_name]["members"]
        if email in members:
            return ConnectorResult.already_exists(f"User {email} is already in {group_name}")

        members.append(email)
        return ConnectorResult(True, f"Added {email} to {group_name}")

    def describe_access_group(self, group_name: str) -> ConnectorResult:
        self.calls.append(("describe_access_group", (group_name,)))
        if group_name not in self.groups:
            return ConnectorResult.failure(f"Access group {group_name} not found", "404")

        group = self.groups[group_name]
        info = AccessGroupInfo(name=group_name, description=group["description"], group_id=group["id"])
        return ConnectorResult(True, f"Found access group {group_name}", info)

    def list_group_members(self, group_name: str) -> ConnectorResult:
        self.calls.append(("list_group_members", (group_name,)))
        if group_name not in self.groups:
            return ConnectorResult.failure(f"Access group {group_name} not found", "404")
        return ConnectorResult(True, "Members", list(self.groups[group_name]["members"]))

    def list_group_policies(self, group_name: str) -> ConnectorResult:
        self.calls.append(("list_group_policies", (group_name,)))
        if group_name not in self.groups:
            return ConnectorResult.failure(f"Access group {group_name} not found", "404")
        return ConnectorResult(True, "Policies", list(self.groups[group_name]["policies"]))

    def mutating_calls(self) -> List[Tuple[str, Tuple[Any, ...]]]:
        """Calls that would change provider state."""
        return [call for call in self.calls if call[0] in MUTATING_OPERATIONS]

    def calls_to(self, operation: str) -> List[Tuple[Any, ...]]:
        return [args for name, args in self.calls if name == operation]
