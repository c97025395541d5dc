"""
IBM Cloud IAM Connector for the Access Provisioner.

Drives the `ibmcloud` command line tool for access groups, access group
policies and account invitations. Command failures are classified into
ResultStatus values by inspecting the server status code and the error text
the CLI prints, so "already exists" answers can be told apart from real errors.
"""

import json
import logging
import re
import shutil
import subprocess
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..models import AccessGroupInfo, PolicyDefinition, PolicyScope, ResultStatus, RoleName, ScopeType
from .base_connector import BaseConnector, ConnectorResult

logger = logging.getLogger(__name__)

STATUS_CODE_PATTERN = re.compile(r"status code:\s*(\d{3})", re.IGNORECASE)
ERROR_CODE_PATTERN = re.compile(r"\"?code\"?\s*[:=]\s*\"?([a-z_]+)\"?", re.IGNORECASE)

ALREADY_EXISTS_PATTERNS = [
    re.compile(r"already exists", re.IGNORECASE),
    re.compile(r"already (a )?member", re.IGNORECASE),
    re.compile(r"already invited", re.IGNORECASE),
    re.compile(r"already in (the )?(access )?group", re.IGNORECASE),
    re.compile(r"\bduplicate\b", re.IGNORECASE),
]

ALREADY_EXISTS_CODES = {"409"}
ALREADY_EXISTS_ERROR_CODES = {"policy_conflict_error", "conflict", "already_exists", "user_already_exists"}

# serviceType attribute values the CLI reports for policy scopes
PLATFORM_SERVICE_TYPE = "platform_service"
ALL_SERVICES_TYPE = "service"


def classify_cli_failure(output: str) -> Tuple[ResultStatus, Optional[str]]:
    """
    Classify a failed CLI invocation.

    Args:
        output: Combined stdout/stderr of the failed command

    Returns:
        (status, error_code): ALREADY_EXISTS for conflict answers, FAILED otherwise
    """
    status_match = STATUS_CODE_PATTERN.search(output)
    status_code = status_match.group(1) if status_match else None
    code_match = ERROR_CODE_PATTERN.search(output)
    error_code = code_match.group(1).lower() if code_match else None

    if status_code in ALREADY_EXISTS_CODES or error_code in ALREADY_EXISTS_ERROR_CODES:
        return ResultStatus.ALREADY_EXISTS, status_code or error_code
    if any(pattern.search(output) for pattern in ALREADY_EXISTS_PATTERNS):
        return ResultStatus.ALREADY_EXISTS, status_code or error_code

    return ResultStatus.FAILED, status_code or error_code


def _first_line(text: str) -> str:
    for line in text.splitlines():
        line = line.strip()
        if line and line != "FAILED":
            return line
    return text.strip()


def parse_policy(raw: Dict[str, Any]) -> Optional[PolicyDefinition]:
    """
    Convert a policy from `access-group-policies --output json` into a PolicyDefinition.

    Returns None for policies this tool does not manage (unknown roles or scopes).
    """
    roles = set()
    for role in raw.get("roles", []):
        name = role.get("display_name") or role.get("role_id", "").rsplit(":", 1)[-1]
        try:
            roles.add(RoleName(name))
        except ValueError:
            logger.debug(f"Ignoring unknown role {name!r} in policy {raw.get('id')}")
    if not roles:
        return None

    attributes = {}
    for resource in raw.get("resources", []):
        for attribute in resource.get("attributes", []):
            attributes[attribute.get("name")] = attribute.get("value")

    service_name = attributes.get("serviceName")
    service_type = attributes.get("serviceType")
    if service_name:
        scope = PolicyScope.service(service_name)
    elif service_type == PLATFORM_SERVICE_TYPE:
        scope = PolicyScope.account_management()
    elif service_type == ALL_SERVICES_TYPE:
        scope = PolicyScope.service("*")
    else:
        logger.debug(f"Ignoring policy {raw.get('id')} with unrecognised scope {attributes}")
        return None

    return PolicyDefinition(roles=frozenset(roles), scope=scope, label=raw.get("id", ""))


class IBMCloudConnector(BaseConnector):
    """IBM Cloud IAM connector backed by the `ibmcloud` CLI."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, mock_mode: bool = False):
        super().__init__(config, mock_mode)
        self.cli_path = self.config.get("cli_path", "ibmcloud")
        self.command_timeout = self.config.get("command_timeout")

    def _run(self, args: Sequence[str]) -> subprocess.CompletedProcess:
        command = [self.cli_path, *args]
        logger.debug(f"Running {' '.join(command)}")
        return subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=self.command_timeout,
        )

    def _execute(self, args: Sequence[str], success_message: str) -> ConnectorResult:
        """Run a mutating command and classify its outcome."""
        try:
            completed = self._run(args)
        except FileNotFoundError:
            return ConnectorResult.failure(f"{self.cli_path} not found on PATH")
        except subprocess.TimeoutExpired:
            return ConnectorResult.failure(f"{self.cli_path} {args[0]} timed out after {self.command_timeout}s")

        if completed.returncode == 0:
            return ConnectorResult(True, success_message, completed.stdout)

        output = f"{completed.stdout}\n{completed.stderr}".strip()
        status, error_code = classify_cli_failure(output)
        message = _first_line(output) or f"exit status {completed.returncode}"
        return ConnectorResult(False, message, error=output, status=status, error_code=error_code)

    def _query_json(self, args: Sequence[str]) -> Tuple[Optional[Any], ConnectorResult]:
        result = self._execute([*args, "--output", "json"], "ok")
        if not result.success:
            return None, result
        try:
            return json.loads(result.data or "null"), result
        except json.JSONDecodeError as e:
            return None, ConnectorResult.failure(f"Unexpected output from {args[0]}: {e}")

    def is_available(self) -> bool:
        """Check that the CLI binary is installed."""
        return shutil.which(self.cli_path) is not None

    def is_authenticated(self) -> bool:
        """`ibmcloud account show` only succeeds with an active login."""
        try:
            completed = self._run(["account", "show"])
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.debug(f"Authentication probe failed: {e}")
            return False
        return completed.returncode == 0

    def list_access_groups(self) -> ConnectorResult:
        data, result = self._query_json(["iam", "access-groups"])
        if data is None:
            return result if not result.success else ConnectorResult(True, "No access groups", [])
        names = [group.get("name", "") for group in data]
        return ConnectorResult(True, f"Found {len(names)} access groups", names)

    def create_access_group(self, name: str, description: str) -> ConnectorResult:
        return self._execute(
            ["iam", "access-group-create", name, "-d", description],
            f"Created access group {name}",
        )

    def create_policy(self, group_name: str, policy: PolicyDefinition) -> ConnectorResult:
        args = ["iam", "access-group-policy-create", group_name, "--roles", ",".join(policy.role_names())]
        if policy.scope.scope_type == ScopeType.ACCOUNT_MANAGEMENT:
            args.append("--account-management")
        else:
            args.extend(["--service-name", policy.scope.service_name])
        return self._execute(args, f"Created policy {policy.describe()} for {group_name}")

    def invite_account_user(self, email: str) -> ConnectorResult:
        return self._execute(["account", "user-invite", email], f"Invited {email}")

    def add_user_to_access_group(self, group_name: str, email: str) -> ConnectorResult:
        return self._execute(
            ["iam", "access-group-user-add", group_name, email],
            f"Added {email} to {group_name}",
        )

    def describe_access_group(self, group_name: str) -> ConnectorResult:
        data, result = self._query_json(["iam", "access-group", group_name])
        if not isinstance(data, dict):
            return result if not result.success else ConnectorResult.failure(f"Access group {group_name} not found")
        info = AccessGroupInfo(
            name=data.get("name", group_name),
            description=data.get("description", ""),
            group_id=data.get("id"),
        )
        return ConnectorResult(True, f"Found access group {group_name}", info)

    def list_group_members(self, group_name: str) -> ConnectorResult:
        data, result = self._query_json(["iam", "access-group-users", group_name])
        if data is None:
            return result if not result.success else ConnectorResult(True, "No members", [])
        members: List[str] = [member.get("email") or member.get("name", "") for member in data]
        return ConnectorResult(True, f"Found {len(members)} members", members)

    def list_group_policies(self, group_name: str) -> ConnectorResult:
        data, result = self._query_json(["iam", "access-group-policies", group_name])
        if data is None:
            return result if not result.success else ConnectorResult(True, "No policies", [])
        policies = [policy for policy in (parse_policy(raw) for raw in data) if policy is not None]
        return ConnectorResult(True, f"Found {len(policies)} policies", policies)
