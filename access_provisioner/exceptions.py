"""
Exceptions raised by the Access Provisioner.

Only fatal conditions are raised; per-item provider failures are returned
as ConnectorResult values and counted by the stages.
"""

from typing import Optional


class ProvisioningError(Exception):
    """Base class for errors that abort a provisioning run."""

    exit_code = 1


class ConfigurationError(ProvisioningError):
    """The configuration file or an override is invalid."""


class PrerequisiteFailed(ProvisioningError):
    """CLI missing, operator not logged in, or input file absent."""


class MissingInputFile(PrerequisiteFailed):
    """The email list does not exist."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"Email file '{path}' not found")


class GroupCreationFailed(ProvisioningError):
    """The target access group could not be verified or created."""

    def __init__(self, group_name: str, reason: Optional[str] = None):
        self.group_name = group_name
        self.reason = reason
        message = f"Failed to create access group '{group_name}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
