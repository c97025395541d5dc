"""
Group Provisioner.

Makes sure the target access group exists. The group is a prerequisite for
every later stage, so failing to verify or create it aborts the run.
"""

import logging

from ..exceptions import GroupCreationFailed
from ..logging_config import SUCCESS
from ..models import GroupOutcome
from .base_stage import ProvisioningStage

logger = logging.getLogger(__name__)


class GroupProvisioner(ProvisioningStage):
    """Idempotent create-or-skip of an access group."""

    stage_name = "group"

    def ensure_group(self, name: str, description: str) -> GroupOutcome:
        """
        Ensure an access group with this name exists.

        Args:
            name: Group name, used as the lookup key
            description: Description for a newly created group

        Returns:
            GroupOutcome.CREATED or GroupOutcome.ALREADY_EXISTS

        Raises:
            GroupCreationFailed: if the groups cannot be listed or the create call fails
        """
        logger.info(f"Creating access group '{name}'...")

        listing = self._invoke("list_access_groups", self.connector.list_access_groups)
        if not listing.success:
            logger.error(f"Could not list access groups: {listing.message}")
            raise GroupCreationFailed(name, f"could not list access groups: {listing.message}")

        if name in (listing.data or []):
            logger.warning(f"Access group '{name}' already exists.")
            return GroupOutcome.ALREADY_EXISTS

        result = self._invoke("create_access_group", self.connector.create_access_group, name, description)
        self._log_audit_event("create_access_group", name, result)

        if result.success:
            logger.log(SUCCESS, f"Access group '{name}' created.")
            return GroupOutcome.CREATED

        if result.is_already_exists:
            # Created between the listing and the create call
            logger.warning(f"Access group '{name}' already exists.")
            return GroupOutcome.ALREADY_EXISTS

        logger.error(f"Error creating access group '{name}': {result.message}")
        raise GroupCreationFailed(name, result.message)
