"""
Group Membership Assigner.

Adds every address to the access group after waiting for invitations to
propagate. Group membership is what the run delivers, so failures here are
logged as errors.
"""

import logging
import time
from typing import Callable, Iterable, Optional

from ..audit.audit_logger import AuditLogger
from ..connectors import BaseConnector
from ..engine.rate_limiter import RateLimiter
from ..logging_config import SUCCESS
from ..models import ResultStatus, StageResult
from .base_stage import ProvisioningStage

logger = logging.getLogger(__name__)


class MembershipAssigner(ProvisioningStage):
    """Sequential, single-pass group membership."""

    stage_name = "memberships"

    def __init__(
        self,
        connector: BaseConnector,
        rate_limiter: Optional[RateLimiter] = None,
        audit_logger: Optional[AuditLogger] = None,
        run_id: Optional[str] = None,
        settle_delay: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(connector, rate_limiter, audit_logger, run_id)
        self.settle_delay = settle_delay
        self._sleep = sleep

    def add_all(self, group_name: str, emails: Iterable[str]) -> StageResult:
        """
        Add each address to the group.

        Args:
            group_name: Target access group
            emails: Addresses in processing order

        Returns:
            StageResult; added_count + failed_count equals the number of addresses
        """
        result = StageResult(stage=self.stage_name)

        logger.info(f"Adding users to access group '{group_name}'...")
        if self.settle_delay > 0:
            logger.info(f"Waiting {self.settle_delay:g} seconds for invitations to be processed...")
            self._sleep(self.settle_delay)

        for email in emails:
            logger.info(f"Adding {email} to the access group...")
            outcome = self._invoke("add_user_to_access_group", self.connector.add_user_to_access_group,
                                   group_name, email, paced=True)
            self._log_audit_event("add_user_to_access_group", group_name, outcome, target=email)
            result.record(email, outcome.status)

            if outcome.status == ResultStatus.SUCCESS:
                logger.log(SUCCESS, f"User {email} added to the group.")
            elif outcome.status == ResultStatus.ALREADY_EXISTS:
                logger.log(SUCCESS, f"User {email} is already in the group.")
            else:
                logger.error(f"Error adding {email} to the group: {outcome.message}")

        logger.info(
            f"Group assignment finished. {result.added_count} users added, {result.failed_count} errors."
        )
        return result
