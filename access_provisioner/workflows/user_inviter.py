"""
User Inviter.

Invites every address to the account, one at a time. A failed invitation
is only a warning: the user may already be in the account, and the
membership stage still gets every address.
"""

import logging
from typing import Iterable

from ..logging_config import SUCCESS
from ..models import ResultStatus, StageResult
from .base_stage import ProvisioningStage

logger = logging.getLogger(__name__)


class UserInviter(ProvisioningStage):
    """Sequential, single-pass account invitations."""

    stage_name = "invitations"

    def invite_all(self, emails: Iterable[str]) -> StageResult:
        """
        Invite each address to the account.

        Args:
            emails: Addresses in processing order

        Returns:
            StageResult; invited_count is the number of new invitations
        """
        result = StageResult(stage=self.stage_name)

        for email in emails:
            logger.info(f"Inviting user: {email}")
            outcome = self._invoke("invite_account_user", self.connector.invite_account_user, email,
                                   paced=True)
            self._log_audit_event("invite_account_user", "account", outcome, target=email)
            result.record(email, outcome.status)

            if outcome.status == ResultStatus.SUCCESS:
                logger.log(SUCCESS, f"User {email} invited.")
            elif outcome.status == ResultStatus.ALREADY_EXISTS:
                logger.warning(f"User {email} is already a member of the account.")
            else:
                logger.warning(
                    f"User {email} could not be invited (possibly already in the account): {outcome.message}"
                )

        logger.info(f"Invitations finished. {result.invited_count} users invited.")
        return result
