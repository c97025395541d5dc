"""
Policy Assigner.

Attaches the administrator policies to the access group. Every policy is
attempted regardless of how the others went; nothing is rolled back.
"""

import logging
from typing import Optional, Sequence

from ..config import ADMINISTRATOR_POLICIES
from ..logging_config import SUCCESS
from ..models import PolicyDefinition, ResultStatus, StageResult
from .base_stage import ProvisioningStage

logger = logging.getLogger(__name__)


class PolicyAssigner(ProvisioningStage):
    """Best-effort, cumulative policy attachment."""

    stage_name = "policies"

    def assign_administrator_policies(
        self,
        group_name: str,
        policies: Optional[Sequence[PolicyDefinition]] = None,
    ) -> StageResult:
        """
        Attach each policy to the group.

        Args:
            group_name: Target access group
            policies: Policies to attach; the four administrator policies by default

        Returns:
            StageResult; existing policies count as already_present
        """
        policies = ADMINISTRATOR_POLICIES if policies is None else policies
        result = StageResult(stage=self.stage_name)

        logger.info("Assigning full administrator policies...")

        for policy in policies:
            logger.info(f"Creating policy for {policy.label or policy.describe()}...")
            outcome = self._invoke("create_policy", self.connector.create_policy, group_name, policy)
            self._log_audit_event("create_policy", group_name, outcome, target=policy.describe())
            result.record(policy.label or policy.describe(), outcome.status)

            if outcome.status == ResultStatus.SUCCESS:
                logger.log(SUCCESS, f"Policy {policy.describe()} attached.")
            elif outcome.status == ResultStatus.ALREADY_EXISTS:
                logger.warning(f"Policy {policy.describe()} already exists.")
            else:
                logger.warning(f"Policy {policy.describe()} could not be created: {outcome.message}")

        if result.failed:
            logger.warning(
                f"Administrator policies processed with {result.failed} of {result.attempted} failing."
            )
        else:
            logger.log(SUCCESS, "Administrator policies assigned.")
        return result
