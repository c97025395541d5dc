"""
Workflows Package for the Access Provisioner.

This package provides the provisioning stages and the orchestrator that
runs them in order.
"""

from .base_stage import ProvisioningStage
from .group_provisioner import GroupProvisioner
from .membership_assigner import MembershipAssigner
from .orchestrator import INTERRUPTED_EXIT_CODE, ProvisioningRun
from .policy_assigner import PolicyAssigner
from .user_inviter import UserInviter

__all__ = [
    "ProvisioningStage",
    "GroupProvisioner",
    "PolicyAssigner",
    "UserInviter",
    "MembershipAssigner",
    "ProvisioningRun",
    "INTERRUPTED_EXIT_CODE",
]
