"""
Access Provisioner

Bulk onboarding of users into an IBM Cloud IAM access group: ensures the
group exists with administrator policies, invites every address from an
email list to the account and adds each one to the group.

Every stage is idempotent, so re-running the tool is the way to retry
whatever failed on a previous run.
"""

__version__ = "1.0.0"
__author__ = "Access Provisioner Team"
__email__ = "team@example.com"

from .config import ProvisioningConfig, load_config
from .connectors import IBMCloudConnector, MockConnector
from .ingestion import load_emails
from .workflows import ProvisioningRun

__all__ = [
    "ProvisioningConfig",
    "load_config",
    "IBMCloudConnector",
    "MockConnector",
    "load_emails",
    "ProvisioningRun",
]
