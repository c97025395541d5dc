"""
Provisioning Run Orchestrator.

Drives one provisioning run through its states:

    INIT -> PREREQS_CHECKED -> CONFIRMED -> GROUP_ENSURED -> POLICIES_ASSIGNED
         -> USERS_INVITED -> MEMBERS_ADDED -> SUMMARIZED -> DONE

Only two points can stop a run early: a failed prerequisite check and a
failure to create the access group. A declined confirmation jumps straight
to DONE with exit code 0. Every later stage is best-effort per item.
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from ..audit.audit_logger import AuditLogger
from ..config import ACCESS_GROUP_DESCRIPTION, ACCESS_GROUP_NAME, ADMINISTRATOR_POLICIES, ProvisioningConfig
from ..connectors import BaseConnector
from ..engine.rate_limiter import RateLimiter, create_rate_limiter
from ..exceptions import PrerequisiteFailed, ProvisioningError
from ..ingestion import deduplicate, find_duplicates, load_emails
from ..logging_config import SUCCESS
from ..models import AccessGroupInfo, PolicyDefinition, RunReport, RunState
from .group_provisioner import GroupProvisioner
from .membership_assigner import MembershipAssigner
from .policy_assigner import PolicyAssigner
from .user_inviter import UserInviter

logger = logging.getLogger(__name__)

INTERRUPTED_EXIT_CODE = 130


class ProvisioningRun:
    """
    A single pass of the provisioning workflow.

    Re-running is the recovery path for anything that failed per item;
    every stage is idempotent, so a second run converges on the same state.
    """

    def __init__(
        self,
        connector: BaseConnector,
        config: Optional[ProvisioningConfig] = None,
        confirm: Optional[Callable[[], bool]] = None,
        rate_limiter: Optional[RateLimiter] = None,
        audit_logger: Optional[AuditLogger] = None,
        sleep: Callable[[float], None] = time.sleep,
        group_name: str = ACCESS_GROUP_NAME,
        group_description: str = ACCESS_GROUP_DESCRIPTION,
        policies: Sequence[PolicyDefinition] = ADMINISTRATOR_POLICIES,
    ):
        """
        Initialize the run.

        Args:
            connector: Identity-provider connector
            config: Runtime settings; defaults when omitted
            confirm: Asked once before any mutating call; a falsy answer ends the run
            rate_limiter: Pacing for per-item calls; built from config when omitted
            audit_logger: Optional audit trail; built from config.audit_dir when omitted
            sleep: Sleep function for the settle delay
            group_name: Target access group
            group_description: Description used when creating the group
            policies: Policies to attach to the group
        """
        self.connector = connector
        self.config = config or ProvisioningConfig()
        self.confirm = confirm
        self.rate_limiter = rate_limiter or create_rate_limiter(self.config.rate_limit, sleep=sleep)
        if audit_logger is None and self.config.audit_dir is not None:
            audit_logger = AuditLogger(self.config.audit_dir)
        self.audit_logger = audit_logger
        self.sleep = sleep
        self.group_name = group_name
        self.group_description = group_description
        self.policies = list(policies)

        self.run_id = str(uuid.uuid4())
        self.state = RunState.INIT
        self.history: List[RunState] = [RunState.INIT]
        self.report = RunReport(run_id=self.run_id)

    def _transition(self, state: RunState) -> None:
        logger.debug(f"Run {self.run_id}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)
        self.report.state = state

    def _stage_kwargs(self):
        return {
            "rate_limiter": self.rate_limiter,
            "audit_logger": self.audit_logger,
            "run_id": self.run_id,
        }

    def check_prerequisites(self) -> List[str]:
        """
        Verify the CLI, the login and the input file, then load the addresses.

        Returns:
            Addresses to process, in file order

        Raises:
            PrerequisiteFailed: if any check fails
        """
        logger.info("Checking prerequisites...")

        if not self.connector.is_available():
            raise PrerequisiteFailed(
                "IBM Cloud CLI is not installed. Install it from https://cloud.ibm.com/docs/cli"
            )

        if not self.connector.is_authenticated():
            raise PrerequisiteFailed("You are not logged in to IBM Cloud. Run 'ibmcloud login' first.")

        emails = list(load_emails(self.config.email_file))

        duplicates = find_duplicates(emails)
        if duplicates and self.config.deduplicate_emails:
            emails = deduplicate(emails)
        elif duplicates:
            logger.warning(f"Duplicate addresses will be processed more than once: {', '.join(duplicates)}")

        if not emails:
            logger.warning(f"No email addresses found in '{self.config.email_file}'.")

        logger.log(SUCCESS, "All prerequisites met.")
        return emails

    def collect_summary(self) -> AccessGroupInfo:
        """Query the live group, its members and its policies."""
        logger.info("Collecting access group summary...")

        described = self.connector.describe_access_group(self.group_name)
        if described.success and described.data is not None:
            info = described.data
        else:
            logger.warning(f"Could not describe access group '{self.group_name}': {described.message}")
            info = AccessGroupInfo(name=self.group_name)

        members = self.connector.list_group_members(self.group_name)
        if members.success:
            info.members = list(members.data or [])
        else:
            logger.warning(f"Could not list group members: {members.message}")

        policies = self.connector.list_group_policies(self.group_name)
        if policies.success:
            info.policies = list(policies.data or [])
        else:
            logger.warning(f"Could not list group policies: {policies.message}")

        return info

    def execute(self) -> RunReport:
        """
        Run every stage in order.

        Returns:
            RunReport with per-stage results, the live group and the exit code
        """
        logger.info(f"Starting provisioning run {self.run_id}")

        try:
            emails = self.check_prerequisites()
            self.report.emails = emails
            self._transition(RunState.PREREQS_CHECKED)

            if self.confirm is None or not self.confirm():
                logger.info("Aborted by user.")
                self.report.declined = True
                self._finish(0)
                return self.report
            self._transition(RunState.CONFIRMED)

            provisioner = GroupProvisioner(self.connector, **self._stage_kwargs())
            self.report.group_outcome = provisioner.ensure_group(self.group_name, self.group_description)
            self._transition(RunState.GROUP_ENSURED)

            assigner = PolicyAssigner(self.connector, **self._stage_kwargs())
            self.report.stages.append(assigner.assign_administrator_policies(self.group_name, self.policies))
            self._transition(RunState.POLICIES_ASSIGNED)

            inviter = UserInviter(self.connector, **self._stage_kwargs())
            self.report.stages.append(inviter.invite_all(emails))
            self._transition(RunState.USERS_INVITED)

            membership = MembershipAssigner(
                self.connector,
                settle_delay=self.config.settle_delay_seconds,
                sleep=self.sleep,
                **self._stage_kwargs(),
            )
            self.report.stages.append(membership.add_all(self.group_name, emails))
            self._transition(RunState.MEMBERS_ADDED)

            self.report.group = self.collect_summary()
            self._transition(RunState.SUMMARIZED)

            logger.log(SUCCESS, "Provisioning completed.")
            self._finish(0)

        except ProvisioningError as e:
            logger.error(str(e))
            self.report.errors.append(str(e))
            self._finish(e.exit_code)

        except KeyboardInterrupt:
            logger.warning("Interrupted by operator.")
            self.report.errors.append("interrupted")
            self._finish(INTERRUPTED_EXIT_CODE)

        except Exception as e:
            logger.exception(f"Unexpected error during provisioning run {self.run_id}: {e}")
            self.report.errors.append(str(e))
            self._finish(1)

        return self.report

    def _finish(self, exit_code: int) -> None:
        self.report.exit_code = exit_code
        self.report.completed_at = datetime.now(timezone.utc)
        self._transition(RunState.DONE)
        self._cleanup()

    def _cleanup(self) -> None:
        """Runs on DONE; only reports, never changes data."""
        if self.report.exit_code != 0:
            logger.error("The run stopped because of an error. Check the log above and run it again.")
