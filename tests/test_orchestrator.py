"""
Tests for the provisioning run orchestrator.

These drive complete runs against the in-memory provider and check the
state machine, the abort points and the folded results.
"""

from unittest.mock import patch

import pytest

from access_provisioner.audit import AuditLogger
from access_provisioner.config import ACCESS_GROUP_NAME, ADMINISTRATOR_POLICIES, ProvisioningConfig, RateLimitConfig
from access_provisioner.connectors import MockConnector
from access_provisioner.engine import FixedDelayLimiter
from access_provisioner.models import GroupOutcome, RunState
from access_provisioner.workflows import INTERRUPTED_EXIT_CODE, ProvisioningRun

FULL_PATH = [
    RunState.INIT,
    RunState.PREREQS_CHECKED,
    RunState.CONFIRMED,
    RunState.GROUP_ENSURED,
    RunState.POLICIES_ASSIGNED,
    RunState.USERS_INVITED,
    RunState.MEMBERS_ADDED,
    RunState.SUMMARIZED,
    RunState.DONE,
]


@pytest.fixture
def email_file(tmp_path):
    path = tmp_path / "user_emails.txt"
    path.write_text("alice@x.com\n# comment\n\nbob@x.com\n")
    return path


@pytest.fixture
def config(email_file):
    return ProvisioningConfig(
        email_file=email_file,
        settle_delay_seconds=0,
        rate_limit=RateLimitConfig(strategy="none"),
    )


@pytest.fixture
def connector():
    return MockConnector()


def make_run(connector, config, confirm=lambda: True, **kwargs):
    kwargs.setdefault("sleep", lambda seconds: None)
    return ProvisioningRun(connector, config, confirm=confirm, **kwargs)


class TestSuccessfulRun:
    """Test cases for a run that goes all the way through."""

    def test_full_state_path(self, connector, config):
        run = make_run(connector, config)

        report = run.execute()

        assert run.history == FULL_PATH
        assert report.state == RunState.DONE
        assert report.exit_code == 0
        assert report.success is True

    def test_end_state(self, connector, config):
        report = make_run(connector, config).execute()

        assert report.group_outcome == GroupOutcome.CREATED
        assert report.emails == ["alice@x.com", "bob@x.com"]
        assert report.group.name == ACCESS_GROUP_NAME
        assert report.group.members == ["alice@x.com", "bob@x.com"]
        assert report.group.policies == ADMINISTRATOR_POLICIES

    def test_stage_results_are_folded(self, connector, config):
        report = make_run(connector, config).execute()

        assert [stage.stage for stage in report.stages] == ["policies", "invitations", "memberships"]
        assert report.stage("policies").succeeded == 4
        assert report.stage("invitations").invited_count == 2
        assert report.stage("memberships").added_count == 2

    def test_rerun_is_idempotent(self, connector, config):
        first = make_run(connector, config).execute()
        second = make_run(connector, config).execute()

        assert second.exit_code == 0
        assert second.group_outcome == GroupOutcome.ALREADY_EXISTS
        assert second.group.members == first.group.members
        assert second.group.policies == first.group.policies
        assert second.stage("policies").already_present == 4
        assert second.stage("invitations").already_present == 2
        assert second.stage("memberships").added_count == 2
        assert len(connector.calls_to("create_access_group")) == 1

    def test_settle_delay_from_config(self, connector, email_file):
        sleeps = []
        config = ProvisioningConfig(email_file=email_file, settle_delay_seconds=12.5,
                                    rate_limit=RateLimitConfig(strategy="none"))

        make_run(connector, config, sleep=sleeps.append).execute()

        assert sleeps == [12.5]

    def test_invites_and_adds_share_one_limiter(self, connector, config):
        sleeps = []
        limiter = FixedDelayLimiter(1.0, sleep=sleeps.append, clock=lambda: 100.0)

        make_run(connector, config, rate_limiter=limiter).execute()

        # two invites and two adds through one fixed-delay limiter: three gaps
        assert sleeps == [1.0, 1.0, 1.0]


class TestAbortPoints:
    """Test cases for prerequisites, confirmation and group failures."""

    def test_declined_confirmation_changes_nothing(self, connector, config):
        run = make_run(connector, config, confirm=lambda: False)

        report = run.execute()

        assert report.exit_code == 0
        assert report.declined is True
        assert run.history == [RunState.INIT, RunState.PREREQS_CHECKED, RunState.DONE]
        assert connector.mutating_calls() == []

    def test_missing_confirmation_callback_declines(self, connector, config):
        report = ProvisioningRun(connector, config, sleep=lambda s: None).execute()

        assert report.declined is True
        assert connector.mutating_calls() == []

    def test_cli_not_installed(self, config):
        connector = MockConnector({"available": False})
        confirm_calls = []

        report = make_run(connector, config, confirm=lambda: confirm_calls.append(1) or True).execute()

        assert report.exit_code == 1
        assert "not installed" in report.errors[0]
        assert confirm_calls == []
        assert connector.mutating_calls() == []

    def test_not_logged_in(self, config):
        connector = MockConnector({"authenticated": False})

        report = make_run(connector, config).execute()

        assert report.exit_code == 1
        assert "not logged in" in report.errors[0]
        assert connector.mutating_calls() == []

    def test_missing_email_file(self, connector, tmp_path):
        config = ProvisioningConfig(email_file=tmp_path / "nope.txt", settle_delay_seconds=0)

        run = make_run(connector, config)
        report = run.execute()

        assert report.exit_code == 1
        assert run.history == [RunState.INIT, RunState.DONE]
        assert connector.mutating_calls() == []

    def test_group_creation_failure_aborts_before_policies(self, connector, config):
        connector.fail("create_access_group", message="quota exceeded")
        run = make_run(connector, config)

        report = run.execute()

        assert report.exit_code != 0
        assert run.history == [RunState.INIT, RunState.PREREQS_CHECKED, RunState.CONFIRMED, RunState.DONE]
        assert connector.calls_to("create_policy") == []
        assert connector.calls_to("invite_account_user") == []

    def test_existing_group_proceeds_to_policies(self, config):
        connector = MockConnector({"groups": [ACCESS_GROUP_NAME]})

        report = make_run(connector, config).execute()

        assert report.group_outcome == GroupOutcome.ALREADY_EXISTS
        assert connector.calls_to("create_access_group") == []
        assert len(connector.calls_to("create_policy")) == 4
        assert report.exit_code == 0

    def test_cleanup_notice_on_failure(self, connector, config, caplog):
        connector.fail("create_access_group")

        with caplog.at_level("ERROR", logger="access_provisioner"):
            make_run(connector, config).execute()

        assert any("stopped because of an error" in r.getMessage() for r in caplog.records)

    def test_interrupt(self, connector, config):
        with patch.object(connector, "invite_account_user", side_effect=KeyboardInterrupt):
            report = make_run(connector, config).execute()

        assert report.exit_code == INTERRUPTED_EXIT_CODE
        assert report.state == RunState.DONE

    def test_undecodable_email_file(self, connector, tmp_path, caplog):
        path = tmp_path / "latin1.txt"
        path.write_bytes("jürgen@x.com\nbob@x.com\n".encode("latin-1"))
        config = ProvisioningConfig(email_file=path, settle_delay_seconds=0)
        run = make_run(connector, config)

        with caplog.at_level("ERROR", logger="access_provisioner"):
            report = run.execute()

        assert report.exit_code == 1
        assert "not valid UTF-8" in report.errors[0]
        assert run.history == [RunState.INIT, RunState.DONE]
        assert connector.mutating_calls() == []
        assert any("stopped because of an error" in r.getMessage() for r in caplog.records)

    def test_unexpected_error_still_finishes(self, connector, config, caplog):
        run = make_run(connector, config)

        with patch.object(connector, "describe_access_group", side_effect=RuntimeError("boom")):
            with caplog.at_level("ERROR", logger="access_provisioner"):
                report = run.execute()

        assert report.exit_code == 1
        assert report.state == RunState.DONE
        assert run.history[-2:] == [RunState.MEMBERS_ADDED, RunState.DONE]
        assert report.errors == ["boom"]
        assert any("stopped because of an error" in r.getMessage() for r in caplog.records)


class TestPerItemFailures:
    """Test cases for failures that must not stop the run."""

    def test_failed_invite_still_reaches_membership(self, config):
        connector = MockConnector({"account_users": ["bob@x.com"]})
        connector.fail("invite_account_user", "bob@x.com", message="invitation rejected")

        report = make_run(connector, config).execute()

        added = [args[1] for args in connector.calls_to("add_user_to_access_group")]
        assert added == ["alice@x.com", "bob@x.com"]
        assert report.stage("invitations").failed == 1
        assert report.stage("memberships").added_count == 2
        assert report.exit_code == 0

    def test_membership_counts_match_input(self, connector, config):
        connector.fail("add_user_to_access_group", "alice@x.com")

        report = make_run(connector, config).execute()

        memberships = report.stage("memberships")
        assert memberships.added_count + memberships.failed_count == len(report.emails)
        assert memberships.failed_items == ["alice@x.com"]
        assert report.exit_code == 0

    def test_policy_failure_does_not_abort(self, connector, config):
        connector.fail("create_policy", "Account Management")

        report = make_run(connector, config).execute()

        assert report.stage("policies").failed == 1
        assert len(connector.calls_to("create_policy")) == 4
        assert report.state == RunState.DONE
        assert report.exit_code == 0

    def test_summary_query_failure_is_not_fatal(self, connector, config):
        with patch.object(connector, "list_group_policies", return_value=connector.describe_access_group("x")):
            report = make_run(connector, config).execute()

        assert report.exit_code == 0
        assert report.group.policies == []
        assert report.group.members == ["alice@x.com", "bob@x.com"]


class TestDuplicates:
    """Test cases for repeated addresses."""

    @pytest.fixture
    def duplicate_file(self, tmp_path):
        path = tmp_path / "dupes.txt"
        path.write_text("a@x.com\nb@x.com\na@x.com\n")
        return path

    def test_duplicates_pass_through_by_default(self, connector, duplicate_file):
        config = ProvisioningConfig(email_file=duplicate_file, settle_delay_seconds=0,
                                    rate_limit=RateLimitConfig(strategy="none"))

        report = make_run(connector, config).execute()

        assert len(connector.calls_to("invite_account_user")) == 3
        assert report.stage("memberships").added_count == 3
        assert report.group.members == ["a@x.com", "b@x.com"]

    def test_deduplicate_option(self, connector, duplicate_file):
        config = ProvisioningConfig(email_file=duplicate_file, settle_delay_seconds=0,
                                    rate_limit=RateLimitConfig(strategy="none"), deduplicate_emails=True)

        report = make_run(connector, config).execute()

        assert report.emails == ["a@x.com", "b@x.com"]
        assert len(connector.calls_to("invite_account_user")) == 2


class TestAuditTrail:
    """Test cases for audit records written by a run."""

    def test_every_mutating_call_is_recorded(self, connector, config, tmp_path):
        config = config.model_copy(update={"audit_dir": tmp_path / "audit"})
        run = make_run(connector, config)

        run.execute()

        records = run.audit_logger.get_events(run_id=run.run_id, limit=100)
        actions = sorted(r.action for r in records)
        assert actions == sorted(
            ["create_access_group"] + ["create_policy"] * 4
            + ["invite_account_user"] * 2 + ["add_user_to_access_group"] * 2
        )

    def test_unwritable_audit_trail_does_not_stop_the_run(self, connector, config, tmp_path):
        config = config.model_copy(update={"audit_dir": tmp_path / "audit"})
        run = make_run(connector, config)

        with patch.object(AuditLogger, "log_event", side_effect=IsADirectoryError("audit file is a directory")):
            report = run.execute()

        assert report.exit_code == 0
        assert run.history == FULL_PATH
        assert len(connector.calls_to("create_policy")) == 4
        assert report.group.members == ["alice@x.com", "bob@x.com"]
