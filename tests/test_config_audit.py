"""
Tests for configuration loading and the audit trail.
"""

from pathlib import Path

import pytest

from access_provisioner.audit import AuditLogger
from access_provisioner.config import DEFAULT_EMAIL_FILE, ProvisioningConfig, load_config
from access_provisioner.exceptions import ConfigurationError
from access_provisioner.models import ResultStatus


class TestLoadConfig:
    """Test cases for load_config."""

    def test_defaults(self):
        config = load_config()

        assert config == ProvisioningConfig()
        assert config.email_file == Path(DEFAULT_EMAIL_FILE)
        assert config.settle_delay_seconds == 10.0
        assert config.rate_limit.strategy == "fixed"
        assert config.rate_limit.interval_seconds == 1.0
        assert config.deduplicate_emails is False

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "email_file: people.txt\n"
            "settle_delay_seconds: 3\n"
            "rate_limit:\n"
            "  strategy: token_bucket\n"
            "  capacity: 4\n"
        )

        config = load_config(path)

        assert config.email_file == Path("people.txt")
        assert config.settle_delay_seconds == 3
        assert config.rate_limit.strategy == "token_bucket"
        assert config.rate_limit.capacity == 4

    def test_overrides_win_and_none_is_ignored(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("email_file: people.txt\nsettle_delay_seconds: 3\n")

        config = load_config(path, {"settle_delay_seconds": 0, "email_file": None})

        assert config.settle_delay_seconds == 0
        assert config.email_file == Path("people.txt")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("rate_limit: [unclosed\n")

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- one\n- two\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path)

    @pytest.mark.parametrize("overrides", [
        {"settle_delay_seconds": -1},
        {"rate_limit": {"strategy": "exponential"}},
        {"rate_limit": {"strategy": "token_bucket", "capacity": 0}},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            load_config(overrides=overrides)


class TestAuditLogger:
    """Test cases for the JSONL audit trail."""

    @pytest.fixture
    def audit(self, tmp_path):
        return AuditLogger(tmp_path / "audit")

    def test_creates_directory(self, tmp_path):
        AuditLogger(tmp_path / "nested" / "audit")

        assert (tmp_path / "nested" / "audit").is_dir()

    def test_record_round_trip(self, audit):
        record_id = audit.record("invite_account_user", "account", ResultStatus.FAILED,
                                 target="a@x.com", error="rejected", run_id="run-1")

        [record] = audit.get_events()
        assert record.id == record_id
        assert record.target == "a@x.com"
        assert record.status == ResultStatus.FAILED
        assert record.error_message == "rejected"

    def test_most_recent_first_and_limit(self, audit):
        for email in ["a@x.com", "b@x.com", "c@x.com"]:
            audit.record("invite_account_user", "account", ResultStatus.SUCCESS, target=email)

        records = audit.get_events(limit=2)

        assert [r.target for r in records] == ["c@x.com", "b@x.com"]

    def test_filters(self, audit):
        audit.record("invite_account_user", "account", ResultStatus.SUCCESS, target="a@x.com", run_id="r1")
        audit.record("add_user_to_access_group", "g", ResultStatus.SUCCESS, target="a@x.com", run_id="r1")
        audit.record("invite_account_user", "account", ResultStatus.SUCCESS, target="b@x.com", run_id="r2")

        assert len(audit.get_events(run_id="r1")) == 2
        assert [r.target for r in audit.get_events(action="invite_account_user")] == ["b@x.com", "a@x.com"]

    def test_corrupt_lines_are_skipped(self, audit):
        audit.record("invite_account_user", "account", ResultStatus.SUCCESS, target="a@x.com")
        log_file = next(audit.audit_dir.glob("audit_*.jsonl"))
        with open(log_file, "a", encoding="utf-8") as f:
            f.write("not json\n")

        assert len(audit.get_events()) == 1
