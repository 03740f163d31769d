"""Tests for the JSONL audit log."""

import json
from datetime import datetime, timedelta

from shellgate.tools.shell.audit import AuditConfig, AuditEntry, AuditLogger
from shellgate.tools.shell.models import PolicyTier


def make_logger(tmp_path, **kwargs) -> AuditLogger:
    return AuditLogger(AuditConfig(log_dir=str(tmp_path / "audit"), **kwargs), session_id="s1")


class TestAuditEntry:
    """Tests for entry serialization."""

    def test_to_dict_drops_empty_fields(self):
        entry = AuditEntry(
            timestamp="2024-01-01T00:00:00",
            session_id="s1",
            command_original="ls",
            tier="allow",
            executed=False,
        )

        data = entry.to_dict()

        assert data["executed"] is False
        assert "timed_out" not in data
        assert "patterns" not in data
        assert AuditEntry.from_dict(data) == entry


class TestAuditLogger:
    """Tests for writing and querying entries."""

    def test_log_command_writes_jsonl(self, tmp_path):
        audit = make_logger(tmp_path)

        audit.log_command("ls -la", PolicyTier.ALLOW, executed=True, exit_code=0, output="a\nb\n")

        files = list((tmp_path / "audit").glob("shell_audit_*.jsonl"))
        assert len(files) == 1
        record = json.loads(files[0].read_text().splitlines()[0])
        assert record["command_original"] == "ls -la"
        assert record["tier"] == "allow"
        assert record["exit_code"] == 0
        assert record["session_id"] == "s1"
        assert record["output_preview"] == "a\nb\n"

    def test_preview_limited(self, tmp_path):
        audit = make_logger(tmp_path, max_preview_length=4)

        entry = audit.log_command("yes", PolicyTier.ASK, executed=True, output="y" * 100)

        assert entry.output_preview == "yyyy"

    def test_normalized_only_when_different(self, tmp_path):
        audit = make_logger(tmp_path)

        same = audit.log_command("ls", PolicyTier.ALLOW, executed=True, normalized_command="ls")
        other = audit.log_command(f"l{chr(0x200B)}s", PolicyTier.ALLOW, executed=True, normalized_command="ls")

        assert same.command_normalized is None
        assert other.command_normalized == "ls"

    def test_query_filters(self, tmp_path):
        audit = make_logger(tmp_path)
        audit.log_command("ls", PolicyTier.ALLOW, executed=True)
        audit.log_command("rm -rf /", PolicyTier.DENY, executed=False, blocked_reason="POLICY_DENIED")
        audit.log_command("make", PolicyTier.ASK, executed=True, session_id="other")

        assert [e.command_original for e in audit.query(blocked_only=True)] == ["rm -rf /"]
        assert [e.command_original for e in audit.query(executed_only=True, session_id="s1")] == ["ls"]
        assert [e.command_original for e in audit.query(tier=PolicyTier.ASK)] == ["make"]
        assert len(list(audit.query(limit=2))) == 2

    def test_disabled_writes_nothing(self, tmp_path):
        audit = make_logger(tmp_path, enabled=False)

        audit.log_command("ls", PolicyTier.ALLOW, executed=True)

        assert not (tmp_path / "audit").exists()
        assert list(audit.query()) == []

    def test_cleanup_old_logs(self, tmp_path):
        audit = make_logger(tmp_path, retention_days=7)
        old_date = (datetime.now() - timedelta(days=30)).strftime("%Y-%m-%d")
        old_file = tmp_path / "audit" / f"shell_audit_{old_date}.jsonl"
        old_file.write_text("{}\n")
        audit.log_command("ls", PolicyTier.ALLOW, executed=True)

        assert audit.cleanup_old_logs() == 1
        assert not old_file.exists()

    def test_session_summary(self, tmp_path):
        audit = make_logger(tmp_path)
        audit.log_command("ls", PolicyTier.ALLOW, executed=True)
        audit.log_command("sleep 9", PolicyTier.ASK, executed=True, timed_out=True)
        audit.log_command("sudo x", PolicyTier.DENY, executed=False, blocked_reason="POLICY_DENIED")

        summary = audit.get_session_summary()

        assert summary["total_commands"] == 3
        assert summary["executed"] == 2
        assert summary["blocked"] == 1
        assert summary["timed_out"] == 1
        assert summary["tier_distribution"] == {"allow": 1, "ask": 1, "deny": 1}
