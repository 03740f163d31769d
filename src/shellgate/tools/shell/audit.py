"""Audit trail for gated shell commands.

- One JSON object per request, blocked or executed
- JSONL files with daily rotation
- Query interface for searching history
"""

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterator

from shellgate.constants import AUDIT_PREVIEW_LENGTH
from shellgate.logging import Loggers
from shellgate.tools.shell.models import PolicyTier

logger = Loggers.audit()


@dataclass
class AuditEntry:
    """A single audit log entry for a shell command.

    Attributes:
        timestamp: When the command was attempted (ISO format).
        session_id: Session the command belongs to.
        call_id: Tool call identifier.
        command_original: The command as received.
        command_normalized: Command after sanitization (if different).
        tier: Strongest tier among the command's invocations.
        patterns: Approval patterns derived for the command.
        external_paths: Directories outside the project touched.
        warnings: Obfuscation warnings.
        executed: Whether a process was spawned.
        exit_code: Exit code if the process reported one.
        duration_ms: Execution duration in milliseconds.
        timed_out: Whether the run hit its timeout.
        aborted: Whether the run was cancelled.
        truncated: Whether output was truncated.
        output_preview: First N chars of the output.
        blocked_reason: Error code if the command was not executed.
        working_dir: Directory the command ran in.
    """

    timestamp: str
    session_id: str
    command_original: str
    tier: str
    executed: bool

    call_id: str | None = None
    command_normalized: str | None = None
    patterns: list[str] = field(default_factory=list)
    external_paths: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    exit_code: int | None = None
    duration_ms: int | None = None
    timed_out: bool = False
    aborted: bool = False
    truncated: bool = False
    output_preview: str = ""
    blocked_reason: str | None = None
    working_dir: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization (empty fields dropped)."""
        return {
            k: v
            for k, v in asdict(self).items()
            if v is not None and v != [] and v != "" and v is not False or k == "executed"
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditEntry":
        """Create from dictionary."""
        return cls(
            timestamp=data.get("timestamp", ""),
            session_id=data.get("session_id", ""),
            call_id=data.get("call_id"),
            command_original=data.get("command_original", ""),
            command_normalized=data.get("command_normalized"),
            tier=data.get("tier", PolicyTier.ASK.value),
            patterns=data.get("patterns", []),
            external_paths=data.get("external_paths", []),
            warnings=data.get("warnings", []),
            executed=data.get("executed", False),
            exit_code=data.get("exit_code"),
            duration_ms=data.get("duration_ms"),
            timed_out=data.get("timed_out", False),
            aborted=data.get("aborted", False),
            truncated=data.get("truncated", False),
            output_preview=data.get("output_preview", ""),
            blocked_reason=data.get("blocked_reason"),
            working_dir=data.get("working_dir"),
        )


@dataclass
class AuditConfig:
    """Configuration for audit logging.

    Attributes:
        enabled: Whether audit logging is enabled.
        log_dir: Directory for audit logs.
        retention_days: How long to keep logs.
        max_preview_length: Maximum length for output previews.
    """

    enabled: bool = True
    log_dir: str = "~/.shellgate/audit"
    retention_days: int = 30
    max_preview_length: int = AUDIT_PREVIEW_LENGTH

    def get_log_dir(self) -> Path:
        """Get resolved log directory path."""
        return Path(self.log_dir).expanduser()


class AuditLogger:
    """Writes audit entries in JSONL format with daily rotation."""

    def __init__(
        self,
        config: AuditConfig | None = None,
        session_id: str | None = None,
    ):
        """Initialize the audit logger.

        Args:
            config: Audit configuration.
            session_id: Default session for entries that don't carry one.
        """
        self.config = config or AuditConfig()
        self.session_id = session_id or str(uuid.uuid4())[:8]
        self._ensure_log_dir()

    def _ensure_log_dir(self) -> None:
        if not self.config.enabled:
            return
        self.config.get_log_dir().mkdir(parents=True, exist_ok=True)

    def _get_log_file(self, date: datetime | None = None) -> Path:
        """Get the log file path for a given date."""
        if date is None:
            date = datetime.now()
        filename = f"shell_audit_{date.strftime('%Y-%m-%d')}.jsonl"
        return self.config.get_log_dir() / filename

    def log(self, entry: AuditEntry) -> None:
        """Append an entry to today's log.

        Write failures are logged and never interrupt command execution.
        """
        if not self.config.enabled:
            return

        log_file = self._get_log_file()
        try:
            with open(log_file, "a") as f:
                f.write(json.dumps(entry.to_dict()) + "\n")
        except OSError as e:
            logger.warning("audit_write_failed", path=str(log_file), error=str(e))

    def log_command(
        self,
        command: str,
        tier: PolicyTier,
        executed: bool,
        session_id: str | None = None,
        call_id: str | None = None,
        normalized_command: str | None = None,
        patterns: list[str] | None = None,
        external_paths: list[str] | None = None,
        warnings: list[str] | None = None,
        exit_code: int | None = None,
        duration_ms: int | None = None,
        timed_out: bool = False,
        aborted: bool = False,
        truncated: bool = False,
        output: str | None = None,
        blocked_reason: str | None = None,
        working_dir: str | Path | None = None,
    ) -> AuditEntry:
        """Create and write an AuditEntry for one request.

        Returns:
            The created AuditEntry.
        """
        entry = AuditEntry(
            timestamp=datetime.now().isoformat(),
            session_id=session_id or self.session_id,
            call_id=call_id,
            command_original=command,
            command_normalized=normalized_command if normalized_command != command else None,
            tier=tier.value,
            patterns=patterns or [],
            external_paths=external_paths or [],
            warnings=warnings or [],
            executed=executed,
            exit_code=exit_code,
            duration_ms=duration_ms,
            timed_out=timed_out,
            aborted=aborted,
            truncated=truncated,
            output_preview=output[: self.config.max_preview_length] if output else "",
            blocked_reason=blocked_reason,
            working_dir=str(working_dir) if working_dir else None,
        )

        self.log(entry)
        return entry

    def query(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        command_pattern: str | None = None,
        tier: PolicyTier | None = None,
        executed_only: bool = False,
        blocked_only: bool = False,
        session_id: str | None = None,
        limit: int = 100,
    ) -> Iterator[AuditEntry]:
        """Query audit log entries.

        Args:
            start_date: Start of date range (default: 7 days before end).
            end_date: End of date range (default: now).
            command_pattern: Substring to match in commands.
            tier: Filter by tier.
            executed_only: Only return executed commands.
            blocked_only: Only return blocked commands.
            session_id: Filter by session ID.
            limit: Maximum entries to return.

        Yields:
            Matching AuditEntry objects, oldest first.
        """
        if not self.config.enabled:
            return

        log_dir = self.config.get_log_dir()
        if not log_dir.exists():
            return

        if end_date is None:
            end_date = datetime.now()
        if start_date is None:
            start_date = end_date - timedelta(days=7)

        current = start_date
        count = 0

        while current.date() <= end_date.date() and count < limit:
            log_file = self._get_log_file(current)
            current += timedelta(days=1)
            if not log_file.exists():
                continue

            with open(log_file) as f:
                for line in f:
                    if count >= limit:
                        return
                    try:
                        entry = AuditEntry.from_dict(json.loads(line))
                    except json.JSONDecodeError:
                        logger.debug("audit_line_skipped", path=str(log_file))
                        continue

                    if command_pattern and command_pattern not in entry.command_original:
                        continue
                    if tier and entry.tier != tier.value:
                        continue
                    if executed_only and not entry.executed:
                        continue
                    if blocked_only and entry.blocked_reason is None:
                        continue
                    if session_id and entry.session_id != session_id:
                        continue

                    yield entry
                    count += 1

    def cleanup_old_logs(self) -> int:
        """Remove logs older than the retention period.

        Returns:
            Number of files removed.
        """
        if not self.config.enabled:
            return 0

        log_dir = self.config.get_log_dir()
        if not log_dir.exists():
            return 0

        cutoff = datetime.now() - timedelta(days=self.config.retention_days)
        removed = 0

        for log_file in log_dir.glob("shell_audit_*.jsonl"):
            date_str = log_file.stem.replace("shell_audit_", "")
            try:
                file_date = datetime.strptime(date_str, "%Y-%m-%d")
            except ValueError:
                continue  # Not one of ours
            if file_date < cutoff:
                log_file.unlink()
                removed += 1

        return removed

    def get_session_summary(self, session_id: str | None = None) -> dict[str, Any]:
        """Summary statistics for a session."""
        session_id = session_id or self.session_id
        entries = list(self.query(session_id=session_id, limit=10000))

        if not entries:
            return {"session_id": session_id, "total_commands": 0}

        tier_counts: dict[str, int] = {}
        for entry in entries:
            tier_counts[entry.tier] = tier_counts.get(entry.tier, 0) + 1

        return {
            "session_id": session_id,
            "total_commands": len(entries),
            "executed": sum(1 for e in entries if e.executed),
            "blocked": sum(1 for e in entries if e.blocked_reason),
            "timed_out": sum(1 for e in entries if e.timed_out),
            "tier_distribution": tier_counts,
            "first_command": entries[0].timestamp,
            "last_command": entries[-1].timestamp,
        }
