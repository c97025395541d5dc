"""
Audit Logging Module.

Appends one JSON line per mutating provider call so operators can see
afterwards what a provisioning run changed. Nothing reads the trail back
to decide behavior.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from ..models import AuditRecord, ResultStatus

logger = logging.getLogger(__name__)


class AuditLogger:
    """
    Append-only logger for provisioning actions.

    Records go to daily ``audit_<date>.jsonl`` files in `audit_dir`.
    """

    def __init__(self, audit_dir: Union[str, Path] = "audit_logs"):
        """
        Initialize the audit logger.

        Args:
            audit_dir: Directory to store audit logs
        """
        self.audit_dir = Path(audit_dir)
        self.audit_dir.mkdir(parents=True, exist_ok=True)

    def log_event(self, record: AuditRecord) -> str:
        """
        Log an audit event.

        Args:
            record: The audit record to log

        Returns:
            The record ID
        """
        date_str = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        log_file = self.audit_dir / f"audit_{date_str}.jsonl"

        try:
            with open(log_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(record.model_dump(mode="json")) + "\n")
        except OSError as e:
            logger.error(f"Failed to log audit event: {e}")
            raise

        logger.debug(f"Logged audit event {record.id} ({record.action} {record.target or record.resource})")
        return record.id

    def record(
        self,
        action: str,
        resource: str,
        status: ResultStatus,
        target: Optional[str] = None,
        error: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> str:
        """Build and log an AuditRecord in one call."""
        return self.log_event(
            AuditRecord(
                id=str(uuid.uuid4()),
                run_id=run_id,
                action=action,
                resource=resource,
                target=target,
                status=status,
                error_message=error,
            )
        )

    def get_events(
        self,
        run_id: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100,
    ) -> List[AuditRecord]:
        """
        Retrieve audit events, most recent first.

        Args:
            run_id: Filter by run ID
            action: Filter by provider operation
            limit: Maximum number of records to return

        Returns:
            List of matching AuditRecords
        """
        results = []

        log_files = sorted(self.audit_dir.glob("audit_*.jsonl"), reverse=True)

        for log_file in log_files:
            if len(results) >= limit:
                break

            with open(log_file, encoding="utf-8") as f:
                lines = f.readlines()

            for line in reversed(lines):
                if len(results) >= limit:
                    break
                if not line.strip():
                    continue

                try:
                    record = AuditRecord(**json.loads(line))
                except ValueError as e:
                    logger.warning(f"Failed to parse audit record in {log_file.name}: {e}")
                    continue

                if run_id and record.run_id != run_id:
                    continue
                if action and record.action != action:
                    continue

                results.append(record)

        return results
