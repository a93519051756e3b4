"""Append-only log of non-fatal orchestration errors"""
import json
import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from teamorch.orchestration.models import ErrorType, Severity

logger = logging.getLogger(__name__)


@dataclass
class ErrorRecord:
    """Something that went wrong during a run without stopping it"""
    type: ErrorType
    message: str
    severity: Severity = "error"
    agent_id: str | None = None
    recovery: str | None = None
    requires_intervention: bool = False
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization"""
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ErrorRecord":
        """Load from dict"""
        data = dict(data)
        data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        return cls(**data)


class ErrorLog:
    """Keeps error records in memory and mirrors them to errors.jsonl"""

    def __init__(self, log_dir: Path | None = None):
        self._records: list[ErrorRecord] = []
        self.errors_file: Path | None = None
        if log_dir is not None:
            self.errors_file = Path(log_dir) / "errors.jsonl"

    def record(self, record: ErrorRecord) -> ErrorRecord:
        """Append a record and persist it."""
        self._records.append(record)

        log = logger.warning if record.severity == "warning" else logger.error
        log("[%s] %s: %s", record.type, record.agent_id or "orchestrator", record.message)

        if self.errors_file is not None:
            try:
                self.errors_file.parent.mkdir(parents=True, exist_ok=True)
                with open(self.errors_file, "a") as f:
                    json.dump(record.to_dict(), f)
                    f.write("\n")
            except OSError as e:
                logger.error("Could not persist error record: %s", e)

        return record

    @property
    def records(self) -> list[ErrorRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def count(self, type: ErrorType | None = None, severity: Severity | None = None) -> int:
        """Count records, optionally filtered by type and severity."""
        return sum(
            1
            for r in self._records
            if (type is None or r.type == type) and (severity is None or r.severity == severity)
        )

    def stats(self) -> dict[str, Any]:
        """Get aggregated error statistics"""
        by_type: dict[str, int] = defaultdict(int)
        by_severity: dict[str, int] = defaultdict(int)
        for r in self._records:
            by_type[r.type] += 1
            by_severity[r.severity] += 1

        return {
            "total_errors": len(self._records),
            "by_type": dict(by_type),
            "by_severity": dict(by_severity),
            "requiring_intervention": sum(1 for r in self._records if r.requires_intervention),
        }

    def recent(self, limit: int = 10) -> list[ErrorRecord]:
        """Most recent records, newest first"""
        return self._records[-limit:][::-1]

    def by_agent(self, agent_id: str) -> list[ErrorRecord]:
        return [r for r in self._records if r.agent_id == agent_id]

    @staticmethod
    def load(errors_file: Path) -> list[ErrorRecord]:
        """Read records persisted by a previous run."""
        if not errors_file.exists():
            return []

        records = []
        with open(errors_file, "r") as f:
            for line in f:
                if not line.strip():
                    continue
                records.append(ErrorRecord.from_dict(json.loads(line)))
        return records
