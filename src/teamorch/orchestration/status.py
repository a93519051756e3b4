"""On-disk status snapshot, report, and agent log archive"""
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def file_timestamp(moment: datetime | None = None) -> str:
    """ISO timestamp usable in a file name (':' and '.' become '-')."""
    stamp = (moment or datetime.now()).isoformat()
    return stamp.replace(":", "-").replace(".", "-")


class StatusStore:
    """Files under the orchestration state directory"""

    def __init__(self, state_dir: Path):
        self.state_dir = Path(state_dir)
        self.status_file = self.state_dir / "status.json"
        self.logs_dir = self.state_dir / "logs"
        self.reports_dir = self.state_dir / "reports"

    def save_status(self, status: dict[str, Any]) -> Path:
        """Write status.json"""
        self.state_dir.mkdir(parents=True, exist_ok=True)
        with open(self.status_file, "w") as f:
            json.dump(status, f, indent=2)
        return self.status_file

    def load_status(self) -> dict[str, Any] | None:
        """Read status.json, None if no run has saved one"""
        if not self.status_file.exists():
            return None
        with open(self.status_file, "r") as f:
            return json.load(f)

    def archive_agent_log(self, agent_id: str, content: str) -> Path:
        """Save captured pane output as logs/<agent>_<timestamp>.log"""
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        path = self.logs_dir / f"{agent_id}_{file_timestamp()}.log"
        path.write_text(content)
        return path

    def save_report(self, orchestration_id: str, content: str) -> Path:
        """Write reports/final-report-<id>.md"""
        self.reports_dir.mkdir(parents=True, exist_ok=True)
        path = self.reports_dir / f"final-report-{orchestration_id}.md"
        path.write_text(content)
        logger.info("Final report saved to %s", path)
        return path

    def list_agent_logs(self) -> list[Path]:
        if not self.logs_dir.exists():
            return []
        return sorted(self.logs_dir.glob("*.log"))
