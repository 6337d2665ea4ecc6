from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


def filesystem_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and ':' replaced by '-'."""
    moment = moment or datetime.now(timezone.utc)
    stamp = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z").replace(":", "-")


@dataclass
class BackupDirectory:
    """Directory holding every archive produced by one backup run."""

    org: str
    path: Path

    def archive_path(self, index: int, started_at: Optional[datetime] = None) -> Path:
        return self.path / f"github_{self.org}_{index}_{filesystem_timestamp(started_at)}.tar.gz"


def create_backup_directory(base_path: Path, org: str, started_at: Optional[datetime] = None) -> BackupDirectory:
    path = base_path / f"github_{org}_{filesystem_timestamp(started_at)}"
    path.mkdir(parents=True, exist_ok=False)
    return BackupDirectory(org=org, path=path)
