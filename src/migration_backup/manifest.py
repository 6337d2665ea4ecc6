from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .coordinator import BackupRun, BatchOutcome

MANIFEST_FILENAME = "manifest.json"


@dataclass
class BatchManifest:
    index: int
    repositories: List[str]
    archive_path: str = ""
    backup_status: str = "success"
    error: str = ""
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def from_outcome(cls, outcome: BatchOutcome) -> "BatchManifest":
        return cls(
            index=outcome.index,
            repositories=list(outcome.repositories),
            archive_path=str(outcome.archive_path) if outcome.success else "",
            backup_status="success" if outcome.success else "failed",
            error=outcome.error,
            warnings=list(outcome.warnings),
        )


@dataclass
class Manifest:
    organization: str
    started_at: datetime
    completed_at: Optional[datetime]
    batches: List[BatchManifest]
    failures: int = 0
    schema_version: str = "1.0.0"

    @classmethod
    def from_run(cls, run: BackupRun) -> "Manifest":
        return cls(
            organization=run.org,
            started_at=run.started_at,
            completed_at=run.completed_at,
            batches=[BatchManifest.from_outcome(outcome) for outcome in run.outcomes],
            failures=run.failures,
        )

    def to_dict(self) -> Dict:
        return {
            "schema_version": self.schema_version,
            "organization": self.organization,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "batches": [dataclasses.asdict(batch) for batch in self.batches],
            "failures": self.failures,
        }

    def write(self, path: Path) -> None:
        with path.open("w", encoding="utf-8") as fh:
            json.dump(self.to_dict(), fh, indent=2)
