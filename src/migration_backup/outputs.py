from __future__ import annotations

import json
import logging
import os
import uuid
from pathlib import Path
from typing import Mapping, Optional

from .coordinator import BackupRun

LOG = logging.getLogger(__name__)


def set_output(name: str, value: str, environ: Optional[Mapping[str, str]] = None) -> None:
    """Append a step output to the file GitHub Actions names in ``$GITHUB_OUTPUT``."""
    environ = os.environ if environ is None else environ
    LOG.info("Output %s=%s", name, value)
    output_file = environ.get("GITHUB_OUTPUT")
    if not output_file:
        return

    delimiter = f"ghadelimiter_{uuid.uuid4()}"
    with Path(output_file).open("a", encoding="utf-8") as fh:
        fh.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")


def report_run(run: BackupRun, environ: Optional[Mapping[str, str]] = None) -> int:
    set_output("backupFiles", json.dumps(run.backup_files), environ)
    set_output("backupDirectory", str(run.directory), environ)

    if run.failures:
        message = f"{run.failures} backup jobs failed!"
        LOG.error(message)
        print(f"::error::{message}", flush=True)
        return 1

    LOG.info("All backups completed!")
    return 0
