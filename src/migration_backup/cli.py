from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from dotenv import find_dotenv, load_dotenv

from .config import BackupConfig, ConfigurationError, load_config
from .github.api import ProviderError
from .logger import configure_logging
from .orchestrator import BackupOrchestrator
from .outputs import report_run

EXIT_SUCCESS = 0
EXIT_BATCH_FAILURES = 1
EXIT_BOOTSTRAP_FAILURE = 2


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Back up a GitHub organization through the migrations API.",
    )
    parser.add_argument(
        "--config",
        default=os.getenv("MIGRATION_BACKUP_CONFIG"),
        help="Optional path to a configuration YAML file.",
    )
    parser.add_argument("--organization", help="GitHub organization to back up.")
    parser.add_argument("--repository", help="Back up this single repository instead of the whole organization.")
    parser.add_argument(
        "--repositories-per-job",
        type=int,
        help="Number of repositories to include in each migration (default 50).",
    )
    parser.add_argument("--output", type=Path, help="Directory in which the backup directory is created.")
    parser.add_argument(
        "--token-env",
        help="Environment variable holding the GitHub token (default INPUT_APIKEY or GITHUB_API_KEY).",
    )
    parser.add_argument(
        "--max-poll-attempts",
        type=int,
        help="Give up on a migration after this many status checks. Unbounded when omitted.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Log level (default INFO).",
    )
    return parser.parse_args(argv)


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {
        "organization": args.organization,
        "repository": args.repository,
        "repositories_per_job": args.repositories_per_job,
        "output_path": args.output,
        "max_poll_attempts": args.max_poll_attempts,
    }
    if args.token_env:
        overrides["auth"] = {"token_env": args.token_env}
    return overrides


def load_configuration(args: argparse.Namespace) -> BackupConfig:
    config_path = Path(args.config).expanduser() if args.config else None
    return load_config(config_path, overrides=_overrides(args))


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv(find_dotenv(usecwd=True))
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = load_configuration(args)
    except ConfigurationError as exc:
        logging.error("Configuration error: %s", exc)
        return EXIT_BOOTSTRAP_FAILURE

    try:
        orchestrator = BackupOrchestrator(config)
    except ValueError as exc:
        logging.error("Authentication error: %s", exc)
        return EXIT_BOOTSTRAP_FAILURE

    try:
        run = orchestrator.run()
    except ProviderError as exc:
        logging.error("Could not list repositories for %s: %s", config.organization, exc)
        return EXIT_BOOTSTRAP_FAILURE
    except OSError as exc:
        logging.error("Could not create backup directory: %s", exc)
        return EXIT_BOOTSTRAP_FAILURE

    return report_run(run)


if __name__ == "__main__":
    sys.exit(main())
