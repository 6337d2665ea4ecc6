from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, root_validator, validator

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_REPOSITORIES_PER_JOB = 50
MAX_REPOSITORIES_PER_JOB = 100

# Environment variables consulted for each setting, in order of preference.
# The INPUT_* names are how GitHub Actions passes `with:` inputs to a step.
ENVIRONMENT_KEYS: Dict[str, Tuple[str, ...]] = {
    "organization": ("INPUT_GITHUBORGANIZATION", "GITHUB_ORGANIZATION"),
    "repository": ("INPUT_GITHUBREPOSITORY", "GITHUB_REPOSITORY_NAME"),
    "repositories_per_job": ("INPUT_REPOSITORIESPERJOB", "REPOSITORIES_PER_JOB"),
    "output_path": ("MIGRATION_BACKUP_OUTPUT_PATH",),
    "api_url": ("GITHUB_API_URL",),
}
TOKEN_ENVIRONMENT_KEYS: Tuple[str, ...] = ("INPUT_APIKEY", "GITHUB_API_KEY")


class ConfigurationError(Exception):
    """Raised when the migration backup configuration is invalid."""


class AuthConfig(BaseModel):
    token: Optional[str] = Field(default=None, description="Explicit token string (discouraged).")
    token_env: Optional[str] = Field(default=None, description="Environment variable containing token.")

    @root_validator(skip_on_failure=True)
    def _require_secret(cls, values: Dict[str, Optional[str]]) -> Dict[str, Optional[str]]:  # noqa: N805
        token, token_env = values.get("token"), values.get("token_env")
        if not token and not token_env:
            raise ValueError("Either token or token_env must be provided for GitHub auth.")
        return values

    def resolved_token(self) -> Optional[str]:
        if self.token:
            return self.token
        if self.token_env:
            return os.getenv(self.token_env)
        return None


class MigrationExcludes(BaseModel):
    """Optional parts of each repository left out of the export archive."""

    attachments: bool = False
    releases: bool = False
    git_data: bool = False
    metadata: bool = False
    owner_projects: bool = False
    org_metadata_only: bool = False

    def as_request_flags(self) -> Dict[str, bool]:
        flags = {
            "exclude_attachments": self.attachments,
            "exclude_releases": self.releases,
            "exclude_git_data": self.git_data,
            "exclude_metadata": self.metadata,
            "exclude_owner_projects": self.owner_projects,
            "org_metadata_only": self.org_metadata_only,
        }
        return {key: True for key, enabled in flags.items() if enabled}


class BackupConfig(BaseModel):
    organization: str
    repository: Optional[str] = Field(default=None, description="Back up only this repository.")
    auth: AuthConfig
    repositories_per_job: int = DEFAULT_REPOSITORIES_PER_JOB
    output_path: Path = Path(".")
    api_url: str = DEFAULT_API_URL
    poll_interval: float = Field(default=30.0, description="Seconds between migration status checks.")
    max_poll_attempts: Optional[int] = Field(default=None, description="Unbounded when omitted.")
    download_retries: int = 3
    retry_delay: float = Field(default=1.0, description="Backoff unit, multiplied by the attempt number.")
    exclude: MigrationExcludes = MigrationExcludes()

    @validator("organization")
    def _require_organization(cls, value: str) -> str:  # noqa: N805
        value = value.strip()
        if not value:
            raise ValueError("organization must not be empty.")
        return value

    @validator("repository", pre=True)
    def _blank_repository(cls, value: Any) -> Any:  # noqa: N805
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @validator("repositories_per_job")
    def _validate_batch_size(cls, value: int) -> int:  # noqa: N805
        if not 1 <= value <= MAX_REPOSITORIES_PER_JOB:
            raise ValueError(f"repositories_per_job must be between 1 and {MAX_REPOSITORIES_PER_JOB}.")
        return value

    @validator("output_path")
    def _expand_output_path(cls, value: Path) -> Path:  # noqa: N805
        return value.expanduser()

    @validator("api_url")
    def _strip_api_url(cls, value: str) -> str:  # noqa: N805
        return value.rstrip("/")

    @validator("poll_interval", "retry_delay")
    def _non_negative_delay(cls, value: float) -> float:  # noqa: N805
        if value < 0:
            raise ValueError("delays must not be negative.")
        return value

    @validator("max_poll_attempts")
    def _positive_attempts(cls, value: Optional[int]) -> Optional[int]:  # noqa: N805
        if value is not None and value < 1:
            raise ValueError("max_poll_attempts must be at least 1 when set.")
        return value

    @validator("download_retries")
    def _non_negative_retries(cls, value: int) -> int:  # noqa: N805
        if value < 0:
            raise ValueError("download_retries must not be negative.")
        return value


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping.")
    return raw


def _apply_environment(raw: Dict[str, Any], environ: Mapping[str, str]) -> None:
    for field_name, keys in ENVIRONMENT_KEYS.items():
        for key in keys:
            value = environ.get(key)
            if value:
                raw[field_name] = value
                break

    for key in TOKEN_ENVIRONMENT_KEYS:
        if environ.get(key):
            raw["auth"] = {"token_env": key}
            break


def load_config(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> BackupConfig:
    """Build the configuration from a YAML file, the environment and explicit overrides.

    Later sources win: file values are replaced by environment variables, which are
    in turn replaced by any non-None entry in ``overrides``.
    """
    raw: Dict[str, Any] = _read_yaml(path) if path else {}
    _apply_environment(raw, os.environ if environ is None else environ)

    for key, value in (overrides or {}).items():
        if value is not None:
            raw[key] = value

    try:
        return BackupConfig.parse_obj(raw)
    except Exception as exc:  # noqa: BLE001
        raise ConfigurationError(str(exc)) from exc
