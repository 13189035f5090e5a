from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from gitship.engine.retry import PRESET_POLICIES, Backoff, RetryPolicy
from gitship.engine.ship import ShipOptions
from gitship.models.context import WorkflowContext
from gitship.workspace.access import RepositoryAccess

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "gitship.yaml"
DEFAULT_BASE_BRANCHES = ("main", "master")


class RetryConfig(BaseModel):
    preset: str = "standard"
    max_attempts: int | None = Field(default=None, ge=1)
    base_delay: float | None = Field(default=None, ge=0)
    backoff: Backoff | None = None

    def to_policy(self) -> RetryPolicy:
        if self.preset not in PRESET_POLICIES:
            raise ValueError(
                f"Unknown retry preset '{self.preset}'. Choose from: {', '.join(PRESET_POLICIES)}"
            )
        overrides = {
            key: value
            for key, value in (
                ("max_attempts", self.max_attempts),
                ("base_delay", self.base_delay),
                ("backoff", self.backoff),
            )
            if value is not None
        }
        return PRESET_POLICIES[self.preset].model_copy(update=overrides)


class GitshipConfig(BaseModel):
    remote: str = "origin"
    # empty means detect from the repository
    base_branch: str = ""
    retry: RetryConfig = RetryConfig()
    ship: ShipOptions = ShipOptions()
    config_dir: Path | None = None


def _find_config_file(start: Path | None = None) -> Path | None:
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


def load_config(start: Path | None = None) -> GitshipConfig:
    config_path = _find_config_file(start)

    if config_path is not None:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        config = GitshipConfig.model_validate(raw)
        config.config_dir = config_path.parent
        logger.debug("Loaded config from %s", config_path)
    else:
        config = GitshipConfig()

    remote_env = os.environ.get("GITSHIP_REMOTE")
    if remote_env:
        config.remote = remote_env

    base_env = os.environ.get("GITSHIP_BASE_BRANCH")
    if base_env:
        config.base_branch = base_env

    attempts_env = os.environ.get("GITSHIP_MAX_ATTEMPTS")
    if attempts_env:
        config.retry.max_attempts = _env_number("GITSHIP_MAX_ATTEMPTS", attempts_env, int, minimum=1)

    delay_env = os.environ.get("GITSHIP_RETRY_DELAY")
    if delay_env:
        config.retry.base_delay = _env_number("GITSHIP_RETRY_DELAY", delay_env, float, minimum=0)

    return config


def _env_number(name: str, raw: str, kind: type[int] | type[float], *, minimum: float) -> int | float:
    try:
        value = kind(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be at least {minimum}, got {raw!r}")
    return value


def detect_base_branch(access: RepositoryAccess, remote: str) -> str:
    """Pick the base branch: local main/master first, then the remote's."""
    for name in DEFAULT_BASE_BRANCHES:
        if access.ref_exists(f"refs/heads/{name}"):
            return name
    for name in DEFAULT_BASE_BRANCHES:
        if access.ref_exists(f"refs/remotes/{remote}/{name}"):
            return name
    return DEFAULT_BASE_BRANCHES[0]


def build_context(
    config: GitshipConfig,
    *,
    access: RepositoryAccess | None = None,
    dry_run: bool = False,
    auto_confirm: bool = False,
    verbose: bool = False,
) -> WorkflowContext:
    base_branch = config.base_branch
    if not base_branch:
        base_branch = detect_base_branch(access, config.remote) if access is not None else DEFAULT_BASE_BRANCHES[0]
        logger.debug("Using base branch %s", base_branch)
    return WorkflowContext(
        dry_run=dry_run,
        auto_confirm=auto_confirm,
        verbose=verbose,
        retry_policy=config.retry.to_policy(),
        remote_name=config.remote,
        base_branch=base_branch,
    )
