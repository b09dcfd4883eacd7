"""Configuration management for ciwarden."""

import tomllib
from datetime import timedelta
from pathlib import Path
from typing import Literal

import tomli_w
from pydantic import BaseModel, Field

from .constants import (
    CONFIG_DIR,
    CONFIG_FILE,
    DEFAULT_WAIT_TIMEOUT,
    FIX_COMMAND_TIMEOUT,
    MAX_OUTPUT_BYTES,
    VERIFY_TIMEOUT,
)


class PollStrategy(BaseModel):
    """Interval schedule between status reads (seconds)."""

    type: Literal["fixed", "exponential"] = "exponential"
    initial_interval: float = Field(default=5.0, gt=0)
    max_interval: float = Field(default=30.0, gt=0)
    multiplier: float = Field(default=1.5, ge=1.0)


class RetryOptions(BaseModel):
    """Retry budget for failures that look flaky."""

    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=5.0, ge=0)


class PollConfig(BaseModel):
    """Configuration for waiting on CI checks."""

    timeout: float = Field(default=DEFAULT_WAIT_TIMEOUT, gt=0, description="Seconds")
    strategy: PollStrategy = Field(default_factory=PollStrategy)
    fail_fast: bool = True
    retry_flaky: bool = False
    retry: RetryOptions = Field(default_factory=RetryOptions)


class RemediationConfig(BaseModel):
    """Configuration for automated fixes."""

    max_attempts: int = Field(default=2, ge=1, description="Real attempts per subject and type")
    max_changed_lines: int = Field(default=1000, ge=1, description="Guardrail on diff size")
    require_verification: bool = Field(
        default=True, description="Run the verifier before publishing a fix"
    )
    verification_timeout: float = Field(default=VERIFY_TIMEOUT, gt=0)
    command_timeout: float = Field(default=FIX_COMMAND_TIMEOUT, gt=0)
    max_output_bytes: int = Field(default=MAX_OUTPUT_BYTES, gt=0)
    enable_dry_run: bool = Field(default=False, description="Dry-run when not specified")
    remote: str = "origin"
    draft: bool = False
    max_tracked_subjects: int = Field(default=1024, ge=1)
    attempt_ttl_hours: float = Field(default=24.0, gt=0)

    @property
    def attempt_ttl(self) -> timedelta:
        return timedelta(hours=self.attempt_ttl_hours)


class ChecksConfig(BaseModel):
    """Local check commands used to verify a fix before publishing."""

    lint: str | None = Field(default=None, description="Lint command (e.g., 'ruff check .')")
    test: str | None = Field(default=None, description="Test command (e.g., 'pytest tests/')")
    typecheck: str | None = Field(default=None, description="Typecheck command (e.g., 'pyright')")
    order: list[str] = Field(
        default=["lint", "typecheck", "test"], description="Execution order for categories"
    )

    def get_categories(self) -> dict[str, str]:
        """Get enabled category commands as {name: command} dict."""
        categories = {}
        for name in self.order:
            cmd = getattr(self, name, None)
            if cmd:
                categories[name] = cmd
        return categories


class GitHubConfig(BaseModel):
    """Configuration for the gh CLI integration."""

    exec: str = "gh"
    repo: str | None = Field(default=None, description="owner/name; defaults to current repo")


class CiwardenConfig(BaseModel):
    """Root configuration for ciwarden."""

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    poll: PollConfig = Field(default_factory=PollConfig)
    remediation: RemediationConfig = Field(default_factory=RemediationConfig)
    verify: ChecksConfig = Field(default_factory=ChecksConfig)


def get_config_dir(repo_root: Path) -> Path:
    """Get the .ciwarden directory for a repository."""
    return repo_root / CONFIG_DIR


def load_config(config_dir: Path) -> CiwardenConfig:
    """Load config from .ciwarden/config.toml.

    Args:
        config_dir: Path to .ciwarden directory

    Returns:
        Loaded configuration, or defaults if config.toml doesn't exist
    """
    config_path = config_dir / CONFIG_FILE
    if not config_path.exists():
        return CiwardenConfig()
    with open(config_path, "rb") as f:
        data = tomllib.load(f)
    return CiwardenConfig.model_validate(data)


def write_config_template(config_dir: Path) -> Path:
    """Write default config.toml template.

    Args:
        config_dir: Path to .ciwarden directory

    Returns:
        Path to the written config file
    """
    config_dir.mkdir(parents=True, exist_ok=True)
    config_path = config_dir / CONFIG_FILE
    template = {
        "github": {"exec": "gh"},
        "poll": {
            "timeout": DEFAULT_WAIT_TIMEOUT,
            "fail_fast": True,
            "retry_flaky": False,
            "strategy": {
                "type": "exponential",
                "initial_interval": 5.0,
                "max_interval": 30.0,
                "multiplier": 1.5,
            },
            "retry": {"max_retries": 3, "retry_delay": 5.0},
        },
        "remediation": {
            "max_attempts": 2,
            "max_changed_lines": 1000,
            "require_verification": True,
            "verification_timeout": VERIFY_TIMEOUT,
            "enable_dry_run": False,
            "remote": "origin",
            "draft": False,
        },
        # Commands run after a fix and before the fix branch is pushed
        "verify": {
            "lint": "ruff check .",
            "test": "pytest tests/ -q",
            "order": ["lint", "typecheck", "test"],
        },
    }
    with open(config_path, "wb") as f:
        tomli_w.dump(template, f)
    return config_path
