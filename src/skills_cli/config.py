from __future__ import annotations

import json
import os
import tomllib
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from skills_cli.exception import ConfigError
from skills_cli.share import get_share_dir

SKILLS_DIR_ENV = "SKILLS_DIR"
MIRROR_DIR_ENV = "SKILLS_MIRROR_DIR"
DEFAULT_SKILLS_DIR = Path(".agents") / "skills"
DEFAULT_MANIFEST_PATH = "skills.json"


class GitHubConfig(BaseModel):
    """Endpoints used to reach GitHub-hosted skill sources."""

    api_base_url: str = Field(default="https://api.github.com", description="REST API base URL")
    raw_base_url: str = Field(
        default="https://raw.githubusercontent.com", description="Raw file content base URL"
    )


class LoggingConfig(BaseModel):
    levels: dict[str, str] = Field(
        default_factory=dict,
        description="Per-module log levels, e.g. {'skills_cli.backends': 'DEBUG'}",
    )


class Config(BaseModel):
    """Main configuration structure."""

    skills_dir: Path = Field(
        default=DEFAULT_SKILLS_DIR,
        description="Local skills root; relative paths resolve against the working directory",
    )
    manifest_path: str = Field(
        default=DEFAULT_MANIFEST_PATH, description="Well-known manifest path inside a source"
    )
    timeout: float = Field(default=30.0, gt=0, description="Per-request network timeout (s)")
    max_concurrency: int = Field(
        default=4, ge=1, le=32, description="Maximum packages fetched in parallel"
    )
    mirror_dir: Path | None = Field(
        default=None,
        description="Read sources from <mirror_dir>/<owner>/<repo> instead of GitHub",
    )
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def resolve_skills_dir(self, override: Path | None = None) -> Path:
        """Pick the skills root: explicit override, then environment, then config."""
        if override is not None:
            skills_dir = override
        elif env_dir := os.getenv(SKILLS_DIR_ENV):
            skills_dir = Path(env_dir)
        else:
            skills_dir = self.skills_dir
        skills_dir = skills_dir.expanduser()
        if not skills_dir.is_absolute():
            skills_dir = Path.cwd() / skills_dir
        return skills_dir

    def resolve_mirror_dir(self) -> Path | None:
        if env_dir := os.getenv(MIRROR_DIR_ENV):
            return Path(env_dir).expanduser()
        if self.mirror_dir is not None:
            return self.mirror_dir.expanduser()
        return None


def get_config_file() -> Path:
    """Get the configuration file path."""
    return get_share_dir() / "config.toml"


def get_default_config() -> Config:
    return Config()


def load_config(config_file: Path | None = None) -> Config:
    """
    Load configuration from a TOML or JSON file.

    Returns the default configuration when the file does not exist.

    Raises:
        ConfigError: If the file cannot be read or is invalid.
    """
    config_file = config_file or get_config_file()
    if not config_file.exists():
        logger.debug("No config file at {path}, using defaults", path=config_file)
        return get_default_config()

    logger.debug("Loading config from {path}", path=config_file)
    try:
        text = config_file.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read configuration file {config_file}: {e}") from e

    if config_file.suffix == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in configuration file {config_file}: {e}") from e
    else:
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in configuration file {config_file}: {e}") from e
    return _validate(data)


def load_config_from_string(text: str) -> Config:
    """Parse configuration text, trying JSON first and TOML second."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as json_error:
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as toml_error:
            raise ConfigError(
                f"Invalid configuration text: {json_error}; {toml_error}"
            ) from toml_error
    return _validate(data)


def _validate(data: object) -> Config:
    if not isinstance(data, dict):
        raise ConfigError("Invalid configuration: top level must be a table")
    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
