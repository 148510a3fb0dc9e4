"""YAML frontmatter parsing for SKILL.md files."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, cast

import yaml

from skills_cli.exception import SkillsError

from .models import SkillMetadata

SKILL_MD_NAMES = ("SKILL.md", "skill.md")

_SKILL_NAME_RE = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")


class SkillParseError(SkillsError, ValueError):
    """Raised when SKILL.md cannot be parsed."""

    pass


class SkillValidationError(SkillsError, ValueError):
    """Raised when SKILL.md fails validation."""

    pass


def find_skill_md(skill_dir: Path) -> Path | None:
    """Find the SKILL.md file in a skill directory.

    Prefers SKILL.md (uppercase) but accepts skill.md (lowercase).
    """
    for name in SKILL_MD_NAMES:
        path = skill_dir / name
        if path.is_file():
            return path
    return None


def parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Parse YAML frontmatter from SKILL.md content.

    Args:
        content: Raw content of SKILL.md file

    Returns:
        Tuple of (metadata dict, markdown body)

    Raises:
        SkillParseError: If frontmatter is missing or invalid
    """
    content = content.removeprefix("\ufeff")
    if not content.startswith("---"):
        raise SkillParseError("SKILL.md must start with YAML frontmatter (---)")

    parts = content.split("---", 2)
    if len(parts) < 3:
        raise SkillParseError("SKILL.md frontmatter not properly closed with ---")

    frontmatter_str = parts[1]
    body = parts[2].strip()

    try:
        raw_metadata: Any = yaml.safe_load(frontmatter_str)
    except yaml.YAMLError as e:
        raise SkillParseError(f"Invalid YAML in frontmatter: {e}") from e

    if not isinstance(raw_metadata, dict):
        raise SkillParseError("SKILL.md frontmatter must be a YAML mapping")

    # raw_metadata is dict[Any, Any] from yaml
    metadata = cast(dict[str, Any], raw_metadata)
    return metadata, body


def parse_skill_metadata(content: str, *, path: Path | None = None) -> SkillMetadata:
    """Validate SKILL.md content and build its metadata.

    Raises:
        SkillParseError: If the frontmatter is missing or has invalid YAML
        SkillValidationError: If required fields are missing or invalid
    """
    metadata, _ = parse_frontmatter(content)

    if "name" not in metadata:
        raise SkillValidationError("Missing required field in frontmatter: name")
    if "description" not in metadata:
        raise SkillValidationError("Missing required field in frontmatter: description")

    name = metadata["name"]
    if not isinstance(name, str) or not is_valid_skill_name(name):
        raise SkillValidationError(
            f"Invalid skill name '{name}': must be lowercase letters, "
            "numbers, and hyphens, 1-64 characters, not starting/ending with hyphen"
        )

    description = metadata["description"]
    if not isinstance(description, str):
        raise SkillValidationError("Description must be a string")
    if len(description) > 1024:
        raise SkillValidationError("Description exceeds 1024 character limit")

    license_ = metadata.get("license")
    extra = metadata.get("metadata") or {}
    if not isinstance(extra, dict):
        raise SkillValidationError("Metadata must be a mapping")

    return SkillMetadata(
        name=name,
        description=description,
        path=path,
        license=str(license_) if license_ is not None else None,
        metadata=cast(dict[str, Any], extra),
    )


def read_skill_metadata(skill_dir: Path) -> SkillMetadata:
    """Read skill metadata from the SKILL.md in an installed skill directory."""
    skill_md = find_skill_md(skill_dir)
    if skill_md is None:
        raise SkillParseError(f"SKILL.md not found in {skill_dir}")
    return parse_skill_metadata(skill_md.read_text(encoding="utf-8"), path=skill_dir)


def is_valid_skill_name(name: str) -> bool:
    """Validate skill name format.

    Valid names:
    - 1-64 characters
    - Lowercase letters, numbers, and hyphens only
    - Cannot start or end with hyphen
    """
    if len(name) < 1 or len(name) > 64:
        return False
    return bool(_SKILL_NAME_RE.match(name))
