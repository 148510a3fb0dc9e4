"""Skill package format: SKILL.md front-matter parsing and checks."""

from __future__ import annotations

from skills_cli.skills.models import SkillMetadata
from skills_cli.skills.parser import (
    SKILL_MD_NAMES,
    SkillParseError,
    SkillValidationError,
    find_skill_md,
    is_valid_skill_name,
    parse_frontmatter,
    parse_skill_metadata,
    read_skill_metadata,
)
from skills_cli.skills.validator import validate_skill_security

__all__ = [
    # Models
    "SkillMetadata",
    # Parser
    "SKILL_MD_NAMES",
    "SkillParseError",
    "SkillValidationError",
    "find_skill_md",
    "is_valid_skill_name",
    "parse_frontmatter",
    "parse_skill_metadata",
    "read_skill_metadata",
    # Validator
    "validate_skill_security",
]
