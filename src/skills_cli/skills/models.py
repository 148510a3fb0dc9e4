"""Data models for skill packages."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


class SkillMetadata(BaseModel):
    """Front-matter data from a skill's SKILL.md."""

    name: str = Field(description="Skill name (lowercase, hyphens, max 64 chars)")
    description: str = Field(description="Brief description of what the skill does")
    path: Path | None = Field(default=None, description="Path to the installed skill directory")
    license: str | None = Field(default=None, description="License name or reference")
    metadata: dict[str, Any] = Field(
        default_factory=dict, description="Arbitrary key-value pairs (author, version, etc.)"
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "description": self.description,
            "path": str(self.path) if self.path is not None else None,
            "license": self.license,
            "metadata": self.metadata,
        }
