"""Decide which manifest entries a request installs."""

from __future__ import annotations

import difflib
from dataclasses import dataclass

from skills_cli.exception import SkillNotFound
from skills_cli.manifest import Manifest
from skills_cli.source import Source

MAX_SUGGESTIONS = 3


@dataclass(frozen=True)
class ResolvedSkill:
    name: str
    path: str
    source: Source


def resolve_skills(manifest: Manifest, name: str | None = None) -> list[ResolvedSkill]:
    """
    Resolve a request against a manifest.

    With a name, returns exactly that entry; without one, every entry in
    manifest order.

    Raises:
        SkillNotFound: If `name` is not a manifest key.
    """
    if name is None:
        return [
            ResolvedSkill(name=key, path=path, source=manifest.source)
            for key, path in manifest.items()
        ]

    if name not in manifest:
        raise SkillNotFound(name, suggest_names(name, manifest))
    return [ResolvedSkill(name=name, path=manifest[name], source=manifest.source)]


def suggest_names(name: str, manifest: Manifest) -> list[str]:
    """Best-effort near misses for a name that is not in the manifest."""
    candidates = list(manifest)
    suggestions = difflib.get_close_matches(name, candidates, n=MAX_SUGGESTIONS, cutoff=0.6)
    if not suggestions:
        lowered = name.casefold()
        suggestions = [c for c in candidates if lowered in c or c in lowered][:MAX_SUGGESTIONS]
    return suggestions
