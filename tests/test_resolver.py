from __future__ import annotations

import pytest

from skills_cli.exception import SkillNotFound
from skills_cli.manifest import Manifest
from skills_cli.resolver import ResolvedSkill, resolve_skills, suggest_names
from skills_cli.source import Source

SOURCE = Source("acme", "skills")
MANIFEST = Manifest(
    source=SOURCE,
    entries={
        "python-style": "skills/python",
        "python-testing": "skills/testing",
        "sql-style": "skills/sql",
    },
)


def test_resolve_named_skill():
    assert resolve_skills(MANIFEST, "sql-style") == [
        ResolvedSkill(name="sql-style", path="skills/sql", source=SOURCE)
    ]


def test_resolve_all_skills_in_manifest_order():
    resolved = resolve_skills(MANIFEST)
    assert [s.name for s in resolved] == ["python-style", "python-testing", "sql-style"]
    assert all(s.source == SOURCE for s in resolved)


def test_resolve_all_from_empty_manifest():
    assert resolve_skills(Manifest(source=SOURCE)) == []


def test_missing_skill_raises_with_suggestions():
    with pytest.raises(SkillNotFound) as exc_info:
        resolve_skills(MANIFEST, "python-styel")
    assert exc_info.value.skill == "python-styel"
    assert exc_info.value.suggestions[0] == "python-style"
    assert "did you mean" in exc_info.value.message


def test_missing_skill_without_near_miss():
    with pytest.raises(SkillNotFound) as exc_info:
        resolve_skills(MANIFEST, "c")
    assert exc_info.value.suggestions == []
    assert exc_info.value.message == "Skill 'c' not found in manifest"


def test_missing_skill_never_returns_empty():
    with pytest.raises(SkillNotFound):
        resolve_skills(Manifest(source=SOURCE), "anything")


def test_lookup_is_exact():
    with pytest.raises(SkillNotFound):
        resolve_skills(MANIFEST, "SQL-STYLE")


def test_suggest_names_substring_fallback():
    assert suggest_names("sql", MANIFEST) == ["sql-style"]
