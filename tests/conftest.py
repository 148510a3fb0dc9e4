from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from skills_cli.share import _resolve_share_dir

SkillTree = dict[str, str | bytes]


def skill_md(name: str, description: str = "A test skill", body: str = "Do the thing.") -> str:
    return f"---\nname: {name}\ndescription: {description}\n---\n# {name}\n\n{body}\n"


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SKILLS_CLI_SHARE_DIR", str(tmp_path / "share"))
    monkeypatch.delenv("SKILLS_DIR", raising=False)
    monkeypatch.delenv("SKILLS_MIRROR_DIR", raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    _resolve_share_dir.cache_clear()
    yield
    _resolve_share_dir.cache_clear()


@pytest.fixture
def mirror_dir(tmp_path: Path) -> Path:
    path = tmp_path / "mirror"
    path.mkdir()
    return path


@pytest.fixture
def skills_root(tmp_path: Path) -> Path:
    return tmp_path / "project" / ".agents" / "skills"


@pytest.fixture
def make_source(mirror_dir: Path) -> Callable[..., Path]:
    """Lay out `<mirror>/<owner>/<repo>` with a manifest and file tree."""

    def _make(
        manifest: object,
        files: SkillTree,
        *,
        owner: str = "acme",
        repo: str = "skills",
        manifest_path: str = "skills.json",
    ) -> Path:
        repo_dir = mirror_dir / owner / repo
        repo_dir.mkdir(parents=True, exist_ok=True)
        manifest_file = repo_dir / manifest_path
        manifest_file.parent.mkdir(parents=True, exist_ok=True)
        manifest_file.write_text(json.dumps(manifest), encoding="utf-8")
        for rel, content in files.items():
            target = repo_dir / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                target.write_bytes(content)
            else:
                target.write_text(content, encoding="utf-8")
        return repo_dir

    return _make


@pytest.fixture
def two_skill_source(make_source: Callable[..., Path]) -> Path:
    return make_source(
        {"a": "skills/a", "b": "skills/b"},
        {
            "skills/a/SKILL.md": skill_md("a"),
            "skills/a/examples/good.py": "print('a')\n",
            "skills/b/SKILL.md": skill_md("b"),
        },
    )


def snapshot_tree(root: Path) -> dict[str, bytes]:
    """Relative path -> content for every file below `root`."""
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }
