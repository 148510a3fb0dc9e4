from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

import pytest

from conftest import skill_md
from skills_cli.backends import LocalBackend, RemoteFile
from skills_cli.exception import InvalidPackagePath, PackageIncomplete, SourceUnreachable
from skills_cli.fetcher import fetch_package, normalize_package_path
from skills_cli.resolver import ResolvedSkill
from skills_cli.skills import SkillParseError, SkillValidationError
from skills_cli.source import Source

SOURCE = Source("acme", "skills")


class FakeBackend:
    """In-memory source; records every path it is asked for."""

    def __init__(
        self,
        files: dict[str, bytes],
        *,
        listing: list[RemoteFile] | None = None,
        fail_on: str | None = None,
    ):
        self.files = files
        self.listing = listing
        self.fail_on = fail_on
        self.requested: list[str] = []

    async def read_file(self, source: Source, path: str) -> bytes | None:
        self.requested.append(path)
        if path == self.fail_on:
            raise SourceUnreachable(f"connection reset while reading {path}")
        return self.files.get(path)

    async def list_files(self, source: Source, path: str) -> list[RemoteFile]:
        if self.listing is not None:
            return self.listing
        prefix = f"{path}/"
        return [RemoteFile(p) for p in sorted(self.files) if p.startswith(prefix)]

    async def aclose(self) -> None:
        pass


def _skill(name: str = "a", path: str = "skills/a") -> ResolvedSkill:
    return ResolvedSkill(name=name, path=path, source=SOURCE)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("skills/a", "skills/a"),
        ("skills/a/", "skills/a"),
        ("./skills/a", "skills/a"),
        ("skills\\a", "skills/a"),
        ("a", "a"),
    ],
)
def test_normalize_package_path(raw: str, expected: str):
    assert normalize_package_path(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["", ".", "/etc", "../a", "skills/../../a", "skills/a/..", "..\\a", "C:\\skills", "a/../b"],
)
def test_normalize_package_path_rejects_escapes(raw: str):
    with pytest.raises(InvalidPackagePath):
        normalize_package_path(raw)


@pytest.mark.asyncio
async def test_fetch_package_collects_tree():
    backend = FakeBackend(
        {
            "skills/a/SKILL.md": skill_md("a").encode(),
            "skills/a/examples/one.py": b"print(1)\n",
            "skills/b/SKILL.md": skill_md("b").encode(),
        }
    )
    package = await fetch_package(backend, _skill())

    assert package.name == "a"
    assert package.package_path == "skills/a"
    assert package.metadata.description == "A test skill"
    assert {f.path: f.content for f in package.files} == {
        "SKILL.md": skill_md("a").encode(),
        "examples/one.py": b"print(1)\n",
    }
    assert package.root_document.path == "SKILL.md"
    assert all(p.startswith("skills/a/") for p in backend.requested)


@pytest.mark.asyncio
async def test_manifest_path_with_parent_segment_is_rejected():
    backend = FakeBackend({"secret/SKILL.md": skill_md("a").encode()})
    with pytest.raises(InvalidPackagePath) as exc_info:
        await fetch_package(backend, _skill(path="skills/../secret"))
    assert exc_info.value.skill == "a"
    assert backend.requested == []


@pytest.mark.asyncio
async def test_listed_entry_escaping_root_is_rejected():
    backend = FakeBackend(
        {"skills/a/SKILL.md": skill_md("a").encode()},
        listing=[RemoteFile("skills/a/SKILL.md"), RemoteFile("skills/a/../../etc/passwd")],
    )
    with pytest.raises(InvalidPackagePath):
        await fetch_package(backend, _skill())
    assert backend.requested == []


@pytest.mark.asyncio
async def test_listed_entry_outside_package_is_rejected():
    backend = FakeBackend(
        {"skills/a/SKILL.md": skill_md("a").encode()},
        listing=[RemoteFile("skills/a/SKILL.md"), RemoteFile("skills/other/file.txt")],
    )
    with pytest.raises(InvalidPackagePath):
        await fetch_package(backend, _skill())


@pytest.mark.asyncio
async def test_missing_root_document():
    backend = FakeBackend({"skills/a/README.md": b"# no skill here"})
    with pytest.raises(PackageIncomplete, match="No SKILL.md"):
        await fetch_package(backend, _skill())


@pytest.mark.asyncio
async def test_nested_root_document_does_not_count():
    backend = FakeBackend({"skills/a/docs/SKILL.md": skill_md("a").encode()})
    with pytest.raises(PackageIncomplete):
        await fetch_package(backend, _skill())


@pytest.mark.asyncio
async def test_empty_package_tree():
    with pytest.raises(PackageIncomplete):
        await fetch_package(FakeBackend({}), _skill())


@pytest.mark.asyncio
async def test_file_vanishing_mid_fetch():
    backend = FakeBackend(
        {"skills/a/SKILL.md": skill_md("a").encode()},
        listing=[RemoteFile("skills/a/SKILL.md"), RemoteFile("skills/a/gone.md")],
    )
    with pytest.raises(PackageIncomplete, match="gone.md"):
        await fetch_package(backend, _skill())


@pytest.mark.asyncio
async def test_transport_failure_propagates():
    backend = FakeBackend(
        {"skills/a/SKILL.md": skill_md("a").encode(), "skills/a/x.md": b"x"},
        fail_on="skills/a/x.md",
    )
    with pytest.raises(SourceUnreachable) as exc_info:
        await fetch_package(backend, _skill())
    assert exc_info.value.retriable


@pytest.mark.asyncio
async def test_name_mismatch_is_a_validation_error():
    backend = FakeBackend({"skills/a/SKILL.md": skill_md("not-a").encode()})
    with pytest.raises(SkillValidationError, match="not-a") as exc_info:
        await fetch_package(backend, _skill())
    assert exc_info.value.skill == "a"


@pytest.mark.asyncio
async def test_broken_frontmatter():
    backend = FakeBackend({"skills/a/SKILL.md": b"# just markdown"})
    with pytest.raises(SkillParseError):
        await fetch_package(backend, _skill())


@pytest.mark.asyncio
async def test_lowercase_root_document_is_accepted():
    backend = FakeBackend({"skills/a/skill.md": skill_md("a").encode()})
    package = await fetch_package(backend, _skill())
    assert package.root_document.path == "skill.md"


@pytest.mark.asyncio
async def test_local_backend_preserves_executable_bit(
    make_source: Callable[..., Path], mirror_dir: Path
):
    repo_dir = make_source(
        {"a": "skills/a"},
        {"skills/a/SKILL.md": skill_md("a"), "skills/a/scripts/run.sh": "#!/bin/sh\n"},
    )
    os.chmod(repo_dir / "skills/a/scripts/run.sh", 0o755)

    package = await fetch_package(LocalBackend(mirror_dir), _skill())
    executables = {f.path: f.executable for f in package.files}
    assert executables == {"SKILL.md": False, "scripts/run.sh": True}


@pytest.mark.asyncio
async def test_local_backend_rejects_symlink_escaping_source(
    make_source: Callable[..., Path], mirror_dir: Path, tmp_path: Path
):
    repo_dir = make_source({"a": "skills/a"}, {"skills/a/SKILL.md": skill_md("a")})
    outside = tmp_path / "outside.txt"
    outside.write_text("secret", encoding="utf-8")
    (repo_dir / "skills/a/leak.txt").symlink_to(outside)

    with pytest.raises(InvalidPackagePath):
        await fetch_package(LocalBackend(mirror_dir), _skill())
