"""Download a skill package's file tree from its source."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath

from loguru import logger

from skills_cli.backends import SourceBackend
from skills_cli.exception import InvalidPackagePath, PackageIncomplete
from skills_cli.resolver import ResolvedSkill
from skills_cli.skills import (
    SKILL_MD_NAMES,
    SkillMetadata,
    SkillParseError,
    SkillValidationError,
    parse_skill_metadata,
)


@dataclass(frozen=True)
class FetchedFile:
    path: str
    """POSIX path relative to the package root."""
    content: bytes
    executable: bool = False


@dataclass
class FetchedPackage:
    name: str
    package_path: str
    metadata: SkillMetadata
    files: list[FetchedFile] = field(default_factory=list)

    @property
    def root_document(self) -> FetchedFile:
        for name in SKILL_MD_NAMES:
            for file in self.files:
                if file.path == name:
                    return file
        raise PackageIncomplete(f"Package {self.name} has no SKILL.md", skill=self.name)


def normalize_package_path(path: str) -> str:
    """
    Normalize a relative path, refusing anything that could escape its root.

    Raises:
        InvalidPackagePath: For absolute paths, empty paths, or `..` segments.
    """
    raw = path.strip().replace("\\", "/")
    posix_path = PurePosixPath(raw)
    if not raw or posix_path.is_absolute() or (len(raw) > 1 and raw[1] == ":"):
        raise InvalidPackagePath(f"Package path must be relative: {path!r}")
    if ".." in posix_path.parts:
        raise InvalidPackagePath(f"Package path escapes its root: {path!r}")
    normalized = posix_path.as_posix()
    if normalized in {"", "."}:
        raise InvalidPackagePath(f"Package path is empty: {path!r}")
    return normalized


async def fetch_package(backend: SourceBackend, skill: ResolvedSkill) -> FetchedPackage:
    """
    Retrieve every file under a skill's package path.

    Raises:
        InvalidPackagePath: If the package path or any listed entry escapes the package root.
        PackageIncomplete: If the root document is missing or files vanish mid-fetch.
        SourceUnreachable: On transport failure.
        SkillParseError: If the root document header cannot be parsed.
        SkillValidationError: If the header is invalid or names another skill.
    """
    try:
        package_path = normalize_package_path(skill.path)
    except InvalidPackagePath as e:
        raise InvalidPackagePath(e.message, skill=skill.name) from e

    listing = await backend.list_files(skill.source, package_path)
    prefix = f"{package_path}/"

    entries: list[tuple[str, str, bool]] = []
    for remote in listing:
        if not remote.path.startswith(prefix):
            raise InvalidPackagePath(
                f"Listed file {remote.path!r} is outside package {package_path!r}",
                skill=skill.name,
            )
        try:
            relative = normalize_package_path(remote.path[len(prefix) :])
        except InvalidPackagePath as e:
            raise InvalidPackagePath(e.message, skill=skill.name) from e
        entries.append((remote.path, relative, remote.executable))

    if not any(relative in SKILL_MD_NAMES for _, relative, _ in entries):
        raise PackageIncomplete(
            f"No SKILL.md found at {package_path} in {skill.source.display()}",
            skill=skill.name,
        )

    logger.info(
        "Fetching {count} files for skill {name}", count=len(entries), name=skill.name
    )
    files: list[FetchedFile] = []
    for remote_path, relative, executable in entries:
        content = await backend.read_file(skill.source, remote_path)
        if content is None:
            raise PackageIncomplete(
                f"File {relative} disappeared while fetching", skill=skill.name
            )
        files.append(FetchedFile(path=relative, content=content, executable=executable))

    package = FetchedPackage(
        name=skill.name,
        package_path=package_path,
        metadata=_root_metadata(skill.name, files),
        files=files,
    )
    logger.debug(
        "Fetched skill {name}: {size} bytes",
        name=skill.name,
        size=sum(len(f.content) for f in files),
    )
    return package


def _root_metadata(name: str, files: list[FetchedFile]) -> SkillMetadata:
    root = next(f for doc in SKILL_MD_NAMES for f in files if f.path == doc)
    try:
        metadata = parse_skill_metadata(root.content.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise SkillParseError(f"SKILL.md is not valid UTF-8: {e}", skill=name) from e
    except (SkillParseError, SkillValidationError) as e:
        raise type(e)(e.message, skill=name) from e

    if metadata.name != name:
        raise SkillValidationError(
            f"SKILL.md declares name '{metadata.name}' but the manifest lists it as '{name}'",
            skill=name,
        )
    return metadata
