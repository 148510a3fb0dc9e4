"""Materialize fetched skill packages under a local skills root."""

from __future__ import annotations

import asyncio
import inspect
import os
import shutil
import stat
import tempfile
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Literal, Self
from uuid import uuid4

import aiofiles
from loguru import logger

from skills_cli.companions import CompanionReference
from skills_cli.exception import (
    InstallConflict,
    InstallError,
    InvalidPackagePath,
    SkillNotFound,
    SkillsError,
)
from skills_cli.fetcher import FetchedPackage
from skills_cli.skills import (
    SkillMetadata,
    SkillParseError,
    SkillValidationError,
    is_valid_skill_name,
    read_skill_metadata,
    validate_skill_security,
)

OverwritePolicy = Literal["ask", "force", "skip-existing"]
OutcomeStatus = Literal["installed", "skipped", "failed"]
ConflictDecider = Callable[[str], Awaitable[bool] | bool]
"""Called with a skill name when it is already installed; True means overwrite."""


@dataclass(frozen=True)
class InstallOutcome:
    name: str
    status: OutcomeStatus
    reason: str | None = None
    error: str | None = None
    path: Path | None = None
    warnings: tuple[str, ...] = ()
    companions: tuple[CompanionReference, ...] = ()

    @classmethod
    def failed(cls, name: str, exc: SkillsError) -> Self:
        return cls(name=name, status="failed", reason=exc.message, error=exc.kind)


@dataclass
class InstallReport:
    outcomes: list[InstallOutcome] = field(default_factory=list)

    def _with_status(self, status: OutcomeStatus) -> list[InstallOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def installed(self) -> list[InstallOutcome]:
        return self._with_status("installed")

    @property
    def skipped(self) -> list[InstallOutcome]:
        return self._with_status("skipped")

    @property
    def failed(self) -> list[InstallOutcome]:
        return self._with_status("failed")

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        return (
            f"{len(self.installed)} installed, "
            f"{len(self.skipped)} skipped, "
            f"{len(self.failed)} failed"
        )


class Installer:
    """Installs packages into `skills_root`, one directory per skill name.

    Each package is written to a staging directory next to the skills root and
    only moved into place once every file is on disk, so a skill's directory is
    either its previous version, absent, or the complete new version.
    """

    def __init__(self, skills_root: Path):
        self.skills_root = skills_root
        self._locks: dict[str, asyncio.Lock] = {}
        self._decision_lock = asyncio.Lock()

    def skill_dir(self, name: str) -> Path:
        if not is_valid_skill_name(name):
            raise InvalidPackagePath(f"Invalid skill name for a directory: {name!r}", skill=name)
        return self.skills_root / name

    def is_installed(self, name: str) -> bool:
        return self.skill_dir(name).exists()

    async def install(
        self,
        package: FetchedPackage,
        *,
        policy: OverwritePolicy = "ask",
        on_conflict: ConflictDecider | None = None,
    ) -> InstallOutcome:
        """
        Install one package according to the overwrite policy.

        Raises:
            InstallConflict: Under `ask` when the skill exists and no decider is given.
            InvalidPackagePath: If a file would be written outside the skill directory.
            InstallError: If the filesystem rejects the staging or the final move.
        """
        try:
            return await self._install(package, policy=policy, on_conflict=on_conflict)
        except OSError as e:
            raise InstallError(
                f"Failed to install skill {package.name}: {e}", skill=package.name
            ) from e

    async def _install(
        self,
        package: FetchedPackage,
        *,
        policy: OverwritePolicy,
        on_conflict: ConflictDecider | None,
    ) -> InstallOutcome:
        name = package.name
        dest = self.skill_dir(name)
        if policy == "skip-existing" and dest.exists():
            logger.info("Skill {name} already installed, skipping", name=name)
            return InstallOutcome(
                name=name, status="skipped", reason="already installed", path=dest
            )

        self.skills_root.mkdir(parents=True, exist_ok=True)
        staged = await self._stage(package)
        try:
            async with self._lock_for(name):
                if dest.exists():
                    if policy == "skip-existing":
                        logger.info("Skill {name} appeared meanwhile, skipping", name=name)
                        return InstallOutcome(
                            name=name, status="skipped", reason="already installed", path=dest
                        )
                    if policy == "ask":
                        if on_conflict is None:
                            raise InstallConflict(
                                f"Skill {name} is already installed at {dest}", skill=name
                            )
                        if not await self._decide(on_conflict, name):
                            logger.info("Keeping existing skill {name}", name=name)
                            return InstallOutcome(
                                name=name, status="skipped", reason="kept existing", path=dest
                            )
                    logger.info("Replacing skill {name} at {dest}", name=name, dest=dest)
                await self._commit(staged, dest)
        finally:
            if staged.exists():
                shutil.rmtree(staged, ignore_errors=True)

        warnings = tuple(validate_skill_security(dest))
        for warning in warnings:
            logger.warning("Skill {name}: {warning}", name=name, warning=warning)
        logger.info("Installed skill {name} to {dest}", name=name, dest=dest)
        return InstallOutcome(name=name, status="installed", path=dest, warnings=warnings)

    async def _stage(self, package: FetchedPackage) -> Path:
        staged = Path(
            tempfile.mkdtemp(
                prefix=f".{self.skills_root.name}-{package.name}.staging-",
                dir=self.skills_root.parent,
            )
        )
        try:
            staged.chmod(0o755)
            for file in package.files:
                target = staged.joinpath(*PurePosixPath(file.path).parts)
                if not target.resolve().is_relative_to(staged.resolve()):
                    raise InvalidPackagePath(
                        f"File {file.path!r} escapes the package root", skill=package.name
                    )
                target.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(target, "wb") as f:
                    await f.write(file.content)
                if file.executable:
                    mode = target.stat().st_mode
                    target.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except BaseException:
            shutil.rmtree(staged, ignore_errors=True)
            raise
        logger.debug("Staged skill {name} in {dir}", name=package.name, dir=staged)
        return staged

    async def _commit(self, staged: Path, dest: Path) -> None:
        """Move `staged` into place as `dest` on a worker thread.

        The move always runs to completion. A cancelled caller waits for it
        before cancelling, so the staging cleanup in `_install` never runs
        while the directory is being renamed.
        """
        move = asyncio.ensure_future(
            asyncio.to_thread(
                commit_staged_directory,
                staged_dir=staged,
                dest_dir=dest,
                backup_dir=self._sibling_path(f"{dest.name}.backup-{uuid4().hex}"),
            )
        )
        try:
            await asyncio.shield(move)
        except asyncio.CancelledError:
            await asyncio.wait({move})
            if error := move.exception():
                logger.warning(
                    "Moving {dir} into place failed after cancellation: {error}",
                    dir=dest,
                    error=error,
                )
            raise

    def _sibling_path(self, suffix: str) -> Path:
        return self.skills_root.parent / f".{self.skills_root.name}-{suffix}"

    def _lock_for(self, name: str) -> asyncio.Lock:
        return self._locks.setdefault(name, asyncio.Lock())

    async def _decide(self, on_conflict: ConflictDecider, name: str) -> bool:
        async with self._decision_lock:
            decision = on_conflict(name)
            if inspect.isawaitable(decision):
                decision = await decision
            return bool(decision)

    def list_installed(self) -> list[SkillMetadata]:
        """List the valid skills under the skills root, sorted by name."""
        if not self.skills_root.is_dir():
            return []
        skills: list[SkillMetadata] = []
        for entry in sorted(self.skills_root.iterdir()):
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            try:
                skills.append(read_skill_metadata(entry))
            except (SkillParseError, SkillValidationError) as e:
                logger.warning("Invalid skill in {path}: {error}", path=entry, error=e)
        return skills

    def remove(self, name: str) -> Path:
        """
        Delete an installed skill.

        Raises:
            SkillNotFound: If no skill with that name is installed.
        """
        skill_dir = self.skill_dir(name).resolve()
        root = self.skills_root.resolve()
        if root not in skill_dir.parents:
            raise InvalidPackagePath(f"Skill path is outside of {root}", skill=name)
        if not skill_dir.is_dir():
            raise SkillNotFound(name, message=f"Skill '{name}' is not installed in {root}")
        shutil.rmtree(skill_dir)
        logger.info("Removed skill {name} from {root}", name=name, root=root)
        return skill_dir


def atomic_replace_directory(*, existing_dir: Path, staged_dir: Path, backup_dir: Path) -> None:
    os.replace(existing_dir, backup_dir)
    try:
        os.replace(staged_dir, existing_dir)
    except Exception:
        os.replace(backup_dir, existing_dir)
        raise
    shutil.rmtree(backup_dir)


def commit_staged_directory(*, staged_dir: Path, dest_dir: Path, backup_dir: Path) -> None:
    if dest_dir.exists():
        atomic_replace_directory(
            existing_dir=dest_dir, staged_dir=staged_dir, backup_dir=backup_dir
        )
    else:
        os.replace(staged_dir, dest_dir)
