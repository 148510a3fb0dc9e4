"""The `add` pipeline: locate, fetch manifest, resolve, fetch packages, install."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from pathlib import Path

from loguru import logger

from skills_cli.backends import SourceBackend, create_backend
from skills_cli.companions import extract_companions
from skills_cli.config import DEFAULT_MANIFEST_PATH, Config
from skills_cli.exception import SkillsError, SourceUnreachable
from skills_cli.fetcher import fetch_package
from skills_cli.installer import (
    ConflictDecider,
    InstallOutcome,
    InstallReport,
    Installer,
    OverwritePolicy,
)
from skills_cli.manifest import fetch_manifest
from skills_cli.resolver import ResolvedSkill, resolve_skills
from skills_cli.source import parse_reference

DEFAULT_MAX_CONCURRENCY = 4


@dataclass(frozen=True)
class AddRequest:
    reference: str
    skill: str | None = None
    revision: str | None = None
    policy: OverwritePolicy = "ask"


async def add_skills(
    request: AddRequest,
    *,
    backend: SourceBackend,
    installer: Installer,
    manifest_path: str = DEFAULT_MANIFEST_PATH,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    timeout: float | None = None,
    on_conflict: ConflictDecider | None = None,
) -> InstallReport:
    """
    Install the skills a request names.

    Reference, manifest and resolution errors abort the whole request and are
    raised. Errors while fetching or installing a package are recorded in that
    skill's outcome and the other skills proceed.
    """
    source = parse_reference(request.reference, request.revision)
    try:
        async with asyncio.timeout(timeout):
            manifest = await fetch_manifest(backend, source, manifest_path=manifest_path)
    except TimeoutError as e:
        raise SourceUnreachable(f"Timed out fetching the manifest of {source.display()}") from e
    resolved = resolve_skills(manifest, request.skill)
    logger.info(
        "Installing {count} skills from {source} into {root}",
        count=len(resolved),
        source=source.display(),
        root=installer.skills_root,
    )

    semaphore = asyncio.Semaphore(max_concurrency)

    async def _run(skill: ResolvedSkill) -> InstallOutcome:
        async with semaphore:
            return await install_skill(
                skill,
                backend=backend,
                installer=installer,
                policy=request.policy,
                timeout=timeout,
                on_conflict=on_conflict,
            )

    outcomes = await asyncio.gather(*(_run(skill) for skill in resolved))
    report = InstallReport(outcomes=list(outcomes))
    logger.info(
        "Finished installing from {source}: {summary}",
        source=source.display(),
        summary=report.summary(),
    )
    return report


async def install_skill(
    skill: ResolvedSkill,
    *,
    backend: SourceBackend,
    installer: Installer,
    policy: OverwritePolicy = "ask",
    timeout: float | None = None,
    on_conflict: ConflictDecider | None = None,
) -> InstallOutcome:
    """Fetch and install a single resolved skill, recording failures as an outcome."""
    if policy == "skip-existing" and installer.is_installed(skill.name):
        logger.info("Skill {name} already installed, skipping", name=skill.name)
        return InstallOutcome(
            name=skill.name,
            status="skipped",
            reason="already installed",
            path=installer.skill_dir(skill.name),
        )

    try:
        try:
            async with asyncio.timeout(timeout):
                package = await fetch_package(backend, skill)
        except TimeoutError as e:
            raise SourceUnreachable(
                f"Timed out fetching skill {skill.name}", skill=skill.name
            ) from e
        outcome = await installer.install(package, policy=policy, on_conflict=on_conflict)
    except SkillsError as e:
        logger.error(
            "Failed to install skill {name}: {kind}: {error}",
            name=skill.name,
            kind=e.kind,
            error=e.message,
        )
        return InstallOutcome.failed(skill.name, e)

    if outcome.status == "installed":
        document = package.root_document.content.decode("utf-8")
        companions = extract_companions(document)
        if companions:
            logger.info(
                "Skill {name} suggests {count} companion skills",
                name=skill.name,
                count=len(companions),
            )
        outcome = replace(outcome, companions=tuple(companions))
    return outcome


async def add_skills_from_config(
    request: AddRequest,
    config: Config,
    *,
    skills_dir: Path | None = None,
    timeout: float | None = None,
    on_conflict: ConflictDecider | None = None,
) -> InstallReport:
    """Run `add_skills` with the backend and installer the configuration describes."""
    timeout = timeout if timeout is not None else config.timeout
    backend = create_backend(
        mirror_dir=config.resolve_mirror_dir(),
        api_base_url=config.github.api_base_url,
        raw_base_url=config.github.raw_base_url,
        timeout=timeout,
    )
    installer = Installer(config.resolve_skills_dir(skills_dir))
    try:
        return await add_skills(
            request,
            backend=backend,
            installer=installer,
            manifest_path=config.manifest_path,
            max_concurrency=config.max_concurrency,
            timeout=timeout,
            on_conflict=on_conflict,
        )
    finally:
        await backend.aclose()
