"""Security checks for installed skill directories."""

from __future__ import annotations

from pathlib import Path

from .parser import find_skill_md

MAX_SKILL_MD_SIZE = 100 * 1024  # 100KB
MAX_TOTAL_SKILL_SIZE = 1024 * 1024  # 1MB

SUSPICIOUS_EXTENSIONS = {".exe", ".dll", ".so", ".dylib", ".bin", ".bat", ".cmd", ".ps1"}


def validate_skill_security(skill_dir: Path) -> list[str]:
    """Perform security validation on a skill.

    The checks are advisory: the installer logs them but does not refuse the
    package.

    Args:
        skill_dir: Path to the skill directory

    Returns:
        List of security warnings
    """
    warnings: list[str] = []
    skill_dir = Path(skill_dir)

    if not skill_dir.is_dir():
        return ["Skill directory does not exist"]

    files = [f for f in skill_dir.rglob("*") if f.is_file()]

    total_size = sum(f.stat().st_size for f in files)
    if total_size > MAX_TOTAL_SKILL_SIZE:
        max_size = MAX_TOTAL_SKILL_SIZE
        warnings.append(f"Skill exceeds size limit: {total_size} bytes (max: {max_size})")

    skill_md = find_skill_md(skill_dir)
    if skill_md and skill_md.stat().st_size > MAX_SKILL_MD_SIZE:
        size = skill_md.stat().st_size
        max_size = MAX_SKILL_MD_SIZE
        warnings.append(f"SKILL.md exceeds size limit: {size} bytes (max: {max_size})")

    for f in files:
        rel = f.relative_to(skill_dir).as_posix()
        if f.suffix.lower() in SUSPICIOUS_EXTENSIONS:
            warnings.append(f"Suspicious file type: {rel}")
        if any(part.startswith(".") for part in f.relative_to(skill_dir).parts):
            warnings.append(f"Hidden file found: {rel}")

    return warnings
