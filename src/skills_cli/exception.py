from __future__ import annotations

from collections.abc import Sequence


class SkillsError(Exception):
    """Base exception class for skills-cli."""

    retriable: bool = False

    def __init__(self, message: str, *, skill: str | None = None):
        self.message = message
        self.skill = skill
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__


class ConfigError(SkillsError, ValueError):
    """Configuration error."""

    pass


class InvalidReference(SkillsError, ValueError):
    """The source reference is not of the form `owner/repo`."""

    pass


class SourceUnreachable(SkillsError):
    """Network or transport failure while talking to a source.

    Transient: the caller may re-run the whole pipeline.
    """

    retriable = True


class ManifestMissing(SkillsError, LookupError):
    """The source has no manifest at the well-known path."""

    pass


class ManifestMalformed(SkillsError, ValueError):
    """The manifest could not be parsed or contains duplicate names."""

    pass


class SkillNotFound(SkillsError, LookupError):
    """The requested skill is not listed in the manifest."""

    def __init__(self, name: str, suggestions: Sequence[str] = (), *, message: str | None = None):
        self.suggestions = list(suggestions)
        message = message or f"Skill '{name}' not found in manifest"
        if self.suggestions:
            message += f" (did you mean: {', '.join(self.suggestions)}?)"
        super().__init__(message, skill=name)


class PackageIncomplete(SkillsError, ValueError):
    """A package tree is missing its root document or lost files mid-fetch."""

    pass


class InvalidPackagePath(SkillsError, ValueError):
    """A package path or entry escapes its package root."""

    pass


class InstallConflict(SkillsError):
    """A skill with the same name is already installed and no decision was made."""

    pass


class InstallError(SkillsError):
    """The local filesystem refused part of an installation."""

    pass
