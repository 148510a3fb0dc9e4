"""Turn a user-supplied `owner/repo` reference into a Source."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlparse

from skills_cli.exception import InvalidReference

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9._-]+$")
_GITHUB_HOSTS = {"github.com", "www.github.com"}


@dataclass(frozen=True)
class Source:
    """A remote skill collection."""

    owner: str
    repo: str
    revision: str | None = None

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"

    def display(self) -> str:
        if self.revision:
            return f"{self.slug}@{self.revision}"
        return self.slug


def parse_reference(reference: str, revision: str | None = None) -> Source:
    """
    Parse an `owner/repo` reference.

    GitHub URLs (`https://github.com/owner/repo[/tree/<ref>]`) are accepted as
    well; a `/tree/<ref>` suffix supplies the revision when none is passed.

    Raises:
        InvalidReference: If the reference does not have the two-segment shape.
    """
    raw = reference.strip()
    revision = revision.strip() if revision else None
    if not raw:
        raise InvalidReference("Source reference is empty; expected owner/repo")

    parsed = urlparse(raw)
    if parsed.scheme in {"http", "https"}:
        if parsed.netloc not in _GITHUB_HOSTS:
            raise InvalidReference(f"Unsupported source host '{parsed.netloc}' in {reference!r}")
        parts = parsed.path.strip("/").split("/")
        if len(parts) >= 4 and parts[2] == "tree":
            revision = revision or "/".join(parts[3:])
            parts = parts[:2]
        segments = parts
    else:
        segments = raw.split("/")

    if len(segments) != 2:
        raise InvalidReference(f"Invalid source reference {reference!r}; expected owner/repo")

    owner, repo = segments
    repo = repo.removesuffix(".git")
    for segment in (owner, repo):
        if not segment or segment in {".", ".."} or not _SEGMENT_RE.match(segment):
            raise InvalidReference(
                f"Invalid source reference {reference!r}; expected owner/repo"
            )

    return Source(owner=owner, repo=repo, revision=revision or None)
