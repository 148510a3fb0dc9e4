"""Extract advisory companion-skill references from a skill document.

A skill may point at skills hosted elsewhere that work well alongside it. The
references are surfaced to the user as suggestions and are never installed
automatically. Two block forms are recognised:

    ```companions
    # Accessibility checks
    acme/web-skills --skill a11y-review
    ```

and any fenced block under a heading that mentions companions:

    ## Companion skills

    ```bash
    npx skills add acme/web-skills --skill a11y-review  # Accessibility checks
    ```
"""

from __future__ import annotations

import re
from dataclasses import dataclass

COMPANION_INFO_STRING = "companions"

_FENCE_RE = re.compile(r"^(?P<fence>`{3,}|~{3,})\s*(?P<info>[\w.+-]*)")
_HEADING_RE = re.compile(r"^#{1,6}\s+(?P<title>.*)$")
_REFERENCE_RE = re.compile(
    r"^(?:\$\s*)?(?:(?:npx\s+)?skills\s+add\s+)?"
    r"(?P<source>[A-Za-z0-9._-]+/[A-Za-z0-9._-]+)"
    r"\s+--skill(?:\s+|=)(?P<skill>[a-z0-9](?:[a-z0-9-]*[a-z0-9])?)"
    r"\s*(?:#\s*(?P<label>.*))?$"
)


@dataclass(frozen=True)
class CompanionReference:
    source: str
    skill: str
    label: str

    @property
    def command(self) -> str:
        return f"skills add {self.source} --skill {self.skill}"


def extract_companions(document: str) -> list[CompanionReference]:
    """Return the companion references declared in a skill document, in order."""
    references: list[CompanionReference] = []
    seen: set[tuple[str, str]] = set()

    in_companion_section = False
    fence: str | None = None
    collecting = False
    pending_label: str | None = None

    for raw_line in document.splitlines():
        line = raw_line.strip()

        if fence is not None:
            if set(line) == {fence[0]} and len(line) >= len(fence):
                fence = None
                collecting = False
                pending_label = None
                continue
            if not collecting or not line:
                continue
            if line.startswith("#"):
                pending_label = line.lstrip("#").strip() or None
                continue
            match = _REFERENCE_RE.match(line)
            if match is None:
                continue
            source, skill = match.group("source"), match.group("skill")
            label = (match.group("label") or "").strip() or pending_label or skill
            pending_label = None
            if (source, skill) in seen:
                continue
            seen.add((source, skill))
            references.append(CompanionReference(source=source, skill=skill, label=label))
            continue

        if fence_match := _FENCE_RE.match(line):
            fence = fence_match.group("fence")
            info = fence_match.group("info").lower()
            collecting = info == COMPANION_INFO_STRING or in_companion_section
            continue

        if heading := _HEADING_RE.match(line):
            in_companion_section = "companion" in heading.group("title").lower()

    return references
