from __future__ import annotations

import pytest

from skills_cli.exception import InvalidReference
from skills_cli.source import Source, parse_reference


@pytest.mark.parametrize(
    "reference, owner, repo",
    [
        ("acme/skills", "acme", "skills"),
        ("  acme/skills  ", "acme", "skills"),
        ("Some-Org/style.guides", "Some-Org", "style.guides"),
        ("acme/skills.git", "acme", "skills"),
        ("a_b/c_d", "a_b", "c_d"),
    ],
)
def test_parse_reference_keeps_owner_and_repo(reference: str, owner: str, repo: str):
    source = parse_reference(reference)
    assert source == Source(owner=owner, repo=repo)


@pytest.mark.parametrize(
    "reference",
    [
        "",
        "acme",
        "acme/",
        "/skills",
        "acme/skills/extra",
        "acme//skills",
        "../skills",
        "acme/..",
        "acme/sk ills",
        "https://gitlab.com/acme/skills",
    ],
)
def test_parse_reference_rejects_malformed(reference: str):
    with pytest.raises(InvalidReference):
        parse_reference(reference)


def test_parse_reference_revision():
    assert parse_reference("acme/skills", "v2").revision == "v2"
    assert parse_reference("acme/skills", "   ").revision is None
    assert parse_reference("acme/skills").revision is None


def test_parse_reference_github_url():
    assert parse_reference("https://github.com/acme/skills") == Source("acme", "skills")
    assert parse_reference("https://github.com/acme/skills/tree/main") == Source(
        "acme", "skills", "main"
    )
    # An explicit revision wins over the one in the URL.
    assert parse_reference("https://github.com/acme/skills/tree/main", "v1").revision == "v1"


def test_source_display():
    assert Source("acme", "skills").display() == "acme/skills"
    assert Source("acme", "skills", "v2").display() == "acme/skills@v2"
    assert Source("acme", "skills").slug == "acme/skills"
