"""Fetch and parse a source's skill manifest."""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from skills_cli.backends import SourceBackend
from skills_cli.exception import ManifestMalformed, ManifestMissing
from skills_cli.skills import is_valid_skill_name
from skills_cli.source import Source

SUPPORTED_MANIFEST_VERSIONS = (1,)


@dataclass(frozen=True)
class Manifest(Mapping[str, str]):
    """Mapping of skill name to the package path inside its source."""

    source: Source
    entries: dict[str, str] = field(default_factory=dict)

    def __getitem__(self, name: str) -> str:
        return self.entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


async def fetch_manifest(
    backend: SourceBackend,
    source: Source,
    *,
    manifest_path: str,
) -> Manifest:
    """
    Retrieve and parse the manifest of a source.

    Raises:
        SourceUnreachable: On network or transport failure.
        ManifestMissing: If the source has no file at `manifest_path`.
        ManifestMalformed: If the manifest cannot be parsed.
    """
    logger.info(
        "Fetching manifest {path} from {source}", path=manifest_path, source=source.display()
    )
    data = await backend.read_file(source, manifest_path)
    if data is None:
        raise ManifestMissing(f"No manifest at {manifest_path} in {source.display()}")
    manifest = parse_manifest(data, source)
    logger.info(
        "Manifest of {source} lists {count} skills", source=source.display(), count=len(manifest)
    )
    return manifest


def parse_manifest(data: bytes, source: Source) -> Manifest:
    """Parse manifest bytes.

    Three shapes are accepted: `{"skills": [{"name", "path"}, ...]}`, a bare
    list of such entries, or an object mapping names to paths.
    """
    try:
        text = data.decode("utf-8-sig")
        payload = json.loads(text, object_pairs_hook=_reject_duplicate_keys)
    except UnicodeDecodeError as e:
        raise ManifestMalformed(f"Manifest is not valid UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise ManifestMalformed(f"Manifest is not valid JSON: {e}") from e

    if isinstance(payload, dict) and isinstance(payload.get("skills"), list):
        version = payload.get("version", 1)
        if type(version) is not int or version not in SUPPORTED_MANIFEST_VERSIONS:
            raise ManifestMalformed(f"Unsupported manifest version: {version!r}")
        entries = _entries_from_list(payload["skills"])
    elif isinstance(payload, list):
        entries = _entries_from_list(payload)
    elif isinstance(payload, dict):
        entries = _entries_from_mapping(payload)
    else:
        raise ManifestMalformed("Manifest must be a JSON object or list")

    return Manifest(source=source, entries=entries)


def _reject_duplicate_keys(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ManifestMalformed(f"Duplicate key in manifest: {key!r}")
        result[key] = value
    return result


def _entries_from_list(items: list[Any]) -> dict[str, str]:
    entries: dict[str, str] = {}
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ManifestMalformed(f"Manifest entry #{index} must be an object")
        name = item.get("name")
        path = item.get("path")
        _check_entry(name, path, where=f"entry #{index}")
        if name in entries:
            raise ManifestMalformed(f"Duplicate skill name in manifest: {name!r}")
        entries[name] = path
    return entries


def _entries_from_mapping(mapping: dict[str, Any]) -> dict[str, str]:
    entries: dict[str, str] = {}
    for name, path in mapping.items():
        _check_entry(name, path, where=f"entry {name!r}")
        entries[name] = path
    return entries


def _check_entry(name: Any, path: Any, *, where: str) -> None:
    if not isinstance(name, str) or not is_valid_skill_name(name):
        raise ManifestMalformed(
            f"Manifest {where} has an invalid name {name!r}: "
            "expected lowercase letters, numbers, and hyphens"
        )
    if not isinstance(path, str) or not path.strip():
        raise ManifestMalformed(f"Manifest {where} must have a non-empty 'path' string")
