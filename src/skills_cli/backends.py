"""Transport backends that read files from a skill source."""

from __future__ import annotations

import asyncio
import json
import os
import re
import stat
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Protocol, Self
from urllib.parse import quote

import aiohttp
from loguru import logger

from skills_cli.exception import InvalidPackagePath, PackageIncomplete, SourceUnreachable
from skills_cli.source import Source
from skills_cli.utils.aiohttp import new_client_session

GITHUB_TOKEN_ENV = "GITHUB_TOKEN"
DEFAULT_REVISION = "HEAD"

_COMMIT_SHA_RE = re.compile(r"^[0-9a-f]{40}$")


@dataclass(frozen=True)
class RemoteFile:
    """A file inside a source, addressed by its POSIX path from the source root."""

    path: str
    executable: bool = False


class SourceBackend(Protocol):
    async def read_file(self, source: Source, path: str) -> bytes | None:
        """Return the file content, or None when the file does not exist."""
        ...

    async def list_files(self, source: Source, path: str) -> list[RemoteFile]:
        """List every file below `path`, recursively."""
        ...

    async def aclose(self) -> None: ...


@dataclass(frozen=True)
class _Tree:
    items: list[dict[str, Any]]
    truncated: bool


class GitHubBackend:
    """Reads sources hosted on GitHub.

    The revision of a source is resolved to a commit SHA on first use and every
    later request for that source is made against the SHA, so a branch moving
    mid-run cannot mix files from two commits. File contents come from the raw
    content host; directory listings come from the git trees API, fetched once
    per source. When GitHub truncates the recursive tree, a package directory
    is listed by walking down to its own subtree instead.
    """

    def __init__(
        self,
        *,
        api_base_url: str = "https://api.github.com",
        raw_base_url: str = "https://raw.githubusercontent.com",
        timeout: float | None = 30.0,
        token: str | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        self._api_base_url = api_base_url.rstrip("/")
        self._raw_base_url = raw_base_url.rstrip("/")
        self._timeout = timeout
        self._token = token if token is not None else os.getenv(GITHUB_TOKEN_ENV)
        self._session = session
        self._owns_session = session is None
        self._commits: dict[Source, str | None] = {}
        self._trees: dict[Source, _Tree] = {}
        self._locks: dict[tuple[str, Source], asyncio.Lock] = {}

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            headers = {"Authorization": f"Bearer {self._token}"} if self._token else None
            self._session = new_client_session(timeout=self._timeout, headers=headers)
        return self._session

    def _lock(self, kind: str, source: Source) -> asyncio.Lock:
        return self._locks.setdefault((kind, source), asyncio.Lock())

    async def aclose(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def resolve_commit(self, source: Source) -> str | None:
        """Return the commit SHA the source's revision points at, or None if it does not exist."""
        async with self._lock("commit", source):
            if source not in self._commits:
                self._commits[source] = await self._fetch_commit(source)
            return self._commits[source]

    async def read_file(self, source: Source, path: str) -> bytes | None:
        commit = await self.resolve_commit(source)
        if commit is None:
            return None
        url = (
            f"{self._raw_base_url}/{quote(source.owner)}/{quote(source.repo)}"
            f"/{commit}/{quote(path)}"
        )
        return await self._get(url, what=f"{path} from {source.display()}")

    async def list_files(self, source: Source, path: str) -> list[RemoteFile]:
        commit = await self.resolve_commit(source)
        if commit is None:
            return []
        path = path.strip("/")
        async with self._lock("tree", source):
            if source not in self._trees:
                self._trees[source] = await self._fetch_tree(source, commit, recursive=True)
            tree = self._trees[source]

        if not tree.truncated:
            prefix = f"{path}/"
            return [entry for entry in _blobs(tree, source) if entry.path.startswith(prefix)]

        logger.warning(
            "File tree of {source} is truncated, listing {path} from its own subtree",
            source=source.display(),
            path=path,
        )
        return await self._list_subtree(source, commit, path)

    async def _list_subtree(self, source: Source, commit: str, path: str) -> list[RemoteFile]:
        sha = commit
        for segment in path.split("/"):
            tree = await self._fetch_tree(source, sha, recursive=False)
            entry = next(
                (i for i in tree.items if i["path"] == segment and i.get("type") == "tree"),
                None,
            )
            if entry is None:
                return []
            sha = entry.get("sha")
            if not isinstance(sha, str):
                raise SourceUnreachable(
                    f"Unexpected tree entry for {path} in {source.display()}: no sha"
                )

        subtree = await self._fetch_tree(source, sha, recursive=True)
        if subtree.truncated:
            raise PackageIncomplete(
                f"File tree of {path} in {source.display()} is too large to list completely"
            )
        return _blobs(subtree, source, prefix=f"{path}/")

    async def _fetch_commit(self, source: Source) -> str | None:
        ref = source.revision or DEFAULT_REVISION
        url = (
            f"{self._api_base_url}/repos/{quote(source.owner)}/{quote(source.repo)}"
            f"/commits/{quote(ref, safe='')}"
        )
        body = await self._get(
            url,
            what=f"revision {ref} of {source.slug}",
            headers={"Accept": "application/vnd.github.sha"},
            missing=(404, 422),
        )
        if body is None:
            logger.warning("Revision {ref} not found in {source}", ref=ref, source=source.slug)
            return None
        sha = body.decode("ascii", errors="replace").strip()
        if not _COMMIT_SHA_RE.match(sha):
            raise SourceUnreachable(f"Unexpected commit id for {source.display()}: {sha[:80]!r}")
        logger.info("Resolved {source} to commit {sha}", source=source.display(), sha=sha)
        return sha

    async def _fetch_tree(self, source: Source, tree_ish: str, *, recursive: bool) -> _Tree:
        url = (
            f"{self._api_base_url}/repos/{quote(source.owner)}/{quote(source.repo)}"
            f"/git/trees/{tree_ish}"
        )
        body = await self._get(
            url,
            what=f"the file tree of {source.display()}",
            params={"recursive": "1"} if recursive else None,
            headers={"Accept": "application/vnd.github+json"},
        )
        if body is None:
            raise PackageIncomplete(f"Tree {tree_ish} of {source.slug} does not exist")

        try:
            payload = json.loads(body)
        except ValueError as e:
            raise SourceUnreachable(f"Invalid tree response for {source.display()}: {e}") from e
        items = payload.get("tree") if isinstance(payload, dict) else None
        if not isinstance(items, list) or not all(
            isinstance(item, dict) and isinstance(item.get("path"), str) for item in items
        ):
            raise SourceUnreachable(f"Unexpected tree response for {source.display()}")
        return _Tree(items=items, truncated=bool(payload.get("truncated")))

    async def _get(
        self,
        url: str,
        *,
        what: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        missing: tuple[int, ...] = (404,),
    ) -> bytes | None:
        """GET `url` and return its body, or None for a `missing` status."""
        logger.debug("Fetching {url}", url=url)
        try:
            async with self._get_session().get(url, params=params, headers=headers) as resp:
                if resp.status in missing:
                    return None
                resp.raise_for_status()
                return await resp.read()
        except aiohttp.ClientError as e:
            raise SourceUnreachable(f"Failed to fetch {what}: {e}") from e
        except TimeoutError as e:
            raise SourceUnreachable(f"Timed out fetching {what}") from e


def _blobs(tree: _Tree, source: Source, *, prefix: str = "") -> list[RemoteFile]:
    files: list[RemoteFile] = []
    for item in tree.items:
        if item.get("type") != "blob":
            continue
        path = f"{prefix}{item['path']}"
        mode = item.get("mode", "100644")
        if mode == "120000":
            logger.warning(
                "Skipping symlink {path} in {source}", path=path, source=source.display()
            )
            continue
        files.append(RemoteFile(path=path, executable=mode == "100755"))
    return files


class LocalBackend:
    """Reads sources from a mirror directory laid out as `<root>/<owner>/<repo>/...`."""

    def __init__(self, root: Path):
        self.root = root

    def repo_dir(self, source: Source) -> Path:
        return self.root / source.owner / source.repo

    async def aclose(self) -> None:
        pass

    async def read_file(self, source: Source, path: str) -> bytes | None:
        if source.revision:
            logger.debug(
                "Local mirror ignores revision {revision} of {source}",
                revision=source.revision,
                source=source.slug,
            )
        return await asyncio.to_thread(self._read_file, source, path)

    async def list_files(self, source: Source, path: str) -> list[RemoteFile]:
        return await asyncio.to_thread(self._list_files, source, path)

    def _read_file(self, source: Source, path: str) -> bytes | None:
        repo_dir = self.repo_dir(source)
        target = self._contained(repo_dir, repo_dir / PurePosixPath(path))
        if not target.is_file():
            return None
        try:
            return target.read_bytes()
        except OSError as e:
            raise SourceUnreachable(f"Failed to read {path} from {source.display()}: {e}") from e

    def _list_files(self, source: Source, path: str) -> list[RemoteFile]:
        repo_dir = self.repo_dir(source)
        base = self._contained(repo_dir, repo_dir / PurePosixPath(path))
        if not base.is_dir():
            return []

        files: list[RemoteFile] = []
        for entry in sorted(base.rglob("*")):
            if not entry.is_file():
                continue
            self._contained(repo_dir, entry)
            mode = entry.stat().st_mode
            files.append(
                RemoteFile(
                    path=entry.relative_to(repo_dir).as_posix(),
                    executable=bool(mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)),
                )
            )
        return files

    @staticmethod
    def _contained(repo_dir: Path, path: Path) -> Path:
        resolved = path.resolve()
        if not resolved.is_relative_to(repo_dir.resolve()):
            raise InvalidPackagePath(f"Path {path} resolves outside of the source")
        return path


def create_backend(
    *,
    mirror_dir: Path | None,
    api_base_url: str,
    raw_base_url: str,
    timeout: float | None,
) -> SourceBackend:
    if mirror_dir is not None:
        logger.info("Reading sources from local mirror {dir}", dir=mirror_dir)
        return LocalBackend(mirror_dir)
    return GitHubBackend(
        api_base_url=api_base_url,
        raw_base_url=raw_base_url,
        timeout=timeout,
    )
