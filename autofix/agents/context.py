"""
Repository context fetcher.

Builds the bounded snapshot a fix generator reasons over: README, first manifest
found, the full file path list and the content of the first N files in tree order.
Read-only against the hosting API.
"""

import asyncio
import re
from typing import List, Optional, Tuple

from ..core.errors import HostAPIFailure, InvalidRepositoryURL
from ..core.schema import RepoContext, RepoRef, SampledFile
from ..vcs.github import GitHubClient
from util.logging import logger

REPO_URL_PATTERN = re.compile(r"github\.com[/:]([^/\s]+)/([^/\s?#]+)")

TREE_REFS = ("main", "master")

MANIFEST_CANDIDATES = (
    "package.json",
    "pyproject.toml",
    "requirements.txt",
    "go.mod",
    "Cargo.toml",
    "pom.xml",
)

FETCH_CONCURRENCY = 5


def parse_repo_url(repo_url: str) -> RepoRef:
    """Extract owner/repo from a github.com URL; raises InvalidRepositoryURL."""
    match = REPO_URL_PATTERN.search(repo_url or "")
    if not match:
        raise InvalidRepositoryURL(repo_url)
    owner, repo = match.group(1), match.group(2)
    if repo.endswith(".git"):
        repo = repo[:-4]
    if not owner or not repo:
        raise InvalidRepositoryURL(repo_url)
    return RepoRef(owner=owner, repo=repo)


class ContextFetcher:
    """Fetches a RepoContext through a GitHubClient."""

    def __init__(self, client: GitHubClient, file_limit: int = 50, char_limit: int = 3500):
        self.client = client
        self.file_limit = file_limit
        self.char_limit = char_limit

    async def _read_text(self, ref: RepoRef, path: str) -> str:
        """File content, or empty string on any fetch failure."""
        try:
            text = await self.client.get_file_text(ref.owner, ref.repo, path)
        except HostAPIFailure as e:
            logger.debug(f"Context fetch skipped {ref.full_name}/{path}: {e.status}")
            return ""
        return text or ""

    async def _find_manifest(self, ref: RepoRef) -> Tuple[Optional[str], str]:
        for candidate in MANIFEST_CANDIDATES:
            text = await self._read_text(ref, candidate)
            if text:
                return candidate, text
        return None, ""

    async def _list_files(self, ref: RepoRef) -> List[str]:
        for tree_ref in TREE_REFS:
            try:
                tree = await self.client.get_tree(ref.owner, ref.repo, tree_ref)
            except HostAPIFailure as e:
                logger.debug(f"Tree lookup {ref.full_name}@{tree_ref} failed: {e.status}")
                continue
            if tree is not None:
                return [item["path"] for item in tree if item.get("type") == "blob" and item.get("path")]
        return []

    async def _sample(self, ref: RepoRef, paths: List[str]) -> List[SampledFile]:
        semaphore = asyncio.Semaphore(FETCH_CONCURRENCY)

        async def read(path: str) -> SampledFile:
            async with semaphore:
                text = await self._read_text(ref, path)
            return SampledFile(path=path, content=text[:self.char_limit])

        # gather preserves input order
        return list(await asyncio.gather(*(read(p) for p in paths)))

    async def fetch(self, repo_url: str) -> RepoContext:
        ref = parse_repo_url(repo_url)

        readme = await self._read_text(ref, "README.md")
        manifest_path, manifest = await self._find_manifest(ref)
        file_paths = await self._list_files(ref)
        sampled = await self._sample(ref, file_paths[:self.file_limit])

        logger.log_operation("context.fetch", "success", {
            "repo": ref.full_name,
            "file_count": len(file_paths),
            "sampled": len(sampled),
            "manifest": manifest_path,
        })
        return RepoContext(
            repo=ref,
            readme=readme,
            manifest=manifest,
            manifest_path=manifest_path,
            file_paths=file_paths,
            sampled_files=sampled,
        )
