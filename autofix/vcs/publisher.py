"""
Turns an edit set into a branch, one commit per edit, and a pull request.
"""

import secrets
import time
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from ..core.errors import HostAPIFailure
from ..core.schema import Edit
from .github import GitHubClient
from util.logging import logger


@dataclass
class PullRequestRef:
    url: str
    number: Optional[int]
    branch: str
    base: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class VcsPublisher:
    """Publishes edit sets against the hosting API."""

    def __init__(self, client: GitHubClient, branch_prefix: str = "autofix", commit_prefix: str = "Autofix"):
        self.client = client
        self.branch_prefix = branch_prefix
        self.commit_prefix = commit_prefix

    def branch_name(self, suffix: str = "") -> str:
        name = f"{self.branch_prefix}-{int(time.time() * 1000)}"
        return f"{name}-{suffix}" if suffix else name

    def commit_message(self, path: str) -> str:
        return f"{self.commit_prefix}: fix - {path}"

    async def _create_branch(self, owner: str, repo: str, base_sha: str) -> str:
        branch = self.branch_name()
        try:
            await self.client.create_branch(owner, repo, branch, base_sha)
        except HostAPIFailure as e:
            if e.status != 422:
                raise
            # Name collision; one retry with a random suffix
            branch = self.branch_name(secrets.token_hex(3))
            logger.log_publish_step("branch", f"{owner}/{repo}", "retry", {"branch": branch})
            await self.client.create_branch(owner, repo, branch, base_sha)
        return branch

    async def publish(self, owner: str, repo: str, edits: List[Edit], title: str, body: str,
                      base_branch: Optional[str] = None) -> PullRequestRef:
        """
        Create a branch from the base head, commit every edit sequentially, then open a PR.

        Any failing call aborts the remaining steps and raises HostAPIFailure. A branch
        (and commits) created before the failure are left in place.
        """
        full_name = f"{owner}/{repo}"
        base = base_branch or await self.client.get_default_branch(owner, repo)
        base_sha = await self.client.get_ref_sha(owner, repo, base)

        branch = await self._create_branch(owner, repo, base_sha)
        logger.log_publish_step("branch", full_name, details={"branch": branch, "base": base})

        try:
            for edit in edits:
                sha = await self.client.get_file_sha(owner, repo, edit.path, branch)
                await self.client.put_file(owner, repo, edit.path, edit.updated_content,
                                           self.commit_message(edit.path), branch, sha)
                logger.log_publish_step("commit", full_name, details={"branch": branch, "path": edit.path})

            pr = await self.client.create_pull_request(owner, repo, title=title, head=branch,
                                                       base=base, body=body)
        except HostAPIFailure as e:
            logger.log_publish_step(e.operation.replace(" ", "_"), full_name, "failed", {
                "branch": branch,
                "upstream_status": e.status,
                "note": "partially created branch left in place",
            })
            raise

        ref = PullRequestRef(url=pr.get("html_url", ""), number=pr.get("number"), branch=branch, base=base)
        logger.log_publish_step("pull_request", full_name, details={"pr_url": ref.url, "branch": branch})
        return ref
