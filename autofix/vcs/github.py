"""
Thin async client for the GitHub REST API.

Only the calls the patch lifecycle needs: repository metadata, trees, contents,
refs, file writes, pull requests and check runs. Every non-2xx response raises
HostAPIFailure carrying the upstream status and body; nothing is retried here.
"""

import base64
from urllib.parse import quote
from typing import Any, Dict, List, Optional

import httpx

from ..core.errors import HostAPIFailure
from util.logging import logger

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "repo-autofix/1.0"


def encode_content(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_content(data: str) -> str:
    return base64.b64decode(data or "").decode("utf-8", errors="replace")


def contents_path(owner: str, repo: str, path: str) -> str:
    """Contents endpoint for a repository file; segments are percent-encoded, slashes kept."""
    return f"/repos/{owner}/{repo}/contents/{quote(path, safe='/')}"


class GitHubClient:
    """Async GitHub API client sharing one httpx connection pool."""

    def __init__(self, http: httpx.AsyncClient, token: str = "", api_url: str = DEFAULT_API_URL):
        self.http = http
        self.token = token
        self.api_url = api_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, operation: str,
                       json_body: Optional[Dict[str, Any]] = None,
                       params: Optional[Dict[str, str]] = None,
                       allow_404: bool = False) -> Optional[Any]:
        url = f"{self.api_url}{path}"
        try:
            response = await self.http.request(method, url, headers=self._headers(),
                                               json=json_body, params=params)
        except httpx.HTTPError as e:
            raise HostAPIFailure(operation, 0, str(e)) from e

        if allow_404 and response.status_code == 404:
            return None
        if response.status_code < 200 or response.status_code >= 300:
            logger.debug(f"GitHub {method} {path} -> {response.status_code}")
            raise HostAPIFailure(operation, response.status_code, response.text)
        if not response.content:
            return {}
        return response.json()

    # Reads

    async def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        return await self._request("GET", f"/repos/{owner}/{repo}", "get repository")

    async def get_default_branch(self, owner: str, repo: str) -> str:
        data = await self.get_repository(owner, repo)
        return data.get("default_branch") or "main"

    async def get_tree(self, owner: str, repo: str, ref: str) -> Optional[List[Dict[str, Any]]]:
        """Recursive tree listing for a ref, or None when the ref does not exist."""
        data = await self._request("GET", f"/repos/{owner}/{repo}/git/trees/{ref}", "get tree",
                                   params={"recursive": "1"}, allow_404=True)
        if data is None:
            return None
        return data.get("tree", [])

    async def get_file_text(self, owner: str, repo: str, path: str, ref: Optional[str] = None) -> Optional[str]:
        """Decoded file content, or None when the file does not exist."""
        params = {"ref": ref} if ref else None
        data = await self._request("GET", contents_path(owner, repo, path), "get contents",
                                   params=params, allow_404=True)
        if data is None or not isinstance(data, dict):
            return None
        return decode_content(data.get("content", ""))

    async def get_file_sha(self, owner: str, repo: str, path: str, ref: str) -> Optional[str]:
        data = await self._request("GET", contents_path(owner, repo, path), "get file sha",
                                   params={"ref": ref}, allow_404=True)
        if not isinstance(data, dict):
            return None
        return data.get("sha")

    async def get_ref_sha(self, owner: str, repo: str, branch: str) -> str:
        data = await self._request("GET", f"/repos/{owner}/{repo}/git/ref/heads/{branch}", "get ref")
        return data["object"]["sha"]

    # Writes

    async def create_branch(self, owner: str, repo: str, branch: str, sha: str) -> Dict[str, Any]:
        return await self._request("POST", f"/repos/{owner}/{repo}/git/refs", "create branch",
                                   json_body={"ref": f"refs/heads/{branch}", "sha": sha})

    async def put_file(self, owner: str, repo: str, path: str, content: str, message: str,
                       branch: str, sha: Optional[str] = None) -> Dict[str, Any]:
        body = {
            "message": message,
            "content": encode_content(content),
            "branch": branch,
        }
        if sha:
            body["sha"] = sha
        return await self._request("PUT", contents_path(owner, repo, path), "commit file",
                                   json_body=body)

    async def create_pull_request(self, owner: str, repo: str, title: str, head: str,
                                  base: str, body: str) -> Dict[str, Any]:
        return await self._request("POST", f"/repos/{owner}/{repo}/pulls", "create pull request",
                                   json_body={"title": title, "head": head, "base": base, "body": body})

    async def create_check_run(self, owner: str, repo: str, head_sha: str, name: str,
                               status: str = "completed", conclusion: Optional[str] = "neutral",
                               output: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        body = {"name": name, "head_sha": head_sha, "status": status}
        if status == "completed" and conclusion:
            body["conclusion"] = conclusion
        body["output"] = output or {"title": name, "summary": "Automated scan results"}
        return await self._request("POST", f"/repos/{owner}/{repo}/check-runs", "create check run",
                                   json_body=body)
