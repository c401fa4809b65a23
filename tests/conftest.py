"""
Shared fixtures: isolated settings, an in-memory GitHub API behind
httpx.MockTransport, and a scripted generation provider.
"""

import base64
import json
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

import httpx
import pytest

from autofix.agents.providers import GenerationProvider
from autofix.core.config import Settings

API_URL = "https://api.github.test"
REPO_URL = "https://github.com/acme/widgets"


class FakeGitHub:
    """Minimal stateful stand-in for the GitHub REST endpoints the service calls."""

    def __init__(self):
        self.default_branch = "main"
        self.trees: Dict[str, List[str]] = {"main": ["README.md", "package.json", "src/app.js"]}
        self.files: Dict[str, str] = {
            "README.md": "# widgets\n",
            "package.json": '{"name": "widgets"}',
            "src/app.js": "eval(userInput);\n",
        }
        self.missing_files: set = set()
        self.branch_collisions = 0
        self.fail_on: Dict[str, int] = {}  # operation -> status code
        self.requests: List[httpx.Request] = []
        self.branches: List[str] = []
        self.commits: List[Dict[str, Any]] = []
        self.pulls: List[Dict[str, Any]] = []
        self.check_runs: List[Dict[str, Any]] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport)

    def calls(self, method: str, fragment: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and fragment in r.url.path]

    def _fail(self, operation: str) -> Optional[httpx.Response]:
        status = self.fail_on.get(operation)
        if status:
            return httpx.Response(status, json={"message": f"{operation} rejected"})
        return None

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = unquote(request.url.path)
        parts = path.strip("/").split("/")
        # /repos/{owner}/{repo}/...
        rest = parts[3:]
        method = request.method

        if not rest and method == "GET":
            return httpx.Response(200, json={"default_branch": self.default_branch})

        if rest[:2] == ["git", "trees"] and method == "GET":
            ref = rest[2]
            if ref not in self.trees:
                return httpx.Response(404, json={"message": "Not Found"})
            tree = [{"path": p, "type": "blob"} for p in self.trees[ref]] + [{"path": "src", "type": "tree"}]
            return httpx.Response(200, json={"tree": tree})

        if rest[:1] == ["contents"]:
            file_path = "/".join(rest[1:])
            if method == "GET":
                failed = self._fail("get_contents")
                if failed:
                    return failed
                if file_path in self.missing_files or file_path not in self.files:
                    return httpx.Response(404, json={"message": "Not Found"})
                encoded = base64.b64encode(self.files[file_path].encode()).decode()
                return httpx.Response(200, json={"content": encoded, "sha": f"sha-{file_path}"})
            if method == "PUT":
                failed = self._fail("put_file")
                if failed:
                    return failed
                body = json.loads(request.content)
                self.commits.append({"path": file_path, **body})
                return httpx.Response(201, json={"commit": {"sha": f"c{len(self.commits)}"}})

        if rest[:3] == ["git", "ref", "heads"] and method == "GET":
            return httpx.Response(200, json={"object": {"sha": "base-sha"}})

        if rest[:2] == ["git", "refs"] and method == "POST":
            failed = self._fail("create_branch")
            if failed:
                return failed
            body = json.loads(request.content)
            if self.branch_collisions > 0:
                self.branch_collisions -= 1
                return httpx.Response(422, json={"message": "Reference already exists"})
            self.branches.append(body["ref"].replace("refs/heads/", ""))
            return httpx.Response(201, json={"ref": body["ref"]})

        if rest[:1] == ["pulls"] and method == "POST":
            failed = self._fail("create_pull")
            if failed:
                return failed
            body = json.loads(request.content)
            self.pulls.append(body)
            number = len(self.pulls)
            return httpx.Response(201, json={
                "number": number,
                "html_url": f"https://github.com/{parts[1]}/{parts[2]}/pull/{number}",
            })

        if rest[:1] == ["check-runs"] and method == "POST":
            body = json.loads(request.content)
            self.check_runs.append(body)
            return httpx.Response(201, json={"id": len(self.check_runs), **body})

        return httpx.Response(404, json={"message": f"unhandled {method} {path}"})


class ScriptedProvider(GenerationProvider):
    """Returns queued responses in order; queued exceptions are raised."""

    name = "scripted"

    def __init__(self, *responses):
        super().__init__("scripted-model")
        self.responses = list(responses)
        self.prompts: List[Dict[str, str]] = []

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.prompts.append({"system": system_prompt, "user": user_prompt})
        if not self.responses:
            return "[]"
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def edits_json(*paths: str) -> str:
    return json.dumps([
        {"path": p, "updatedContent": f"fixed {p}\n", "summary": f"fix {p}"} for p in paths
    ])


@pytest.fixture
def settings(tmp_path):
    """Settings isolated to a temp data dir, autoscan off, fixed signing key."""
    return Settings(
        data_dir=tmp_path / "data",
        github_token="test-token",
        github_api_url=API_URL,
        generation_provider="gemini",
        gemini_api_key="test-gemini-key",
        auto_pr=True,
        require_approval=False,
        demo_fallback=True,
        admin_key="",
        signing_key="test-signing-key",
        signer_id="test-signer",
        autoscan_enabled=False,
    )


@pytest.fixture
def fake_github():
    return FakeGitHub()
