"""
Request models for the HTTP surface.

Wire names are camelCase; attributes are snake_case via aliases. Responses are
plain dicts built from the domain objects' to_dict().
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Optional

from ..core.orchestrator import ScanRequest
from ..core.schema import Edit


class EditModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    path: str
    updated_content: Optional[str] = Field(default=None, alias="updatedContent")
    content: Optional[str] = None
    summary: Optional[str] = ""

    @field_validator('path')
    @classmethod
    def path_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('path cannot be empty')
        return v.strip()

    def to_edit(self) -> Edit:
        return Edit(path=self.path, updated_content=self.updated_content or self.content or "",
                    summary=self.summary or "")


class ScanRequestModel(BaseModel):
    """Body of POST /autofix and POST /scan."""
    model_config = ConfigDict(populate_by_name=True)

    repo_url: Optional[str] = Field(default=None, alias="repoUrl")
    dry_run: bool = Field(default=False, alias="dryRun")
    edits: Optional[List[EditModel]] = None
    findings: List[Dict[str, Any]] = Field(default_factory=list)
    pr_title: Optional[str] = Field(default=None, alias="prTitle")
    pr_body: Optional[str] = Field(default=None, alias="prBody")
    base_branch: Optional[str] = Field(default=None, alias="baseBranch")

    @field_validator('edits')
    @classmethod
    def edits_must_carry_content(cls, v):
        if v and not any(e.updated_content or e.content for e in v):
            raise ValueError('edits must include updatedContent')
        return v

    def to_request(self, mode: str) -> ScanRequest:
        edits = [e.to_edit() for e in self.edits if e.updated_content or e.content] if self.edits else None
        return ScanRequest(
            repo_url=self.repo_url,
            mode=mode,
            dry_run=self.dry_run,
            edits=edits,
            findings=self.findings,
            pr_title=self.pr_title,
            pr_body=self.pr_body,
            base_branch=self.base_branch,
        )


class DemoEditsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    repo_url: Optional[str] = Field(default=None, alias="repoUrl")


class AutoscanReposRequest(BaseModel):
    # Type checked by the route so the error names the field
    repos: Any = None


class CheckRunRequest(BaseModel):
    owner: Optional[str] = None
    repo: Optional[str] = None
    head_sha: Optional[str] = None
    name: Optional[str] = None
    status: str = "completed"
    conclusion: Optional[str] = "neutral"
    output: Optional[Dict[str, Any]] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.owner and self.repo and self.head_sha)
