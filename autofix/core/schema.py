"""
Persisted data model: edits, patch records and proposals.
Records are stored as camelCase JSON documents; attributes are snake_case.
"""

import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

PATCH_SOURCES = ("dry-run", "manual-scan", "autoscan", "proposal", "pr", "demo")
PROPOSAL_STATUSES = ("pending", "approved", "rejected")

# Attribute name -> document key, for fields whose names differ
_PATCH_KEYS = {
    "repo_url": "repoUrl",
    "created_at": "createdAt",
    "demo_fallback": "demoFallback",
    "retry_after": "retryAfter",
    "pr_url": "prUrl",
    "signed_at": "signedAt",
}
_PROPOSAL_KEYS = {
    "repo_url": "repoUrl",
    "created_at": "createdAt",
    "pr_url": "prUrl",
    "patch_id": "patchId",
    "pr_title": "prTitle",
    "pr_body": "prBody",
    "decided_at": "decidedAt",
}


def utc_now() -> str:
    """ISO-8601 UTC timestamp used for every createdAt/signedAt value."""
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


@dataclass
class Edit:
    path: str
    updated_content: str
    summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = {"path": self.path, "updatedContent": self.updated_content}
        if self.summary:
            data["summary"] = self.summary
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Edit":
        return cls(
            path=data["path"],
            updated_content=data["updatedContent"],
            summary=data.get("summary") or "",
        )


def _dump(values: Dict[str, Any], keys: Dict[str, str]) -> Dict[str, Any]:
    out = {}
    for name, value in values.items():
        if value is None:
            continue
        out[keys.get(name, name)] = value
    return out


def _load(data: Dict[str, Any], keys: Dict[str, str]) -> Dict[str, Any]:
    reverse = {doc_key: name for name, doc_key in keys.items()}
    return {reverse.get(k, k): v for k, v in data.items()}


@dataclass
class PatchRecord:
    """Durable audit entry for one generation attempt."""
    id: str
    repo_url: str
    patches: List[Edit]
    created_at: str
    source: str  # one of PATCH_SOURCES
    demo_fallback: bool = False
    retry_after: Optional[int] = None
    pr_url: Optional[str] = None
    signature: Optional[str] = None
    signed_at: Optional[str] = None
    signer: Optional[str] = None

    def __post_init__(self):
        if self.source not in PATCH_SOURCES:
            raise ValueError(f"Invalid patch source: {self.source}")

    @classmethod
    def create(cls, repo_url: str, patches: List[Edit], source: str, **extra) -> "PatchRecord":
        return cls(id=new_id("patch"), repo_url=repo_url, patches=list(patches),
                   created_at=utc_now(), source=source, **extra)

    @property
    def is_signed(self) -> bool:
        return bool(self.signature)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage."""
        data = asdict(self)
        data["patches"] = [edit.to_dict() for edit in self.patches]
        return _dump(data, _PATCH_KEYS)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PatchRecord":
        """Create from dictionary (for loading from storage)."""
        values = _load(data, _PATCH_KEYS)
        values["patches"] = [Edit.from_dict(p) for p in values.get("patches", [])]
        known = set(cls.__dataclass_fields__)
        return cls(**{k: v for k, v in values.items() if k in known})


@dataclass
class Proposal:
    """A patch set waiting for a human decision before publication."""
    id: str
    repo_url: str
    patches: List[Edit]
    created_at: str
    status: str = "pending"  # pending, approved, rejected
    pr_url: Optional[str] = None
    patch_id: Optional[str] = None
    pr_title: Optional[str] = None
    pr_body: Optional[str] = None
    decided_at: Optional[str] = None

    def __post_init__(self):
        if self.status not in PROPOSAL_STATUSES:
            raise ValueError(f"Invalid proposal status: {self.status}")

    @classmethod
    def create(cls, repo_url: str, patches: List[Edit], **extra) -> "Proposal":
        return cls(id=new_id("proposal"), repo_url=repo_url, patches=list(patches),
                   created_at=utc_now(), **extra)

    @property
    def is_pending(self) -> bool:
        return self.status == "pending"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["patches"] = [edit.to_dict() for edit in self.patches]
        return _dump(data, _PROPOSAL_KEYS)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Proposal":
        values = _load(data, _PROPOSAL_KEYS)
        values["patches"] = [Edit.from_dict(p) for p in values.get("patches", [])]
        known = set(cls.__dataclass_fields__)
        return cls(**{k: v for k, v in values.items() if k in known})


@dataclass
class RepoRef:
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass
class SampledFile:
    path: str
    content: str = ""


@dataclass
class RepoContext:
    """Bounded snapshot of a repository handed to the fix generator."""
    repo: RepoRef
    readme: str = ""
    manifest: str = ""
    manifest_path: Optional[str] = None
    file_paths: List[str] = field(default_factory=list)
    sampled_files: List[SampledFile] = field(default_factory=list)

    @property
    def structure(self) -> str:
        return "\n".join(self.file_paths)
