"""
Scan orchestrator: the patch lifecycle from request to dry-run record, pending
proposal or published pull request.

Per request: validate -> decide disposition -> obtain edits (generation or caller
supplied, with the quota policy applied) -> persist a PatchRecord -> then stop
(dry-run, no patches, persist-only), queue a Proposal, or publish and link the
PR back to the record created by this same request.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from ..agents.context import ContextFetcher, parse_repo_url
from ..agents.generator import FixGenerator
from ..vcs.publisher import PullRequestRef, VcsPublisher
from .config import Settings
from .errors import (
    AutoPublishDisabled,
    GenerationFailed,
    HostCredentialMissing,
    MissingRepository,
    NotFound,
    NotPending,
)
from .quota import apply_quota_policy, is_quota_error
from .schema import Edit, PatchRecord, Proposal, utc_now
from .store import PatchStore, ProposalStore
from util.logging import logger

SCAN_MODES = ("autofix", "scan", "autoscan")

# Dispositions, decided before any generation call
DRY_RUN = "dry_run"
PROPOSE = "proposal"
PUBLISH = "publish"
PERSIST_ONLY = "persist_only"

NO_FIXES_MESSAGE = "No fixes proposed."


@dataclass
class ScanRequest:
    repo_url: Optional[str]
    mode: str = "autofix"  # autofix, scan, autoscan
    dry_run: bool = False
    edits: Optional[List[Edit]] = None
    findings: List[Dict[str, Any]] = field(default_factory=list)
    pr_title: Optional[str] = None
    pr_body: Optional[str] = None
    base_branch: Optional[str] = None

    def __post_init__(self):
        if self.mode not in SCAN_MODES:
            raise ValueError(f"Invalid scan mode: {self.mode}")

    @property
    def has_caller_edits(self) -> bool:
        return bool(self.edits)


@dataclass
class ScanOutcome:
    kind: str  # dry_run, no_patches, proposal, published, persisted
    patch_id: str
    edits: List[Edit] = field(default_factory=list)
    proposal: Optional[Proposal] = None
    pr: Optional[PullRequestRef] = None
    demo_fallback: bool = False
    retry_after: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Response body for the HTTP layer."""
        if self.kind == "dry_run":
            data = {"dryRun": True, "edits": [e.to_dict() for e in self.edits], "patchId": self.patch_id}
        elif self.kind == "no_patches":
            return {"noPatches": True, "message": NO_FIXES_MESSAGE, "patchId": self.patch_id}
        elif self.kind == "proposal":
            return {"proposal": self.proposal.to_dict()}
        elif self.kind == "published":
            data = {"ok": True, "pr": self.pr.to_dict(), "prUrl": self.pr.url, "patchId": self.patch_id}
        else:
            data = {"ok": True, "persisted": True, "patchId": self.patch_id,
                    "edits": [e.to_dict() for e in self.edits]}

        if self.demo_fallback:
            data["demoFallback"] = True
            data["retryAfter"] = self.retry_after
        return data


@dataclass
class ApprovalOutcome:
    proposal: Proposal
    pr: PullRequestRef

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": True, "proposal": self.proposal.to_dict(), "pr": self.pr.to_dict()}


class ScanOrchestrator:
    """Drives context fetch, generation, persistence, approval and publication."""

    def __init__(self, settings: Settings, fetcher: ContextFetcher, generator: FixGenerator,
                 publisher: VcsPublisher, patches: PatchStore, proposals: ProposalStore):
        self.settings = settings
        self.fetcher = fetcher
        self.generator = generator
        self.publisher = publisher
        self.patches = patches
        self.proposals = proposals
        # Only one approve/reject decision in flight at a time
        self._decision_lock = asyncio.Lock()

    def default_title(self) -> str:
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        return f"{self.settings.commit_prefix}: Automated Fixes {today}"

    def default_body(self) -> str:
        return f"Proposed fixes generated by {self.settings.commit_prefix} autonomous patch generator."

    def _disposition(self, request: ScanRequest) -> str:
        if request.dry_run:
            return DRY_RUN
        if self.settings.require_approval:
            return PROPOSE
        if request.mode == "autoscan" and not self.settings.auto_pr:
            return PERSIST_ONLY
        return PUBLISH

    def _check_can_publish(self, mode: str) -> None:
        if mode == "autofix" and not self.settings.auto_pr:
            raise AutoPublishDisabled()
        if not self.settings.github_token:
            raise HostCredentialMissing()

    def _record_source(self, request: ScanRequest, disposition: str, demo_fallback: bool,
                       edit_count: int) -> str:
        if demo_fallback:
            return "demo"
        if request.mode == "autoscan":
            return "autoscan"
        if disposition == DRY_RUN:
            return "dry-run"
        if disposition == PROPOSE and edit_count:
            return "proposal"
        return "manual-scan"

    async def _obtain_edits(self, request: ScanRequest, repo_url: str) -> Tuple[List[Edit], bool, Optional[int]]:
        """Returns (edits, demo_fallback, retry_after)."""
        if request.has_caller_edits:
            return list(request.edits), False, None

        context = await self.fetcher.fetch(repo_url)
        try:
            edits = await self.generator.generate(repo_url, request.findings, context)
        except GenerationFailed as e:
            if not is_quota_error(e.message):
                raise
            allow_demo = self.settings.demo_fallback and request.mode != "autoscan"
            logger.log_scan(repo_url, request.mode, "quota_exceeded", {"demo_fallback": allow_demo})
            fallback = apply_quota_policy(e, repo_url, allow_demo)
            return fallback.edits, True, fallback.retry_after
        return edits, False, None

    async def run(self, request: ScanRequest) -> ScanOutcome:
        if not request.repo_url or not request.repo_url.strip():
            raise MissingRepository()
        repo_url = request.repo_url.strip()
        ref = parse_repo_url(repo_url)

        disposition = self._disposition(request)
        if disposition == PUBLISH:
            self._check_can_publish(request.mode)
        logger.log_scan(repo_url, request.mode, "generating", {
            "disposition": disposition,
            "caller_edits": request.has_caller_edits,
        })

        edits, demo_fallback, retry_after = await self._obtain_edits(request, repo_url)

        source = self._record_source(request, disposition, demo_fallback, len(edits))
        record = await self.patches.add(PatchRecord.create(
            repo_url, edits, source, demo_fallback=demo_fallback, retry_after=retry_after,
        ))
        logger.log_patch_persisted(record.id, repo_url, source, len(edits), demo_fallback)

        outcome = ScanOutcome(kind=disposition, patch_id=record.id, edits=edits,
                              demo_fallback=demo_fallback, retry_after=retry_after)

        if disposition == DRY_RUN:
            outcome.kind = "dry_run"
            return outcome

        if not edits:
            logger.log_scan(repo_url, request.mode, "no_patches")
            outcome.kind = "no_patches"
            return outcome

        if disposition == PROPOSE:
            proposal = await self.proposals.add(Proposal.create(
                repo_url, edits, patch_id=record.id, pr_title=request.pr_title, pr_body=request.pr_body,
            ))
            logger.log_scan(repo_url, request.mode, "proposed", {"proposal_id": proposal.id})
            outcome.kind = "proposal"
            outcome.proposal = proposal
            return outcome

        if disposition == PERSIST_ONLY:
            logger.log_scan(repo_url, request.mode, "persisted", {"patch_id": record.id})
            outcome.kind = "persisted"
            return outcome

        pr = await self.publisher.publish(
            ref.owner, ref.repo, edits,
            title=request.pr_title or self.default_title(),
            body=request.pr_body or self.default_body(),
            base_branch=request.base_branch,
        )
        await self.patches.update(record.id, pr_url=pr.url, source="pr")
        logger.log_scan(repo_url, request.mode, "published", {"patch_id": record.id, "pr_url": pr.url})
        outcome.kind = "published"
        outcome.pr = pr
        return outcome

    async def _pending_proposal(self, proposal_id: str) -> Proposal:
        proposal = await self.proposals.get(proposal_id)
        if proposal is None:
            raise NotFound("proposal", proposal_id)
        if not proposal.is_pending:
            raise NotPending(proposal_id, proposal.status)
        return proposal

    async def approve(self, proposal_id: str) -> ApprovalOutcome:
        """
        Publish a pending proposal and link the PR to its patch record.

        A failed publication leaves the proposal pending so it can be approved again.
        """
        async with self._decision_lock:
            proposal = await self._pending_proposal(proposal_id)
            if not self.settings.github_token:
                raise HostCredentialMissing()

            ref = parse_repo_url(proposal.repo_url)
            pr = await self.publisher.publish(
                ref.owner, ref.repo, proposal.patches,
                title=proposal.pr_title or self.default_title(),
                body=proposal.pr_body or self.default_body(),
            )
            updated = await self.proposals.update(proposal_id, status="approved", pr_url=pr.url,
                                                  decided_at=utc_now())

            patch_id = proposal.patch_id
            if not patch_id:
                # Proposals written before explicit linkage carry no patch id
                latest = await self.patches.latest_for_repo(proposal.repo_url)
                patch_id = latest.id if latest else None
            if patch_id:
                await self.patches.update(patch_id, pr_url=pr.url, source="pr")

        logger.log_proposal_decision(proposal_id, "approved", proposal.repo_url, pr.url)
        return ApprovalOutcome(proposal=updated, pr=pr)

    async def reject(self, proposal_id: str) -> Proposal:
        async with self._decision_lock:
            proposal = await self._pending_proposal(proposal_id)
            updated = await self.proposals.update(proposal_id, status="rejected", decided_at=utc_now())

        logger.log_proposal_decision(proposal_id, "rejected", proposal.repo_url)
        return updated
