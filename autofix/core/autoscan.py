"""
Autoscan loop - runs the scan pipeline unattended over the registered repositories.

One pass runs immediately when the service starts, then one per interval. Each
repository is isolated: a failure is logged and recorded and the pass moves on.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .config import Settings
from .errors import AutofixError
from .orchestrator import ScanOrchestrator, ScanRequest
from .schema import utc_now
from .store import AutoscanRegistry
from util.logging import logger

# Orchestrator outcome kind -> autoscan result
_RESULTS = {
    "proposal": "proposal",
    "published": "published",
    "persisted": "persisted",
    "no_patches": "no_patches",
    "dry_run": "persisted",
}


@dataclass
class AutoscanResult:
    repo_url: str
    result: str  # proposal, published, persisted, no_patches, failed
    patch_id: Optional[str] = None
    proposal_id: Optional[str] = None
    pr_url: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repoUrl": self.repo_url,
            "result": self.result,
            "patchId": self.patch_id,
            "proposalId": self.proposal_id,
            "prUrl": self.pr_url,
            "error": self.error,
        }


class AutoscanService:
    """Timer-driven scanning of the autoscan registry."""

    def __init__(self, settings: Settings, registry: AutoscanRegistry, orchestrator: ScanOrchestrator):
        self.settings = settings
        self.registry = registry
        self.orchestrator = orchestrator
        self._task: Optional[asyncio.Task] = None
        self._pass_lock = asyncio.Lock()
        self.last_run_at: Optional[str] = None
        self.last_duration_sec: Optional[float] = None
        self.last_results: List[AutoscanResult] = []
        self.passes = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def seed(self) -> List[str]:
        """Populate an empty registry from AUTOSCAN_REPOS."""
        repos = await self.registry.list()
        if repos or not self.settings.autoscan_repos:
            return repos
        repos = await self.registry.save(list(self.settings.autoscan_repos))
        logger.info(f"Autoscan registry seeded with {len(repos)} repo(s)")
        return repos

    async def _scan_repo(self, repo_url: str) -> AutoscanResult:
        try:
            outcome = await self.orchestrator.run(ScanRequest(repo_url=repo_url, mode="autoscan"))
        except AutofixError as e:
            logger.log_autoscan_repo(repo_url, "failed", {"error": e.message})
            return AutoscanResult(repo_url=repo_url, result="failed", error=e.message)
        except Exception as e:
            # Error isolation: one repository never aborts the pass
            logger.exception(f"Autoscan: unexpected failure for {repo_url}: {e}")
            return AutoscanResult(repo_url=repo_url, result="failed", error=str(e))

        result = AutoscanResult(
            repo_url=repo_url,
            result=_RESULTS.get(outcome.kind, outcome.kind),
            patch_id=outcome.patch_id,
            proposal_id=outcome.proposal.id if outcome.proposal else None,
            pr_url=outcome.pr.url if outcome.pr else None,
        )
        logger.log_autoscan_repo(repo_url, result.result, {"patch_id": result.patch_id})
        return result

    async def run_once(self) -> List[AutoscanResult]:
        """Scan every registered repository once, in registry order."""
        async with self._pass_lock:
            start = time.monotonic()
            repos = await self.registry.list()
            results = []
            for repo_url in repos:
                results.append(await self._scan_repo(repo_url))

            self.passes += 1
            self.last_run_at = utc_now()
            self.last_duration_sec = round(time.monotonic() - start, 3)
            self.last_results = results

        failed = sum(1 for r in results if r.result == "failed")
        logger.log_operation("autoscan.pass", "completed", {
            "repos": len(repos),
            "failed": failed,
            "duration_sec": self.last_duration_sec,
        })
        return results

    async def run_forever(self) -> None:
        interval = self.settings.autoscan_interval_sec
        logger.info(f"Autoscan loop started (every {self.settings.autoscan_interval_min} min)")
        while True:
            try:
                await self.run_once()
            except AutofixError as e:
                # Registry unreadable; try again next interval
                logger.error(f"Autoscan pass failed: {e.message}")
            await asyncio.sleep(interval)

    def start(self) -> bool:
        if not self.settings.autoscan_enabled:
            logger.info("Autoscan disabled (AUTOSCAN_ENABLED=false). Skipping start.")
            return False
        if self.running:
            raise RuntimeError("Autoscan already running")
        self._task = asyncio.create_task(self.run_forever(), name="autoscan")
        return True

    async def stop(self) -> None:
        if not self.running:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Autoscan loop stopped")

    async def status(self) -> Dict[str, Any]:
        """Current loop state for monitoring."""
        if not self.settings.autoscan_enabled:
            state = "disabled"
        else:
            state = "running" if self.running else "stopped"
        return {
            "status": state,
            "intervalMin": self.settings.autoscan_interval_min,
            "repos": await self.registry.list(),
            "passes": self.passes,
            "lastRunAt": self.last_run_at,
            "lastDurationSec": self.last_duration_sec,
            "lastResults": [r.to_dict() for r in self.last_results],
        }
