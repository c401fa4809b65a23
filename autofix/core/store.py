"""
Durable JSON document stores: patch records, proposals and the autoscan registry.

Each store owns one JSON document holding a single named top-level array. Every
mutation is a full read-modify-write of that document; the cycle is serialised
behind a per-store asyncio lock so concurrent tasks in this process cannot lose
updates. Processes sharing a document still need external locking.
"""

import asyncio
import json
import os
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from .errors import StoreError
from .schema import PatchRecord, Proposal
from util.logging import logger

T = TypeVar("T")


def _read_document(path: Path, field_name: str) -> List[Any]:
    if not path.exists():
        return []
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise StoreError(f"Failed to read {path.name}: {e}") from e

    items = data.get(field_name) if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise StoreError(f"{path.name} has no '{field_name}' array")
    return items


def _write_document(path: Path, field_name: str, items: List[Any]) -> None:
    """Write atomically: temp file in the same directory, then rename over the target."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump({field_name: items}, f, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except OSError as e:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise StoreError(f"Failed to write {path.name}: {e}") from e


class JsonCollectionStore(Generic[T]):
    """Id-indexed list of records backed by one JSON document."""

    field_name = "items"

    def __init__(self, path: Path, loader: Callable[[Dict[str, Any]], T], dumper: Callable[[T], Dict[str, Any]]):
        self.path = Path(path)
        self._loader = loader
        self._dumper = dumper
        self._lock = asyncio.Lock()

    async def _read_all(self) -> List[T]:
        raw = await asyncio.to_thread(_read_document, self.path, self.field_name)
        return [self._loader(item) for item in raw]

    async def _write_all(self, items: List[T]) -> None:
        raw = [self._dumper(item) for item in items]
        await asyncio.to_thread(_write_document, self.path, self.field_name, raw)

    async def list(self) -> List[T]:
        return await self._read_all()

    async def get(self, item_id: str) -> Optional[T]:
        for item in await self._read_all():
            if item.id == item_id:
                return item
        return None

    async def add(self, item: T) -> T:
        async with self._lock:
            items = await self._read_all()
            item = self._prepare_add(items, item)
            items.append(item)
            await self._write_all(items)
        logger.debug(f"{self.field_name} store: added {item.id} (now {len(items)})")
        return item

    async def update(self, item_id: str, **changes) -> Optional[T]:
        """Shallow-merge `changes` into the record; no-op returning None when the id is absent."""
        async with self._lock:
            items = await self._read_all()
            for index, item in enumerate(items):
                if item.id == item_id:
                    items[index] = replace(item, **changes)
                    await self._write_all(items)
                    return items[index]
        return None

    def _prepare_add(self, items: List[T], item: T) -> T:
        return item


class PatchStore(JsonCollectionStore[PatchRecord]):
    """Append-and-update audit log of every generated patch set."""

    field_name = "patches"

    def __init__(self, path: Path):
        super().__init__(path, PatchRecord.from_dict, PatchRecord.to_dict)

    def _prepare_add(self, items: List[PatchRecord], item: PatchRecord) -> PatchRecord:
        # createdAt must never go backwards within the log
        if items and item.created_at < items[-1].created_at:
            return replace(item, created_at=items[-1].created_at)
        return item

    async def latest_for_repo(self, repo_url: str) -> Optional[PatchRecord]:
        """Most recently created record for a repository, or None."""
        matches = [p for p in await self.list() if p.repo_url == repo_url]
        if not matches:
            return None
        # Stable on ties: later entries in the log win
        return max(reversed(matches), key=lambda p: p.created_at)


class ProposalStore(JsonCollectionStore[Proposal]):
    """Durable queue of patch sets awaiting approval."""

    field_name = "proposals"

    def __init__(self, path: Path):
        super().__init__(path, Proposal.from_dict, Proposal.to_dict)

    async def list(self, status: Optional[str] = None) -> List[Proposal]:
        proposals = await self._read_all()
        if status:
            proposals = [p for p in proposals if p.status == status]
        return proposals


class AutoscanRegistry:
    """Ordered list of repository URLs scanned on a timer; replaced wholesale on save."""

    field_name = "repos"

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def list(self) -> List[str]:
        raw = await asyncio.to_thread(_read_document, self.path, self.field_name)
        return [str(r) for r in raw]

    async def save(self, repos: List[str]) -> List[str]:
        async with self._lock:
            return await self._save_locked(repos)

    async def add(self, repo_url: str) -> List[str]:
        async with self._lock:
            repos = await self.list()
            return await self._save_locked(repos + [repo_url])

    async def remove(self, repo_url: str) -> List[str]:
        async with self._lock:
            repos = await self.list()
            return await self._save_locked([r for r in repos if r != repo_url])

    async def _save_locked(self, repos: List[str]) -> List[str]:
        cleaned = []
        for repo in repos:
            repo = str(repo).strip()
            if repo and repo not in cleaned:
                cleaned.append(repo)
        await asyncio.to_thread(_write_document, self.path, self.field_name, cleaned)
        return cleaned
