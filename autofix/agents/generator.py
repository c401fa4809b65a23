"""
Fix generator: prompt construction, model call and response parsing.

The model is asked for a bare JSON array of {path, updatedContent, summary}
objects carrying complete file contents. Models wrap JSON in fences or prose
often enough that the parser recovers the outermost array before decoding.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.errors import MalformedGenerationResponse
from ..core.schema import Edit, RepoContext
from .providers import GenerationProvider
from util.logging import logger

FINDINGS_CHAR_LIMIT = 6000
FILES_CHAR_LIMIT = 12000

SYSTEM_PROMPT = (
    "You are CodeFixer, an AI assistant that returns ONLY valid JSON. For each issue described in "
    "the user prompt, modify the relevant file content and return an array of objects "
    '{"path":"path/to/file","updatedContent":"<full file content after fix>", '
    '"summary":"short description of change"}. Do NOT include any other text.'
)

_LEADING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\s*```\s*$")


def build_prompt(repo_url: str, findings: List[Any], context: RepoContext) -> str:
    """User prompt: repo URL, findings JSON and sampled file blocks, each truncated."""
    files_block = "\n\n".join(
        f"FILE: {f.path}\n---\n{f.content}" for f in context.sampled_files if f.content
    )
    findings_json = json.dumps(findings or [], indent=2)
    return (
        f"REPO: {repo_url}\n\n"
        f"ISSUES:\n{findings_json[:FINDINGS_CHAR_LIMIT]}\n\n"
        f"FILES:\n{files_block[:FILES_CHAR_LIMIT]}\n\n"
        "For each issue, return the complete updated file content (not a diff)."
    )


@dataclass
class ParseOutcome:
    """Tagged parse result: ok with edits, or not ok with an error description."""
    ok: bool
    edits: List[Edit] = field(default_factory=list)
    error: Optional[str] = None
    dropped: int = 0


def _coerce_edit(entry: Any) -> Optional[Edit]:
    if not isinstance(entry, dict):
        return None
    path = entry.get("path")
    content = entry.get("updatedContent") or entry.get("content")
    if not isinstance(path, str) or not path.strip():
        return None
    if not isinstance(content, str) or not content:
        return None
    summary = entry.get("summary")
    return Edit(path=path.strip(), updated_content=content,
                summary=summary if isinstance(summary, str) else "")


def parse_generation_response(text: str) -> ParseOutcome:
    clean = (text or "").strip()
    clean = _LEADING_FENCE.sub("", clean)
    clean = _TRAILING_FENCE.sub("", clean).strip()

    start = clean.find("[")
    end = clean.rfind("]")
    if start != -1 and end > start:
        clean = clean[start:end + 1]

    try:
        data = json.loads(clean)
    except json.JSONDecodeError as e:
        return ParseOutcome(ok=False, error=f"invalid JSON ({e.msg})")

    if not isinstance(data, list):
        return ParseOutcome(ok=False, error=f"expected a JSON array, got {type(data).__name__}")

    edits = []
    for entry in data:
        edit = _coerce_edit(entry)
        if edit is not None:
            edits.append(edit)
    return ParseOutcome(ok=True, edits=edits, dropped=len(data) - len(edits))


class FixGenerator:
    """Asks a GenerationProvider for file-level fixes."""

    def __init__(self, provider: GenerationProvider):
        self.provider = provider

    async def generate(self, repo_url: str, findings: List[Dict[str, Any]], context: RepoContext) -> List[Edit]:
        user_prompt = build_prompt(repo_url, findings, context)
        raw = await self.provider.complete(SYSTEM_PROMPT, user_prompt)

        outcome = parse_generation_response(raw)
        if not outcome.ok:
            raise MalformedGenerationResponse(outcome.error, raw=raw)

        if outcome.dropped:
            logger.warning(f"Generator dropped {outcome.dropped} incomplete entries for {repo_url}")
        logger.log_operation("generate", "success", {
            "repo_url": repo_url,
            "provider": self.provider.name,
            "edit_count": len(outcome.edits),
        })
        return outcome.edits
