"""
Quota-exhaustion policy for generation failures.

The fix generator does not apply this itself; callers decide whether a quota
failure becomes a synthetic demo edit or a QuotaExceeded error with a retry hint.
"""

import math
import re
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import GenerationFailed, QuotaExceeded
from .schema import Edit

QUOTA_PATTERN = re.compile(r"RESOURCE_EXHAUSTED|quota exceeded|quota", re.IGNORECASE)
RETRY_PATTERN = re.compile(r"retry in ([\d.]+)\s*s", re.IGNORECASE)
DEFAULT_RETRY_AFTER = 10


def is_quota_error(message: str) -> bool:
    return bool(message and QUOTA_PATTERN.search(message))


def parse_retry_after(message: str, default: int = DEFAULT_RETRY_AFTER) -> int:
    """Extract 'retry in N.Ns' from an upstream message, rounded up to whole seconds."""
    match = RETRY_PATTERN.search(message or "")
    if not match:
        return default
    try:
        return int(math.ceil(float(match.group(1))))
    except ValueError:
        return default


def demo_readme_edit(repo_url: str) -> Edit:
    return Edit(
        path="README.md",
        updated_content=(
            "# Demo Fix\n\n"
            f"This is a demo edit for {repo_url or 'your repo'} since the generation quota was exceeded.\n\n"
            "- Note: Replace this with a real fix once the AI quota is available."
        ),
        summary="Demo README update because generation quota exceeded (simulated edit)",
    )


def demo_edits(repo_url: str) -> List[Edit]:
    """Synthetic edit set served by the demo endpoint."""
    return [
        Edit(
            path="README.md",
            updated_content=(
                "# Demo Fix\n\n"
                f"This is a demo edit for {repo_url or 'your repo'} since the generation quota was exceeded "
                "or for testing purposes.\n\n"
                "- Note: Replace this with a real fix once the AI quota is available."
            ),
            summary="Demo README update because generation quota exceeded (simulated edit)",
        ),
        Edit(
            path="src/demo-security-fix.js",
            updated_content=(
                "// Demo security fix - placeholder\n"
                "// Replace with AI generated fix when quota allows\n"
                "module.exports = { fixed: true };"
            ),
            summary="Demo placeholder fix",
        ),
    ]


@dataclass
class QuotaFallback:
    """Edits substituted for a quota-exhausted generation call."""
    edits: List[Edit] = field(default_factory=list)
    retry_after: int = DEFAULT_RETRY_AFTER


def apply_quota_policy(error: GenerationFailed, repo_url: str, demo_fallback: bool) -> Optional[QuotaFallback]:
    """
    Decide what a failed generation call turns into.

    Returns None when the failure is not quota related (the caller re-raises it),
    a QuotaFallback when demo fallback is enabled, and raises QuotaExceeded otherwise.
    """
    message = error.message
    if not is_quota_error(message):
        return None

    retry_after = parse_retry_after(message)
    if demo_fallback:
        return QuotaFallback(edits=[demo_readme_edit(repo_url)], retry_after=retry_after)

    raise QuotaExceeded(retry_after=retry_after, original=message) from error
