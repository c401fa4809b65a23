"""
Fix generator - prompt construction and tolerant response parsing.
"""

import asyncio
import json

import pytest

from autofix.agents.generator import (
    FILES_CHAR_LIMIT,
    SYSTEM_PROMPT,
    FixGenerator,
    build_prompt,
    parse_generation_response,
)
from autofix.core.errors import MalformedGenerationResponse
from autofix.core.schema import RepoContext, RepoRef, SampledFile
from conftest import REPO_URL, ScriptedProvider

BARE = json.dumps([
    {"path": "src/app.js", "updatedContent": "safe();\n", "summary": "remove eval"},
    {"path": "README.md", "updatedContent": "# widgets\n"},
])


def make_context(*files):
    return RepoContext(repo=RepoRef("acme", "widgets"), sampled_files=list(files))


class TestParseGenerationResponse:
    """Response recovery from fences and prose."""

    def test_bare_array(self):
        outcome = parse_generation_response(BARE)
        assert outcome.ok
        assert [e.path for e in outcome.edits] == ["src/app.js", "README.md"]
        assert outcome.edits[0].summary == "remove eval"
        assert outcome.edits[1].summary == ""

    @pytest.mark.parametrize("wrapped", [
        f"```json\n{BARE}\n```",
        f"```\n{BARE}\n```",
        f"Here are the fixes you asked for:\n{BARE}\nLet me know if you need more.",
        f"```json\nSure!\n{BARE}\n```",
    ])
    def test_wrapped_response_matches_bare(self, wrapped):
        """Fenced or prose-wrapped output parses to the same edits as bare JSON."""
        assert parse_generation_response(wrapped).edits == parse_generation_response(BARE).edits

    def test_content_alias_accepted(self):
        outcome = parse_generation_response('[{"path": "a.py", "content": "x = 1\\n"}]')
        assert outcome.edits[0].updated_content == "x = 1\n"

    def test_incomplete_entries_dropped(self):
        raw = json.dumps([
            {"path": "ok.py", "updatedContent": "ok"},
            {"path": "", "updatedContent": "no path"},
            {"updatedContent": "missing path"},
            {"path": "empty.py", "updatedContent": ""},
            "not an object",
        ])
        outcome = parse_generation_response(raw)
        assert outcome.ok
        assert [e.path for e in outcome.edits] == ["ok.py"]
        assert outcome.dropped == 4

    def test_empty_array_is_ok(self):
        outcome = parse_generation_response("[]")
        assert outcome.ok
        assert outcome.edits == []

    def test_invalid_json_is_error(self):
        outcome = parse_generation_response("I could not find any issues.")
        assert not outcome.ok
        assert "invalid JSON" in outcome.error

    def test_non_array_document_is_error(self):
        outcome = parse_generation_response('{"path": "a.py", "updatedContent": "x"}')
        assert not outcome.ok
        assert "expected a JSON array" in outcome.error


class TestBuildPrompt:
    """User prompt layout and truncation."""

    def test_layout(self):
        context = make_context(SampledFile("src/app.js", "eval(x)"), SampledFile("missing.txt", ""))
        prompt = build_prompt(REPO_URL, [{"issue": "eval"}], context)

        assert prompt.startswith(f"REPO: {REPO_URL}\n\nISSUES:\n")
        assert "FILE: src/app.js\n---\neval(x)" in prompt
        assert "missing.txt" not in prompt
        assert prompt.endswith("For each issue, return the complete updated file content (not a diff).")

    def test_files_block_truncated(self):
        context = make_context(SampledFile("big.txt", "a" * (FILES_CHAR_LIMIT * 2)))
        prompt = build_prompt(REPO_URL, [], context)
        files_section = prompt.split("FILES:\n", 1)[1].split("\n\nFor each issue", 1)[0]
        assert len(files_section) == FILES_CHAR_LIMIT


class TestFixGenerator:
    """End-to-end generation against a scripted provider."""

    def test_generate_returns_edits(self):
        provider = ScriptedProvider(f"```json\n{BARE}\n```")
        edits = asyncio.run(FixGenerator(provider).generate(REPO_URL, [], make_context()))

        assert len(edits) == 2
        assert provider.prompts[0]["system"] == SYSTEM_PROMPT

    def test_malformed_response_raises(self):
        provider = ScriptedProvider("no json here")
        with pytest.raises(MalformedGenerationResponse) as exc_info:
            asyncio.run(FixGenerator(provider).generate(REPO_URL, [], make_context()))
        assert exc_info.value.raw == "no json here"
        assert exc_info.value.status_code == 502
