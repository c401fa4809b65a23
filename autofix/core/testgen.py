"""
Test skeleton suggestions for the files touched by a patch record.

Suggestions are templates for a human to complete; nothing here runs or
validates the generated tests.
"""

import posixpath
import re
from dataclasses import dataclass
from typing import Dict, List

from .schema import Edit, PatchRecord

_JS_SUFFIX = re.compile(r"\.(js|ts|jsx|tsx)$")


@dataclass
class SuggestedTest:
    path: str
    test_content: str

    def to_dict(self) -> Dict[str, str]:
        return {"path": self.path, "testContent": self.test_content}


def _module_name(path: str) -> str:
    base = posixpath.basename(path)
    stem = base.split(".", 1)[0] if "." in base else base
    return re.sub(r"\W", "_", stem) or "patched_module"


def _python_suggestion(edit: Edit) -> SuggestedTest:
    directory, base = posixpath.split(edit.path)
    name = _module_name(edit.path)
    test_path = posixpath.join("tests", f"test_{base}") if not directory.startswith("tests") else edit.path
    module = edit.path[:-3].replace("/", ".")
    content = (
        f"# Auto-generated test suggestion for {edit.path}\n"
        f"import {module} as {name}\n\n\n"
        f"def test_{name}_fix():\n"
        f"    # Assert the behaviour fixed by: {edit.summary or 'see patch'}\n"
        f"    assert {name} is not None\n"
    )
    return SuggestedTest(path=test_path, test_content=content)


def _js_suggestion(edit: Edit) -> SuggestedTest:
    test_path = _JS_SUFFIX.sub(r".test.\1", edit.path)
    name = _module_name(edit.path)
    content = (
        f"// Auto-generated test suggestion for {edit.path}\n"
        f"const {name} = require('../{edit.path}');\n"
        f"describe('{edit.path}', () => {{\n"
        f"  test('basic behavior', () => {{\n"
        f"    // Assert the behaviour fixed by: {edit.summary or 'see patch'}\n"
        f"    expect({name}).toBeDefined();\n"
        f"  }});\n"
        f"}});"
    )
    return SuggestedTest(path=test_path, test_content=content)


def _generic_suggestion(edit: Edit) -> SuggestedTest:
    content = (
        f"Manual verification checklist for {edit.path}\n"
        f"- Change: {edit.summary or 'see patch'}\n"
        f"- Confirm the file still loads/parses in its consumer\n"
    )
    return SuggestedTest(path=f"{edit.path}.test-notes.md", test_content=content)


def suggest_tests(record: PatchRecord) -> List[SuggestedTest]:
    """One suggestion per edited file, in edit order."""
    suggestions = []
    for edit in record.patches:
        if edit.path.endswith(".py"):
            suggestions.append(_python_suggestion(edit))
        elif _JS_SUFFIX.search(edit.path):
            suggestions.append(_js_suggestion(edit))
        else:
            suggestions.append(_generic_suggestion(edit))
    return suggestions
