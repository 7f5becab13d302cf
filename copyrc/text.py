"""Text replacement: literal substitutions applied to copied files."""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass


@dataclass
class ReplacementRule:
    """Replace every occurrence of ``from_text`` with ``to_text``.

    ``file_filter_glob`` limits the rule to matching files; empty matches all.
    """

    from_text: str
    to_text: str = ""
    file_filter_glob: str = ""

    def matches(self, path: str) -> bool:
        if not self.file_filter_glob:
            return True
        name = path.rsplit("/", 1)[-1]
        return fnmatch.fnmatch(path, self.file_filter_glob) or fnmatch.fnmatch(name, self.file_filter_glob)


@dataclass
class ReplacementResult:
    original_content: bytes
    modified_content: bytes
    was_modified: bool = False
    replacement_count: int = 0


def replace_text(content: bytes, rules: list[ReplacementRule]) -> ReplacementResult:
    """Apply ``rules`` in order. Rules with an empty ``from_text`` are skipped."""
    result = ReplacementResult(original_content=content, modified_content=content)

    current = content
    for rule in rules:
        if not rule.from_text:
            continue
        needle = rule.from_text.encode("utf-8")
        count = current.count(needle)
        if count:
            current = current.replace(needle, rule.to_text.encode("utf-8"))
            result.was_modified = True
            result.replacement_count += count

    result.modified_content = current
    return result


def validate_rules(rules: list[ReplacementRule]) -> list[str]:
    """Check replacement rules. Returns a list of issues; empty means valid."""
    issues: list[str] = []
    for i, rule in enumerate(rules):
        if not rule.from_text:
            issues.append(f"Replacement {i + 1}: from_text is required")
    return issues
