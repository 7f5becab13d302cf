"""Tests for text replacement rules."""

from copyrc.text import ReplacementRule, replace_text, validate_rules


def test_rule_without_glob_matches_everything():
    rule = ReplacementRule("a", "b")
    assert rule.matches("x.go")
    assert rule.matches("deep/dir/Makefile")


def test_rule_glob_matches_basename_or_full_path():
    rule = ReplacementRule("a", "b", file_filter_glob="*.go")
    assert rule.matches("pkg/util.go")
    assert not rule.matches("pkg/util.py")

    scoped = ReplacementRule("a", "b", file_filter_glob="pkg/*.go")
    assert scoped.matches("pkg/util.go")
    assert not scoped.matches("other/util.go")


def test_replace_text_applies_rules_in_order():
    result = replace_text(
        b"package util // util helpers",
        [ReplacementRule("util", "vendored"), ReplacementRule("vendored helpers", "helpers")],
    )
    assert result.was_modified
    assert result.replacement_count == 3
    assert result.modified_content == b"package vendored // helpers"
    assert result.original_content == b"package util // util helpers"


def test_replace_text_without_matches():
    result = replace_text(b"nothing here", [ReplacementRule("absent", "x")])
    assert not result.was_modified
    assert result.replacement_count == 0
    assert result.modified_content == b"nothing here"


def test_replace_text_skips_empty_from_text():
    result = replace_text(b"abc", [ReplacementRule("", "x")])
    assert result.modified_content == b"abc"
    assert not result.was_modified


def test_replace_text_handles_utf8():
    result = replace_text("héllo wörld".encode("utf-8"), [ReplacementRule("wörld", "welt")])
    assert result.modified_content.decode("utf-8") == "héllo welt"


def test_validate_rules():
    issues = validate_rules([ReplacementRule("ok"), ReplacementRule("")])
    assert issues == ["Replacement 2: from_text is required"]
    assert validate_rules([]) == []
