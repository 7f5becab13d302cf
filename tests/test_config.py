"""Tests for loading and validating the copy configuration."""

import tempfile
from pathlib import Path

import pytest
import yaml

from copyrc.config import (
    ConfigError,
    CopyConfig,
    CopyrcConfig,
    RepositoryConfig,
    load_config,
    parse_config,
    validate_config,
)


def _write_yaml(tmpdir: str, data) -> Path:
    path = Path(tmpdir) / ".copyrc.yaml"
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


def _sample() -> dict:
    return {
        "repositories": [
            {"name": "upstream", "provider": "local", "source": "../upstream", "ref": "v1.0.0"},
        ],
        "copies": [
            {
                "repository": "upstream",
                "remote_path": "pkg/util",
                "local_path": "third_party/util",
                "ignore_files": ["*_test.go"],
                "replacements": [
                    {"from_text": "package util", "to_text": "package vendored", "file_filter_glob": "*.go"},
                ],
            },
        ],
    }


def test_load_config_from_yaml():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = load_config(_write_yaml(tmpdir, _sample()))

    assert len(config.repositories) == 1
    assert config.repositories[0].source == "../upstream"
    assert config.repositories[0].ref == "v1.0.0"
    copy = config.copies[0]
    assert copy.local_path == "third_party/util"
    assert copy.replacements[0].to_text == "package vendored"
    assert copy.replacements[0].file_filter_glob == "*.go"
    assert config.copies_for("upstream") == [copy]
    assert config.copies_for("other") == []


def test_load_config_defaults():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = load_config(
            _write_yaml(tmpdir, {"repositories": [{"name": "r"}], "copies": [{"repository": "r", "local_path": "out"}]})
        )
    assert config.repositories[0].provider == "local"
    assert config.copies[0].remote_path == ""
    assert config.copies[0].ignore_files == []


def test_load_empty_config():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / ".copyrc.yaml"
        path.write_text("")
        config = load_config(path)
    assert config.repositories == []
    assert config.copies == []


def test_load_missing_config():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(ConfigError, match="not found"):
            load_config(Path(tmpdir) / "absent.yaml")


def test_load_invalid_yaml():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / ".copyrc.yaml"
        path.write_text("repositories: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)


def test_parse_config_missing_field():
    with pytest.raises(ConfigError, match="Malformed"):
        parse_config({"repositories": [{"provider": "git"}]})


def test_parse_config_not_a_mapping():
    with pytest.raises(ConfigError):
        parse_config(["a", "b"])


def test_validate_config_reports_every_issue():
    config = CopyrcConfig(
        repositories=[RepositoryConfig(name="a"), RepositoryConfig(name="a")],
        copies=[CopyConfig(repository="missing", remote_path="", local_path="")],
    )
    issues = validate_config(config)
    assert issues == [
        "Duplicate repository name: a",
        "Copy 1 references unknown repository 'missing'",
        "Copy 1 missing local_path",
    ]


def test_parse_config_rejects_empty_from_text():
    data = _sample()
    data["copies"][0]["replacements"].append({"to_text": "x"})
    with pytest.raises(ConfigError, match="from_text is required"):
        parse_config(data)


def test_is_ignored():
    copy = CopyConfig(repository="r", remote_path="pkg", local_path="out", ignore_files=["*_test.go", "docs/*"])
    assert copy.is_ignored("pkg/util_test.go")
    assert copy.is_ignored("docs/readme.md")
    assert not copy.is_ignored("pkg/util.go")


def test_config_hash_is_stable_and_sensitive():
    first = parse_config(_sample())
    second = parse_config(_sample())
    assert first.hash() == second.hash()

    changed = _sample()
    changed["repositories"][0]["ref"] = "v2.0.0"
    assert parse_config(changed).hash() != first.hash()
