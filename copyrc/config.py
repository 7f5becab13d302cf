"""Configuration: which repositories to copy from and where files land.

Loaded from a YAML file (default ``.copyrc.yaml``)::

    repositories:
      - name: upstream
        provider: local
        source: ../upstream
        ref: v1.0.0
    copies:
      - repository: upstream
        remote_path: pkg/util
        local_path: third_party/util
        ignore_files: ["*_test.go"]
        replacements:
          - from_text: "package util"
            to_text: "package vendored"
            file_filter_glob: "*.go"
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from copyrc.state.hashing import canonical_hash
from copyrc.text import ReplacementRule, validate_rules

DEFAULT_CONFIG_FILE = ".copyrc.yaml"


class ConfigError(ValueError):
    """The configuration file is missing, malformed or inconsistent."""


@dataclass
class RepositoryConfig:
    """A repository files are copied from."""

    name: str
    provider: str = "local"
    source: str = ""  # Directory path or git URL
    ref: str = ""


@dataclass
class CopyConfig:
    """One copy rule: a remote directory mirrored into a local one."""

    repository: str
    remote_path: str
    local_path: str
    ignore_files: list[str] = field(default_factory=list)
    replacements: list[ReplacementRule] = field(default_factory=list)

    def is_ignored(self, path: str) -> bool:
        name = path.rsplit("/", 1)[-1]
        return any(
            fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(name, pattern)
            for pattern in self.ignore_files
        )


@dataclass
class CopyrcConfig:
    """The full configuration snapshot."""

    repositories: list[RepositoryConfig] = field(default_factory=list)
    copies: list[CopyConfig] = field(default_factory=list)

    def copies_for(self, repository_name: str) -> list[CopyConfig]:
        return [c for c in self.copies if c.repository == repository_name]

    def to_dict(self) -> dict:
        return {
            "repositories": [
                {"name": r.name, "provider": r.provider, "source": r.source, "ref": r.ref}
                for r in self.repositories
            ],
            "copies": [
                {
                    "repository": c.repository,
                    "remote_path": c.remote_path,
                    "local_path": c.local_path,
                    "ignore_files": list(c.ignore_files),
                    "replacements": [
                        {
                            "from_text": r.from_text,
                            "to_text": r.to_text,
                            "file_filter_glob": r.file_filter_glob,
                        }
                        for r in c.replacements
                    ],
                }
                for c in self.copies
            ],
        }

    def hash(self) -> str:
        """Fingerprint compared against ``StateManager.config_hash()``."""
        return canonical_hash(self.to_dict())


def load_config(config_path: str | Path) -> CopyrcConfig:
    """Load a configuration from a YAML file."""
    path = Path(config_path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    return parse_config(data or {})


def parse_config(data: dict) -> CopyrcConfig:
    """Build a configuration from decoded YAML/JSON data."""
    if not isinstance(data, dict):
        raise ConfigError("Config must be a mapping")

    try:
        repositories = [
            RepositoryConfig(
                name=r["name"],
                provider=r.get("provider", "local"),
                source=str(r.get("source", "")),
                ref=str(r.get("ref", "")),
            )
            for r in data.get("repositories") or []
        ]
        copies = [
            CopyConfig(
                repository=c["repository"],
                remote_path=str(c.get("remote_path", "")),
                local_path=c["local_path"],
                ignore_files=list(c.get("ignore_files") or []),
                replacements=[
                    ReplacementRule(
                        from_text=str(r.get("from_text", "")),
                        to_text=str(r.get("to_text", "")),
                        file_filter_glob=str(r.get("file_filter_glob", "")),
                    )
                    for r in c.get("replacements") or []
                ],
            )
            for c in data.get("copies") or []
        ]
    except (KeyError, TypeError, AttributeError) as exc:
        raise ConfigError(f"Malformed config: missing or invalid field {exc}") from exc

    config = CopyrcConfig(repositories=repositories, copies=copies)
    issues = validate_config(config)
    if issues:
        raise ConfigError("; ".join(issues))
    return config


def validate_config(config: CopyrcConfig) -> list[str]:
    """Cross-check repositories and copies. Returns a list of issues."""
    issues: list[str] = []
    names = [r.name for r in config.repositories]
    for name in sorted({n for n in names if names.count(n) > 1}):
        issues.append(f"Duplicate repository name: {name}")

    for i, copy in enumerate(config.copies):
        if copy.repository not in names:
            issues.append(f"Copy {i + 1} references unknown repository '{copy.repository}'")
        if not copy.local_path:
            issues.append(f"Copy {i + 1} missing local_path")
        for issue in validate_rules(copy.replacements):
            issues.append(f"Copy {i + 1}: {issue}")
    return issues
