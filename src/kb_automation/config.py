"""
Configuration for the knowledge-base toolkit.

Two layers:

- ``KBConfig``: per-repository settings loaded from ``kb.yaml`` (which
  documents to scan, where the update region lives, what the badge and
  timestamp look like, lint severities).
- ``KBSettings``: per-invocation runtime settings read from ``KB_*``
  environment variables and ``.env`` (log level, JSON logs, default root
  and config path). CLI options take precedence over both.

Example kb.yaml:
    documents:
      - README.md
      - docs/**/*.md
    update_targets: [README.md]
    badges:
      - label: Last Updated
        message: "{{ date }}"
        color: blue
    max_age_days: 90
    rules:
      placeholder: "off"
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from kb_automation.errors import InvalidConfigError, MissingConfigError
from kb_automation.markers import timestamp_pattern

CONFIG_FILENAME = "kb.yaml"

SEVERITIES = ("error", "warning", "off")

DIRECTIONS = ("TB", "TD", "BT", "RL", "LR")


@dataclass
class BadgeConfig:
    """A shields.io static badge rendered into the update region.

    ``message`` is a Jinja2 expression evaluated against the update
    context (``date``, ``timestamp``, ``now``, ``documents``, ``diagrams``).
    """

    label: str
    message: str
    color: str = "blue"
    link: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> BadgeConfig:
        if isinstance(value, BadgeConfig):
            return value
        if not isinstance(value, dict):
            raise InvalidConfigError("badges", value, "Each badge must be a mapping")
        unknown = set(value) - {"label", "message", "color", "link"}
        if unknown:
            raise InvalidConfigError("badges", sorted(unknown), f"Unknown badge keys: {', '.join(sorted(unknown))}")
        for key in ("label", "message"):
            if not value.get(key):
                raise InvalidConfigError("badges", value, f"Badge is missing '{key}'")
        return cls(**value)

    def to_dict(self) -> dict[str, Any]:
        return {"label": self.label, "message": self.message, "color": self.color, "link": self.link}


def _default_badges() -> list[BadgeConfig]:
    return [BadgeConfig(label="Last Updated", message="{{ date }}", color="blue")]


@dataclass
class KBConfig:
    """Configuration for the knowledge-base toolkit.

    Attributes:
        root: Repository root; every other path is relative to it
        documents: Glob patterns selecting the knowledge-base documents
        exclude: fnmatch patterns (posix, relative to root) to skip
        update_targets: Documents whose update region is rewritten
        marker_start: Name inside the opening marker comment
        marker_end: Name inside the closing marker comment
        badges: Badges rendered at the top of each update region
        timestamp_label: Text before the timestamp (``Last updated``)
        timestamp_format: strftime format of the timestamp line
        date_format: strftime format exposed to badges as ``date``
        max_age_days: Age after which ``timestamp-stale`` fires (None: never)
        mermaid_types: Diagram types accepted by ``mermaid-type``
        mermaid_directions: Flowchart directions accepted by ``mermaid-direction``
        placeholder_words: Words reported by the ``placeholder`` rule
        rules: Severity overrides keyed by rule id
        template_dir: Directory overriding the packaged Jinja2 templates
    """

    root: Path = field(default_factory=lambda: Path("."))
    documents: list[str] = field(default_factory=lambda: ["README.md", "docs/**/*.md"])
    exclude: list[str] = field(default_factory=list)
    update_targets: list[str] = field(default_factory=lambda: ["README.md"])

    # Update region
    marker_start: str = "UPDATE-START"
    marker_end: str = "UPDATE-END"
    badges: list[BadgeConfig] = field(default_factory=_default_badges)
    timestamp_label: str = "Last updated"
    timestamp_format: str = "%Y-%m-%d %H:%M UTC"
    date_format: str = "%Y-%m-%d"
    max_age_days: int | None = None

    # Lint
    mermaid_types: list[str] = field(default_factory=lambda: ["flowchart", "graph"])
    mermaid_directions: list[str] = field(default_factory=lambda: ["LR"])
    placeholder_words: list[str] = field(
        default_factory=lambda: ["TODO", "TBD", "FIXME", "coming soon", "lorem ipsum"]
    )
    rules: dict[str, str] = field(default_factory=dict)

    template_dir: Path | None = None

    def __post_init__(self):
        """Normalize paths and validate values."""
        if isinstance(self.root, str):
            self.root = Path(self.root)
        if isinstance(self.template_dir, str):
            self.template_dir = Path(self.template_dir)

        self.badges = [BadgeConfig.from_value(b) for b in (self.badges or [])]

        for key in ("documents", "exclude", "update_targets", "mermaid_types",
                    "mermaid_directions", "placeholder_words"):
            value = getattr(self, key)
            if isinstance(value, str):
                setattr(self, key, [value])
            elif not isinstance(value, list):
                raise InvalidConfigError(key, value, f"'{key}' must be a list")

        if not self.marker_start or not self.marker_end or self.marker_start == self.marker_end:
            raise InvalidConfigError(
                "marker_start",
                self.marker_start,
                "marker_start and marker_end must be distinct non-empty names",
            )

        # Compiling the pattern rejects unsupported strftime directives
        timestamp_pattern(self.timestamp_format)

        if self.max_age_days is not None:
            if isinstance(self.max_age_days, bool) or not isinstance(self.max_age_days, int) or self.max_age_days < 0:
                raise InvalidConfigError("max_age_days", self.max_age_days)

        directions = [d.upper() for d in self.mermaid_directions]
        for direction in directions:
            if direction not in DIRECTIONS:
                raise InvalidConfigError("mermaid_directions", direction)
        self.mermaid_directions = directions

        if not isinstance(self.rules, dict):
            raise InvalidConfigError("rules", self.rules, "'rules' must be a mapping of rule id to severity")
        for rule_id, severity in self.rules.items():
            # YAML 1.1 loads an unquoted ``off`` as False
            if severity is False:
                severity = self.rules[rule_id] = "off"
            if severity not in SEVERITIES:
                raise InvalidConfigError(
                    f"rules.{rule_id}",
                    severity,
                    f"Severity for {rule_id} must be one of: {', '.join(SEVERITIES)}",
                )

    @classmethod
    def from_yaml(cls, yaml_path: Path, root: Path | None = None) -> KBConfig:
        """Load configuration from a YAML file.

        Args:
            yaml_path: Path to the YAML configuration file
            root: Repository root (defaults to the file's directory)

        Returns:
            KBConfig instance
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.is_file():
            raise MissingConfigError(str(yaml_path), f"Config file not found: {yaml_path}")

        try:
            with open(yaml_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise InvalidConfigError(str(yaml_path), None, f"Cannot parse {yaml_path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InvalidConfigError(str(yaml_path), data, f"{yaml_path} must contain a mapping")

        data = dict(data)
        data["root"] = root if root is not None else yaml_path.parent
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KBConfig:
        """Create config from a dictionary, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidConfigError(unknown[0], data[unknown[0]], f"Unknown configuration key: {unknown[0]}")
        return cls(**data)

    @classmethod
    def load(cls, root: Path, path: Path | None = None) -> KBConfig:
        """Load the configuration for a repository.

        An explicit ``path`` must exist. Without one, ``<root>/kb.yaml`` is
        used when present and defaults otherwise.
        """
        root = Path(root)
        if path is not None:
            return cls.from_yaml(Path(path), root=root)

        candidate = root / CONFIG_FILENAME
        if candidate.is_file():
            return cls.from_yaml(candidate, root=root)
        return cls(root=root)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a dictionary."""
        return {
            "root": str(self.root),
            "documents": list(self.documents),
            "exclude": list(self.exclude),
            "update_targets": list(self.update_targets),
            "marker_start": self.marker_start,
            "marker_end": self.marker_end,
            "badges": [b.to_dict() for b in self.badges],
            "timestamp_label": self.timestamp_label,
            "timestamp_format": self.timestamp_format,
            "date_format": self.date_format,
            "max_age_days": self.max_age_days,
            "mermaid_types": list(self.mermaid_types),
            "mermaid_directions": list(self.mermaid_directions),
            "placeholder_words": list(self.placeholder_words),
            "rules": dict(self.rules),
            "template_dir": str(self.template_dir) if self.template_dir else None,
        }

    def resolve(self, relative: str | Path) -> Path:
        """Resolve a root-relative path."""
        path = Path(relative)
        if path.is_absolute():
            return path
        return self.root / path

    def relative(self, path: Path) -> str:
        """Posix path relative to root, or the path itself when outside."""
        try:
            return Path(path).resolve().relative_to(self.root.resolve()).as_posix()
        except ValueError:
            return Path(path).as_posix()

    def is_excluded(self, path: Path) -> bool:
        """Check whether a document matches one of the exclude patterns."""
        rel = self.relative(path)
        return any(fnmatch.fnmatch(rel, pattern) for pattern in self.exclude)


class KBSettings(BaseSettings):
    """Runtime settings from ``KB_*`` environment variables.

    Fields
    ──────
    log_level : structlog level for the CLI
    log_json  : force JSON log lines
    config    : default config file when ``--config`` is not given
    root      : default repository root when ``--root`` is not given
    """

    model_config = SettingsConfigDict(
        env_prefix="KB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "WARNING"
    log_json: bool = False
    config: Path | None = None
    root: Path = Path(".")


# Default configuration
DEFAULT_CONFIG = KBConfig()
