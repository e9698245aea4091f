from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping
import json
import os


DEFAULT_INITIAL_FETCH_DEPTH = 10
DEFAULT_API_URL = "https://api.github.com"

LIST_FILES_FORMATS = ("none", "csv", "json", "shell", "escape")

PULL_REQUEST_EVENTS = {
    "pull_request",
    "pull_request_review",
    "pull_request_review_comment",
    "pull_request_target",
}


class ConfigurationError(ValueError):
    pass


@dataclass
class ActionSettings:
    rules: str
    base: str | None = None
    ref: str | None = None
    token: str | None = None
    working_directory: Path = field(default_factory=lambda: Path("."))
    initial_fetch_depth: int = DEFAULT_INITIAL_FETCH_DEPTH
    list_files: str = "none"


@dataclass
class EventContext:
    name: str = ""
    ref: str | None = None
    repository: str | None = None
    api_url: str = DEFAULT_API_URL
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def is_pull_request(self) -> bool:
        return self.name in PULL_REQUEST_EVENTS

    @property
    def default_branch(self) -> str | None:
        repo = self.payload.get("repository") or {}
        return repo.get("default_branch") or None

    @property
    def before(self) -> str | None:
        # only push events carry the previously pushed commit
        if self.name != "push":
            return None
        return self.payload.get("before") or None

    @property
    def pull_request(self) -> dict[str, Any]:
        return self.payload.get("pull_request") or {}


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def build_settings(
    rules: str,
    base: str | None = None,
    ref: str | None = None,
    token: str | None = None,
    working_directory: str | None = None,
    initial_fetch_depth: int | str | None = None,
    list_files: str | None = None,
) -> ActionSettings:
    if not rules or not rules.strip():
        raise ConfigurationError("Rules definition is required (inline YAML or path to a rules file)")

    fmt = (list_files or "none").strip().lower()
    if fmt not in LIST_FILES_FORMATS:
        raise ConfigurationError(
            f"Invalid list-files format '{list_files}' (expected one of: {', '.join(LIST_FILES_FORMATS)})"
        )

    depth_raw = initial_fetch_depth if initial_fetch_depth not in (None, "") else DEFAULT_INITIAL_FETCH_DEPTH
    try:
        depth = int(depth_raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid initial fetch depth: {initial_fetch_depth}") from exc
    if depth < 1:
        raise ConfigurationError(f"Initial fetch depth must be a positive number, got {depth}")

    root = Path(working_directory or ".").resolve()
    if not root.exists():
        raise ConfigurationError(f"Working directory does not exist: {root}")

    return ActionSettings(
        rules=rules,
        base=_clean(base),
        ref=_clean(ref),
        token=_clean(token),
        working_directory=root,
        initial_fetch_depth=depth,
        list_files=fmt,
    )


def load_event_context(env: Mapping[str, str] | None = None) -> EventContext:
    """Read the workflow run context from the GITHUB_* environment."""
    env = os.environ if env is None else env

    payload: dict[str, Any] = {}
    event_path = _clean(env.get("GITHUB_EVENT_PATH"))
    if event_path and Path(event_path).is_file():
        try:
            payload = json.loads(Path(event_path).read_text(encoding="utf-8")) or {}
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Invalid event payload in {event_path}: {exc}") from exc

    return EventContext(
        name=_clean(env.get("GITHUB_EVENT_NAME")) or "",
        ref=_clean(env.get("GITHUB_REF")),
        repository=_clean(env.get("GITHUB_REPOSITORY")),
        api_url=_clean(env.get("GITHUB_API_URL")) or DEFAULT_API_URL,
        payload=payload if isinstance(payload, dict) else {},
    )
