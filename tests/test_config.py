import json
from pathlib import Path

import pytest

from pathfilter_ci.config import (
    DEFAULT_INITIAL_FETCH_DEPTH,
    ConfigurationError,
    build_settings,
    load_event_context,
)


def test_build_settings_defaults(tmp_path: Path):
    settings = build_settings(rules="a:\n  - '**'\n", base="  ", working_directory=str(tmp_path))
    assert settings.base is None
    assert settings.initial_fetch_depth == DEFAULT_INITIAL_FETCH_DEPTH
    assert settings.list_files == "none"
    assert settings.working_directory == tmp_path.resolve()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"rules": ""},
        {"rules": "a: [x]", "list_files": "xml"},
        {"rules": "a: [x]", "initial_fetch_depth": "ten"},
        {"rules": "a: [x]", "initial_fetch_depth": 0},
        {"rules": "a: [x]", "working_directory": "/does/not/exist"},
    ],
)
def test_build_settings_rejects_bad_input(kwargs):
    with pytest.raises(ConfigurationError):
        build_settings(**kwargs)


def test_load_event_context_push(tmp_path: Path):
    event = tmp_path / "event.json"
    event.write_text(json.dumps({"before": "a" * 40, "repository": {"default_branch": "main"}}))
    ctx = load_event_context(
        {
            "GITHUB_EVENT_NAME": "push",
            "GITHUB_EVENT_PATH": str(event),
            "GITHUB_REF": "refs/heads/feature",
            "GITHUB_REPOSITORY": "acme/widgets",
        }
    )
    assert ctx.before == "a" * 40
    assert ctx.default_branch == "main"
    assert not ctx.is_pull_request
    assert ctx.api_url == "https://api.github.com"


def test_before_only_for_push(tmp_path: Path):
    event = tmp_path / "event.json"
    event.write_text(json.dumps({"before": "a" * 40, "pull_request": {"number": 3}}))
    ctx = load_event_context({"GITHUB_EVENT_NAME": "pull_request", "GITHUB_EVENT_PATH": str(event)})
    assert ctx.before is None
    assert ctx.is_pull_request
    assert ctx.pull_request["number"] == 3


def test_invalid_event_payload(tmp_path: Path):
    event = tmp_path / "event.json"
    event.write_text("{not json")
    with pytest.raises(ConfigurationError):
        load_event_context({"GITHUB_EVENT_PATH": str(event)})
