from unittest.mock import patch

import pytest

from pathfilter_ci.config import ActionSettings, ConfigurationError, EventContext
from pathfilter_ci.git_scope import NULL_SHA, CompareMode
from pathfilter_ci.models import ChangeStatus, FileChange
from pathfilter_ci.planner import discover_changes

SHA = "1234567890abcdef1234567890abcdef12345678"


class StubDiscoverer:
    def __init__(self, current="feature"):
        self.current = current
        self.calls = []
        self.comparison = None
        self.fallback_used = False

    def current_ref(self):
        return self.current

    def changes_on_head(self):
        self.calls.append(("head",))
        return [FileChange(path="local", status=ChangeStatus.ADDED)]

    def changes_between(self, base_ref, mode=CompareMode.MERGE_BASE, head="HEAD"):
        self.calls.append(("between", base_ref, mode, head))
        self.comparison = f"{base_ref}...{head}"
        return []

    def changes_in_last_commit(self):
        self.calls.append(("last",))
        return []

    def list_all_as_added(self):
        self.calls.append(("all",))
        return []


def _settings(**kwargs) -> ActionSettings:
    return ActionSettings(rules="a: [x]", **kwargs)


def _push(before=None, default_branch="main", ref="refs/heads/feature") -> EventContext:
    payload = {"repository": {"default_branch": default_branch}}
    if before:
        payload["before"] = before
    return EventContext(name="push", ref=ref, repository="acme/widgets", payload=payload)


def test_base_head_uses_working_tree(capsys):
    stub = StubDiscoverer()
    source = discover_changes(_settings(base="HEAD", ref="main"), _push(), stub)
    assert stub.calls == [("head",)]
    assert source.changes[0].path == "local"
    assert "'ref' input parameter is ignored" in capsys.readouterr().out


def test_pull_request_with_token_uses_api():
    event = EventContext(
        name="pull_request",
        repository="acme/widgets",
        payload={"pull_request": {"number": 12, "base": {"sha": SHA}}},
    )
    stub = StubDiscoverer()
    with patch("pathfilter_ci.planner.list_pull_request_files", return_value=[]) as mock_list:
        source = discover_changes(_settings(token="tkn"), event, stub)
    mock_list.assert_called_once_with("https://api.github.com", "acme/widgets", 12, "tkn")
    assert source.comparison == "pull request #12"
    assert stub.calls == []


def test_pull_request_without_token_compares_base_sha():
    event = EventContext(name="pull_request", payload={"pull_request": {"number": 12, "base": {"sha": SHA}}})
    stub = StubDiscoverer()
    discover_changes(_settings(base="develop"), event, stub)
    assert stub.calls == [("between", SHA, CompareMode.DIRECT, "HEAD")]


def test_pull_request_target_requires_token():
    event = EventContext(name="pull_request_target", payload={"pull_request": {"number": 1}})
    with pytest.raises(ConfigurationError):
        discover_changes(_settings(), event, StubDiscoverer())


def test_push_to_feature_branch_uses_merge_base():
    stub = StubDiscoverer()
    source = discover_changes(_settings(), _push(before=SHA), stub)
    assert stub.calls == [("between", "main", CompareMode.MERGE_BASE, "feature")]
    assert source.comparison == "main...feature"


def test_push_to_same_branch_compares_before():
    stub = StubDiscoverer(current="main")
    discover_changes(_settings(), _push(before=SHA, ref="refs/heads/main"), stub)
    assert stub.calls == [("between", SHA, CompareMode.DIRECT, "main")]


def test_explicit_sha_base():
    stub = StubDiscoverer()
    discover_changes(_settings(base=SHA), _push(), stub)
    assert stub.calls == [("between", SHA, CompareMode.DIRECT, "feature")]


def test_first_push_of_branch_compares_default_branch():
    stub = StubDiscoverer()
    discover_changes(_settings(base="feature"), _push(before=NULL_SHA), stub)
    assert stub.calls == [("between", "main", CompareMode.MERGE_BASE, "feature")]


def test_initial_push_lists_everything():
    stub = StubDiscoverer(current="main")
    discover_changes(_settings(), _push(before=NULL_SHA, ref="refs/heads/main"), stub)
    assert stub.calls == [("all",)]


def test_missing_before_uses_last_commit(capsys):
    stub = StubDiscoverer(current="main")
    event = EventContext(name="workflow_dispatch", ref="refs/heads/release", payload={})
    discover_changes(_settings(base="release"), event, stub)
    assert stub.calls == [("last",)]
    out = capsys.readouterr().out
    assert "'before' field is missing" in out
    assert "Ref release is not checked out" in out


def test_missing_base_is_configuration_error():
    with pytest.raises(ConfigurationError):
        discover_changes(_settings(), EventContext(name="push", ref="refs/heads/x"), StubDiscoverer())
