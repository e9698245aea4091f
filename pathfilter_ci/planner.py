"""Pick how the change set is obtained for the current workflow run."""
from __future__ import annotations

from dataclasses import dataclass, field

from pathfilter_ci import console
from pathfilter_ci.config import ActionSettings, ConfigurationError, EventContext
from pathfilter_ci.git_scope import (
    HEAD,
    NULL_SHA,
    ChangeSetDiscoverer,
    CompareMode,
    is_git_sha,
    short_name,
)
from pathfilter_ci.github_api import list_pull_request_files
from pathfilter_ci.models import FileChange


@dataclass(frozen=True)
class ChangeSource:
    changes: list[FileChange] = field(default_factory=list)
    comparison: str | None = None
    fallback_used: bool = False


def _from_discoverer(discoverer: ChangeSetDiscoverer, changes: list[FileChange]) -> ChangeSource:
    return ChangeSource(
        changes=changes,
        comparison=discoverer.comparison,
        fallback_used=discoverer.fallback_used,
    )


def discover_changes(
    settings: ActionSettings,
    event: EventContext,
    discoverer: ChangeSetDiscoverer,
) -> ChangeSource:
    if settings.base == HEAD:
        if settings.ref:
            console.warning("'ref' input parameter is ignored when 'base' is set to HEAD")
        return _from_discoverer(discoverer, discoverer.changes_on_head())

    if event.is_pull_request:
        return _pull_request_changes(settings, event, discoverer)

    return _git_changes(settings, event, discoverer)


def _pull_request_changes(
    settings: ActionSettings,
    event: EventContext,
    discoverer: ChangeSetDiscoverer,
) -> ChangeSource:
    if settings.ref:
        console.warning("'ref' input parameter is ignored when action is triggered by pull request event")
    if settings.base:
        console.warning("'base' input parameter is ignored when action is triggered by pull request event")

    pr = event.pull_request
    number = pr.get("number")
    if settings.token:
        if number is None or not event.repository:
            raise ConfigurationError("Pull request number or repository is missing in the event payload")
        changes = list_pull_request_files(event.api_url, event.repository, int(number), settings.token)
        return ChangeSource(changes=changes, comparison=f"pull request #{number}")

    if event.name == "pull_request_target":
        raise ConfigurationError("'token' input parameter is required if action is triggered by 'pull_request_target' event")

    console.info("Github token is not available - changes will be detected using git diff")
    base_sha = (pr.get("base") or {}).get("sha")
    if not base_sha:
        raise ConfigurationError("Pull request base commit is missing in the event payload")
    return _from_discoverer(discoverer, discoverer.changes_between(base_sha, CompareMode.DIRECT))


def _git_changes(
    settings: ActionSettings,
    event: EventContext,
    discoverer: ChangeSetDiscoverer,
) -> ChangeSource:
    default_branch = event.default_branch
    current = discoverer.current_ref()
    head = short_name(settings.ref or event.ref or current)
    base = short_name(settings.base or default_branch or "")

    if not head:
        raise ConfigurationError(
            "This action requires 'ref' input to be configured, 'ref' to be set in the event payload "
            "or branch/tag checked out in current git repository"
        )
    if not base:
        raise ConfigurationError(
            "This action requires 'base' input to be configured or 'repository.default_branch' "
            "to be set in the event payload"
        )

    base_is_sha = is_git_sha(base)
    if not base_is_sha and base != head:
        console.info(f"Changes will be detected between {base} and {head}")
        return _from_discoverer(discoverer, discoverer.changes_between(base, CompareMode.MERGE_BASE, head))

    # Base is a commit, or the branch that was just pushed: compare
    # against that commit or the previously pushed one.
    base_sha = base if base_is_sha else event.before
    if not base_sha:
        console.warning("'before' field is missing in event payload - changes will be detected from last commit")
        if head != current:
            console.warning(f"Ref {head} is not checked out - results might be incorrect!")
        return _from_discoverer(discoverer, discoverer.changes_in_last_commit())

    if base_sha == NULL_SHA:
        if default_branch and base != default_branch:
            console.info(
                f"First push of a branch detected - changes will be detected against the default branch {default_branch}"
            )
            return _from_discoverer(
                discoverer, discoverer.changes_between(default_branch, CompareMode.MERGE_BASE, head)
            )
        console.info("Initial push detected - all files will be listed as added")
        if head != current:
            console.warning(f"Ref {head} is not checked out - results might be incorrect!")
        return _from_discoverer(discoverer, discoverer.list_all_as_added())

    console.info(f"Changes will be detected between {base_sha} and {head}")
    return _from_discoverer(discoverer, discoverer.changes_between(base_sha, CompareMode.DIRECT, head))
