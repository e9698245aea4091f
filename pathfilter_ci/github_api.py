from __future__ import annotations

from typing import Any

import requests

from pathfilter_ci import console
from pathfilter_ci.models import ChangeStatus, FileChange, unique_changes

PER_PAGE = 100
DEFAULT_TIMEOUT_SECONDS = 25

# The REST API reports "removed" where git says deleted
API_STATUS = {
    "added": ChangeStatus.ADDED,
    "removed": ChangeStatus.DELETED,
    "modified": ChangeStatus.MODIFIED,
    "renamed": ChangeStatus.RENAMED,
    "copied": ChangeStatus.COPIED,
    "changed": ChangeStatus.MODIFIED,
    "unchanged": ChangeStatus.MODIFIED,
}


class GitHubApiError(RuntimeError):
    pass


def _files_url(api_url: str, repository: str, number: int) -> str:
    return f"{api_url.rstrip('/')}/repos/{repository}/pulls/{number}/files"


def _to_changes(row: dict[str, Any]) -> list[FileChange]:
    filename = row.get("filename")
    if not filename:
        return []
    status = str(row.get("status") or "modified")
    previous = row.get("previous_filename")
    if status == "renamed" and previous:
        # reported the same way `git diff --no-renames` would
        return [
            FileChange(path=filename, status=ChangeStatus.ADDED),
            FileChange(path=previous, status=ChangeStatus.DELETED),
        ]
    return [FileChange(path=filename, status=API_STATUS.get(status, ChangeStatus.MODIFIED))]


def list_pull_request_files(
    api_url: str,
    repository: str,
    number: int,
    token: str,
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
) -> list[FileChange]:
    url = _files_url(api_url, repository, number)
    headers = {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
    }

    changes: list[FileChange] = []
    page = 1
    with console.group(f"Fetching list of changed files for PR#{number} from Github API"):
        while True:
            try:
                resp = requests.get(
                    url,
                    headers=headers,
                    params={"per_page": PER_PAGE, "page": page},
                    timeout=timeout_seconds,
                )
                resp.raise_for_status()
                rows = resp.json()
            except requests.RequestException as exc:
                raise GitHubApiError(f"Failed to list files of pull request #{number}: {exc}") from exc

            if not isinstance(rows, list):
                raise GitHubApiError(f"Unexpected response listing files of pull request #{number}")

            console.info(f"Received {len(rows)} items from page {page}")
            for row in rows:
                if isinstance(row, dict):
                    changes.extend(_to_changes(row))

            if len(rows) < PER_PAGE:
                break
            page += 1

    return unique_changes(changes)
