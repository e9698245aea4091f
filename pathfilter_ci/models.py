from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ChangeStatus(str, Enum):
    ADDED = "added"
    COPIED = "copied"
    DELETED = "deleted"
    MODIFIED = "modified"
    RENAMED = "renamed"
    UNMERGED = "unmerged"


# Raw status letters printed by `git diff --name-status`
GIT_STATUS_CODES = {
    "A": ChangeStatus.ADDED,
    "C": ChangeStatus.COPIED,
    "D": ChangeStatus.DELETED,
    "M": ChangeStatus.MODIFIED,
    "R": ChangeStatus.RENAMED,
    "U": ChangeStatus.UNMERGED,
}


@dataclass(frozen=True)
class FileChange:
    path: str
    status: ChangeStatus

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "status": self.status.value}


def unique_changes(changes: list[FileChange]) -> list[FileChange]:
    """Drop repeated paths, keeping the first record and the reported order."""
    seen: set[str] = set()
    out: list[FileChange] = []
    for change in changes:
        if change.path in seen:
            continue
        seen.add(change.path)
        out.append(change)
    return out


@dataclass(frozen=True)
class RuleResult:
    name: str
    files: tuple[str, ...] = ()

    @property
    def matched(self) -> bool:
        return len(self.files) > 0

    @property
    def count(self) -> int:
        return len(self.files)

    def to_dict(self) -> dict[str, Any]:
        return {"matched": self.matched, "count": self.count, "files": list(self.files)}


ERROR_RULE = "error"


@dataclass(frozen=True)
class FilterReport:
    results: dict[str, RuleResult]
    changes: list[FileChange] = field(default_factory=list)
    comparison: str | None = None
    fallback_used: bool = False

    @property
    def matched_rules(self) -> list[str]:
        return [name for name, result in self.results.items() if result.matched]

    @property
    def error(self) -> bool:
        result = self.results.get(ERROR_RULE)
        return result is not None and result.matched

    def summary(self) -> dict[str, int]:
        return {
            "changed_files": len(self.changes),
            "rules": len(self.results),
            "matched_rules": len(self.matched_rules),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "comparison": self.comparison,
            "fallback_used": self.fallback_used,
            "summary": self.summary(),
            "changes": self.matched_rules,
            "error": self.error,
            "results": {name: r.to_dict() for name, r in self.results.items()},
            "files": [c.to_dict() for c in self.changes],
        }
