from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
import re
import subprocess
import sys

from pathfilter_ci import console
from pathfilter_ci.models import GIT_STATUS_CODES, ChangeStatus, FileChange, unique_changes


NULL_SHA = "0" * 40
HEAD = "HEAD"
DEFAULT_INITIAL_FETCH_DEPTH = 10
MAX_FETCH_DEPTH = sys.maxsize

_SHA_RE = re.compile(r"^[a-z0-9]{40}$")


class GitScopeError(RuntimeError):
    pass


class AccessorError(GitScopeError):
    """A git invocation failed and there is no fallback for it."""


class RefNotFoundError(GitScopeError):
    pass


class MergeBaseUnavailable(RuntimeError):
    """No common ancestor even after fetching full history.

    Not fatal: callers fall back to a direct two-point comparison.
    """

    def __init__(self, base_ref: str, head: str):
        super().__init__(f"No merge base between {base_ref} and {head}")
        self.base_ref = base_ref
        self.head = head


class CompareMode(str, Enum):
    DIRECT = "direct"
    MERGE_BASE = "merge-base"


@dataclass(frozen=True)
class GitResult:
    stdout: str
    stderr: str
    code: int


@dataclass
class GitRepository:
    """Session handle for one local clone. Every git call, fetches included, goes through ``run``."""

    root: Path = field(default_factory=lambda: Path("."))
    remote: str = "origin"
    timeout_seconds: float | None = None

    def run(self, args: list[str], tolerate: bool = False) -> GitResult:
        cmd = ["git", *args]
        try:
            proc = subprocess.run(
                cmd,
                cwd=str(self.root),
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="surrogateescape",
                timeout=self.timeout_seconds,
                check=False,
            )
        except FileNotFoundError as exc:
            raise AccessorError("git is not installed or not available in PATH") from exc
        except subprocess.TimeoutExpired as exc:
            raise AccessorError(f"'git {' '.join(args)}' timed out after {self.timeout_seconds}s") from exc

        result = GitResult(stdout=proc.stdout or "", stderr=proc.stderr or "", code=proc.returncode)
        if result.code != 0 and not tolerate:
            stderr = result.stderr.strip()
            raise AccessorError(
                f"'git {' '.join(args)}' failed with exit code {result.code}. {stderr or 'No error output.'}"
            )
        return result


def is_git_sha(ref: str) -> bool:
    return bool(_SHA_RE.match(ref))


def short_name(ref: str) -> str:
    if not ref:
        return ""
    for prefix in ("refs/heads/", "refs/tags/"):
        if ref.startswith(prefix):
            return ref[len(prefix):]
    return ref


def _status_from_code(code: str) -> ChangeStatus:
    # Copy and rename codes carry a similarity score, e.g. R100 or C075
    letter = code.rstrip("0123456789")
    try:
        return GIT_STATUS_CODES[letter]
    except KeyError as exc:
        raise AccessorError(f"Unrecognized change status '{code}' in git output") from exc


def parse_name_status(output: str) -> list[FileChange]:
    """Parse ``--name-status -z`` output: NUL separated (status, path) pairs."""
    tokens = [t for t in output.split("\0") if t]
    changes: list[FileChange] = []
    for idx in range(0, len(tokens) - 1, 2):
        changes.append(FileChange(path=tokens[idx + 1], status=_status_from_code(tokens[idx])))
    return unique_changes(changes)


def parse_file_list(output: str) -> list[FileChange]:
    return unique_changes(
        [FileChange(path=p, status=ChangeStatus.ADDED) for p in output.split("\0") if p]
    )


class SearchState(str, Enum):
    SEARCHING = "searching"
    DEEPENING = "deepening"
    FINAL_ATTEMPT = "final-attempt"
    FALLBACK = "fallback"
    FOUND = "found"


TERMINAL_STATES = {SearchState.FOUND, SearchState.FALLBACK}


@dataclass
class MergeBaseSearch:
    """Fetch just enough history to find a merge base of ``base`` and ``head``.

    SEARCHING fetches ``initial_depth`` commits, DEEPENING doubles the depth
    while every fetch still brings in new commits, FINAL_ATTEMPT fetches full
    history once. FINAL_ATTEMPT only ever leads to FOUND or FALLBACK, so the
    search ends after a bounded number of fetches.
    """

    repo: GitRepository
    base: str
    head: str
    initial_depth: int = DEFAULT_INITIAL_FETCH_DEPTH
    state: SearchState = SearchState.SEARCHING
    base_ref: str | None = None
    depth: int = 0
    last_count: int = 0

    def run(self) -> str:
        while self.state not in TERMINAL_STATES:
            self.step()
        if self.base_ref is None:
            raise RefNotFoundError(f"Could not resolve '{self.base}'")
        if self.state is SearchState.FALLBACK:
            raise MergeBaseUnavailable(self.base_ref, self.head)
        return self.base_ref

    def step(self) -> SearchState:
        handlers = {
            SearchState.SEARCHING: self._search,
            SearchState.DEEPENING: self._deepen,
            SearchState.FINAL_ATTEMPT: self._final_attempt,
        }
        self.state = handlers[self.state]()
        return self.state

    def _fetch(self, *args: str, tolerate: bool = False) -> GitResult:
        return self.repo.run(["fetch", *args, self.repo.remote, self.base, self.head], tolerate=tolerate)

    def _search(self) -> SearchState:
        self.base_ref = full_ref(self.repo, self.base)
        if has_merge_base(self.repo, self.base_ref, self.head):
            return SearchState.FOUND

        self._fetch("--no-tags", f"--depth={self.initial_depth}")
        if self.base_ref is None:
            self.base_ref = full_ref(self.repo, self.base)
        if self.base_ref is None:
            self._fetch("--tags", "--depth=1")
            self.base_ref = full_ref(self.repo, self.base)
        if self.base_ref is None:
            raise RefNotFoundError(
                f"Could not determine what is '{self.base}' - fetch works but it's not a branch, tag or commit"
            )

        self.depth = self.initial_depth
        self.last_count = commit_count(self.repo)
        if has_merge_base(self.repo, self.base_ref, self.head):
            return SearchState.FOUND
        return SearchState.DEEPENING

    def _deepen(self) -> SearchState:
        self.depth = min(self.depth * 2, MAX_FETCH_DEPTH)
        # a failed deepen leaves the commit count unchanged, which moves
        # the search on to the full history fetch
        result = self._fetch(f"--deepen={self.depth}", tolerate=True)
        if result.code != 0:
            console.info(f"Fetching deeper history failed: {result.stderr.strip() or result.code}")
        count = commit_count(self.repo)
        if count == self.last_count:
            console.info("No more commits were fetched")
            return SearchState.FINAL_ATTEMPT
        self.last_count = count
        if has_merge_base(self.repo, self.base_ref, self.head):
            return SearchState.FOUND
        return SearchState.DEEPENING

    def _final_attempt(self) -> SearchState:
        console.info("Last attempt will be to fetch full history")
        shallow = self.repo.run(["rev-parse", "--is-shallow-repository"]).stdout.strip() == "true"
        if shallow:
            self.repo.run(["fetch", "--unshallow", self.repo.remote])
        else:
            self.repo.run(["fetch", self.repo.remote])
        if has_merge_base(self.repo, self.base_ref, self.head):
            return SearchState.FOUND
        return SearchState.FALLBACK


def has_commit(repo: GitRepository, ref: str) -> bool:
    return repo.run(["cat-file", "-e", f"{ref}^{{commit}}"], tolerate=True).code == 0


def has_merge_base(repo: GitRepository, base_ref: str | None, head: str) -> bool:
    if base_ref is None:
        return False
    return repo.run(["merge-base", base_ref, head], tolerate=True).code == 0


def commit_count(repo: GitRepository) -> int:
    output = repo.run(["rev-list", "--count", "--all"]).stdout.strip()
    try:
        return int(output)
    except ValueError:
        return 0


def full_ref(repo: GitRepository, name: str) -> str | None:
    """Resolve a short branch/tag name, preferring the remote tracking ref."""
    if is_git_sha(name):
        return name

    output = repo.run(["show-ref", name], tolerate=True).stdout
    refs: list[str] = []
    for line in output.splitlines():
        m = re.search(r"refs/.*$", line)
        if m:
            refs.append(m.group(0))
    if not refs:
        return None

    remote_prefix = f"refs/remotes/{repo.remote}/"
    for ref in refs:
        if ref.startswith(remote_prefix):
            return ref
    return refs[0]


class ChangeSetDiscoverer:
    def __init__(self, repo: GitRepository, initial_fetch_depth: int = DEFAULT_INITIAL_FETCH_DEPTH):
        if initial_fetch_depth < 1:
            raise ValueError(f"initial fetch depth must be positive, got {initial_fetch_depth}")
        self.repo = repo
        self.initial_fetch_depth = initial_fetch_depth
        self.comparison: str | None = None
        self.fallback_used = False

    def _diff(self, diff_arg: str) -> list[FileChange]:
        self.comparison = diff_arg
        with console.group(f"Change detection {diff_arg}"):
            output = self.repo.run(["diff", "--no-renames", "--name-status", "-z", diff_arg]).stdout
        return parse_name_status(output)

    def changes_in_last_commit(self) -> list[FileChange]:
        with console.group("Change detection in last commit"):
            if self.repo.run(["rev-parse", "--verify", "--quiet", f"{HEAD}^"], tolerate=True).code != 0:
                raise AccessorError("Last commit has no parent commit to compare against")
            output = self.repo.run(
                ["log", "--format=", "--no-renames", "--name-status", "-z", "-n", "1"]
            ).stdout
        self.comparison = f"{HEAD}^..{HEAD}"
        return parse_name_status(output)

    def changes_between(
        self,
        base_ref: str,
        mode: CompareMode = CompareMode.MERGE_BASE,
        head: str = HEAD,
    ) -> list[FileChange]:
        if mode is CompareMode.DIRECT:
            return self._direct_changes(base_ref, head)
        return self._merge_base_changes(base_ref, head)

    def _direct_changes(self, base_ref: str, head: str) -> list[FileChange]:
        if not has_commit(self.repo, base_ref):
            with console.group(f"Fetching {base_ref} from {self.repo.remote}"):
                self.repo.run(["fetch", "--depth=1", "--no-tags", self.repo.remote, base_ref])
        # Two dots: compares both snapshots directly
        return self._diff(f"{base_ref}..{head}")

    def _merge_base_changes(self, base: str, head: str) -> list[FileChange]:
        search = MergeBaseSearch(self.repo, base, head, initial_depth=self.initial_fetch_depth)
        fallback = False
        with console.group(f"Searching for merge-base {base}...{head}"):
            try:
                base_ref = search.run()
            except MergeBaseUnavailable as exc:
                base_ref = exc.base_ref
                fallback = True
        self.fallback_used = fallback

        if fallback:
            console.warning(
                f"No merge base found for {base_ref} and {head} - merge-base search abandoned, "
                "change detection will use direct <commit>..<commit> comparison"
            )
            return self._diff(f"{base_ref}..{head}")
        # Three dots: changes on head since the merge base
        return self._diff(f"{base_ref}...{head}")

    def changes_on_head(self) -> list[FileChange]:
        """Staged and unstaged changes against the last commit."""
        return self._diff(HEAD)

    def list_all_as_added(self) -> list[FileChange]:
        with console.group("Listing all files tracked by git"):
            output = self.repo.run(["ls-files", "-z"]).stdout
        self.comparison = None
        return parse_file_list(output)

    def current_ref(self) -> str:
        with console.group("Determining current ref"):
            branch = self.repo.run(["branch", "--show-current"]).stdout.strip()
            if branch:
                return branch

            describe = self.repo.run(["describe", "--tags", "--exact-match"], tolerate=True)
            if describe.code == 0:
                return describe.stdout.strip()

            return self.repo.run(["rev-parse", HEAD]).stdout.strip()
