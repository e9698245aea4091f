from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

import yaml

from pathfilter_ci.config import ConfigurationError
from pathfilter_ci.models import ChangeStatus, FileChange, RuleResult
from pathfilter_ci.patterns import Glob, compile_glob


ANY_STATUS_KEY = "*"
STATUS_SEPARATOR = "|"
STATUS_NAMES = {s.value: s for s in ChangeStatus}


@dataclass(frozen=True)
class AnyStatusClause:
    glob: Glob

    def admits(self, status: ChangeStatus) -> bool:
        return True


@dataclass(frozen=True)
class QualifiedClause:
    statuses: frozenset[ChangeStatus]
    glob: Glob

    def admits(self, status: ChangeStatus) -> bool:
        return status in self.statuses


PatternClause = Union[AnyStatusClause, QualifiedClause]


@dataclass(frozen=True)
class RuleDefinition:
    name: str
    clauses: tuple[PatternClause, ...] = ()

    def matches(self, change: FileChange) -> bool:
        # Clauses apply in order: a positive clause includes the file,
        # a later negated clause removes it again.
        included = False
        for clause in self.clauses:
            if not clause.admits(change.status):
                continue
            if not clause.glob.matches(change.path):
                continue
            included = not clause.glob.negated
        return included


def any_status(pattern: str) -> AnyStatusClause:
    return AnyStatusClause(glob=compile_glob(pattern))


def qualified(statuses: set[ChangeStatus] | frozenset[ChangeStatus], pattern: str) -> QualifiedClause:
    return QualifiedClause(statuses=frozenset(statuses), glob=compile_glob(pattern))


def evaluate(rules: list[RuleDefinition], changes: list[FileChange]) -> dict[str, RuleResult]:
    results: dict[str, RuleResult] = {}
    for rule in rules:
        files: list[str] = []
        seen: set[str] = set()
        for change in changes:
            if change.path in seen:
                continue
            if rule.matches(change):
                seen.add(change.path)
                files.append(change.path)
        results[rule.name] = RuleResult(name=rule.name, files=tuple(files))
    return results


class _UniqueKeyLoader(yaml.SafeLoader):
    pass


def _construct_unique_mapping(loader: yaml.SafeLoader, node: yaml.MappingNode, deep: bool = False) -> dict[Any, Any]:
    seen: set[Any] = set()
    for key_node, _ in node.value:
        if key_node.tag == "tag:yaml.org,2002:merge":
            continue
        key = loader.construct_object(key_node, deep=deep)
        try:
            duplicate = key in seen
        except TypeError:
            continue
        if duplicate:
            raise ConfigurationError(
                f"Duplicate key '{key}' in rules definition (line {key_node.start_mark.line + 1})"
            )
        seen.add(key)
    return loader.construct_mapping(node, deep=deep)


_UniqueKeyLoader.add_constructor(yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_unique_mapping)


def _parse_statuses(rule: str, key: Any) -> frozenset[ChangeStatus] | None:
    if not isinstance(key, str):
        raise ConfigurationError(f"Rule '{rule}': change status qualifier must be a string, got {key!r}")

    names = [part.strip().lower() for part in key.split(STATUS_SEPARATOR)]
    names = [n for n in names if n]
    if ANY_STATUS_KEY in names:
        return None

    statuses: set[ChangeStatus] = set()
    for name in names:
        if name not in STATUS_NAMES:
            allowed = ", ".join(sorted(STATUS_NAMES))
            raise ConfigurationError(
                f"Rule '{rule}': unknown change status '{name}' (expected one of: {allowed}, or '{ANY_STATUS_KEY}')"
            )
        statuses.add(STATUS_NAMES[name])
    return frozenset(statuses)


def _compile(rule: str, pattern: Any) -> Glob:
    if not isinstance(pattern, str):
        raise ConfigurationError(f"Rule '{rule}': pattern must be a string, got {pattern!r}")
    try:
        return compile_glob(pattern)
    except ValueError as exc:
        raise ConfigurationError(f"Rule '{rule}': {exc}") from exc


def _parse_item(rule: str, item: Any) -> list[PatternClause]:
    if isinstance(item, str):
        return [AnyStatusClause(glob=_compile(rule, item))]

    if isinstance(item, list):
        # nested lists come from YAML anchors/aliases
        clauses: list[PatternClause] = []
        for sub in item:
            clauses.extend(_parse_item(rule, sub))
        return clauses

    if isinstance(item, dict):
        clauses = []
        for key, value in item.items():
            statuses = _parse_statuses(rule, key)
            patterns = value if isinstance(value, list) else [value]
            for pattern in patterns:
                glob = _compile(rule, pattern)
                if statuses is None:
                    clauses.append(AnyStatusClause(glob=glob))
                else:
                    clauses.append(QualifiedClause(statuses=statuses, glob=glob))
        return clauses

    raise ConfigurationError(f"Rule '{rule}': unexpected clause {item!r}")


def rules_from_mapping(data: Any) -> list[RuleDefinition]:
    if not isinstance(data, dict):
        raise ConfigurationError("Rules definition must be a mapping of rule name to a list of patterns")
    if not data:
        raise ConfigurationError("Rules definition is empty")

    rules: list[RuleDefinition] = []
    for name, body in data.items():
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError(f"Rule name must be a non-empty string, got {name!r}")
        if body is None:
            raise ConfigurationError(f"Rule '{name}' has no patterns")
        rules.append(RuleDefinition(name=name, clauses=tuple(_parse_item(name, body))))
    return rules


def parse_rules(text: str) -> list[RuleDefinition]:
    try:
        data = yaml.load(text, Loader=_UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid rules YAML: {exc}") from exc
    if data is None:
        raise ConfigurationError("Rules definition is empty")
    return rules_from_mapping(data)


def is_path_input(value: str) -> bool:
    return "\n" not in value.strip()


def load_rules(value: str, root: Path | None = None) -> list[RuleDefinition]:
    """Load rules from inline YAML or, for a single-line value, from a file path."""
    if not value or not value.strip():
        raise ConfigurationError("No rules were provided")

    if not is_path_input(value):
        return parse_rules(value)

    rules_path = Path(value.strip())
    if root is not None and not rules_path.is_absolute():
        rules_path = root / rules_path
    if not rules_path.exists() or not rules_path.is_file():
        raise ConfigurationError(f"Rules file not found: {rules_path}")
    return parse_rules(rules_path.read_text(encoding="utf-8"))
