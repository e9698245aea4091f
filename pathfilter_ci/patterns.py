"""Path glob compilation.

Supported syntax, always matched against the whole repository-relative path:

- ``*`` any run of characters except ``/``
- ``**`` as a full path segment: zero or more directories
- ``?`` one character except ``/``
- ``[abc]``, ``[a-z]``, ``[!a]`` / ``[^a]`` character classes
- ``{a,b}`` alternation, nestable
- ``\\`` escapes the next character
- a leading ``!`` negates the pattern

Dot files are not special: ``*`` matches ``.env``.
"""
from __future__ import annotations

from dataclasses import dataclass
import re


@dataclass(frozen=True)
class Glob:
    pattern: str
    negated: bool
    regex: re.Pattern[str]

    def matches(self, path: str) -> bool:
        return self.regex.match(path) is not None


def _find_brace_group(pattern: str) -> tuple[int, int, list[str]] | None:
    i = 0
    n = len(pattern)
    while i < n:
        ch = pattern[i]
        if ch == "\\":
            i += 2
            continue
        if ch != "{":
            i += 1
            continue

        depth = 0
        commas: list[int] = []
        j = i
        close = None
        while j < n:
            c = pattern[j]
            if c == "\\":
                j += 2
                continue
            if c == "{":
                depth += 1
            elif c == "}":
                depth -= 1
                if depth == 0:
                    close = j
                    break
            elif c == "," and depth == 1:
                commas.append(j)
            j += 1

        if close is None:
            # unbalanced: the rest of the pattern is literal
            return None
        if commas:
            bounds = [i, *commas, close]
            options = [pattern[a + 1:b] for a, b in zip(bounds, bounds[1:])]
            return i, close, options
        i += 1
    return None


def expand_braces(pattern: str) -> list[str]:
    group = _find_brace_group(pattern)
    if group is None:
        return [pattern]

    start, end, options = group
    prefix, suffix = pattern[:start], pattern[end + 1:]
    out: list[str] = []
    for option in options:
        for expanded in expand_braces(prefix + option + suffix):
            if expanded not in out:
                out.append(expanded)
    return out


def _class_end(segment: str, start: int) -> int | None:
    j = start + 1
    if j < len(segment) and segment[j] in "!^":
        j += 1
    if j < len(segment) and segment[j] == "]":
        j += 1
    while j < len(segment) and segment[j] != "]":
        j += 1
    return j if j < len(segment) else None


def _translate_class(body: str) -> str:
    negate = body[:1] in ("!", "^")
    if negate:
        body = body[1:]
    body = body.replace("\\", "\\\\").replace("[", "\\[").replace("]", "\\]")
    if negate:
        return f"[^/{body}]"
    return f"[{body}]"


def _translate_segment(segment: str) -> str:
    out: list[str] = []
    i = 0
    n = len(segment)
    while i < n:
        ch = segment[i]
        if ch == "\\" and i + 1 < n:
            out.append(re.escape(segment[i + 1]))
            i += 2
        elif ch == "*":
            while i < n and segment[i] == "*":
                i += 1
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
            i += 1
        elif ch == "[":
            end = _class_end(segment, i)
            if end is None:
                out.append(re.escape(ch))
                i += 1
            else:
                out.append(_translate_class(segment[i + 1:end]))
                i = end + 1
        else:
            out.append(re.escape(ch))
            i += 1
    return "".join(out)


def _translate(pattern: str) -> str:
    segments = pattern.split("/")
    out: list[str] = []
    for idx, segment in enumerate(segments):
        last = idx == len(segments) - 1
        if segment == "**":
            out.append(".*" if last else "(?:.*/)?")
        else:
            out.append(_translate_segment(segment))
            if not last:
                out.append("/")
    return "".join(out)


def glob_to_regex(pattern: str) -> str:
    alternatives = [_translate(p) for p in expand_braces(pattern)]
    return r"\A(?:" + "|".join(alternatives) + r")\Z"


def compile_glob(pattern: str) -> Glob:
    body = pattern
    negated = False
    while body.startswith("!"):
        body = body[1:]
        negated = not negated
    if not body:
        raise ValueError(f"Empty glob pattern: '{pattern}'")
    return Glob(pattern=pattern, negated=negated, regex=re.compile(glob_to_regex(body), re.S))
