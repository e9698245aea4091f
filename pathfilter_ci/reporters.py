from __future__ import annotations

import json
import re
import shlex
import uuid
from pathlib import Path

import typer

from pathfilter_ci import __version__
from pathfilter_ci.models import ERROR_RULE, FilterReport

_ESCAPE_RE = re.compile(r"([^a-zA-Z0-9,._+:@%/-])")


def _csv_field(path: str) -> str:
    if "," in path or '"' in path:
        return '"' + path.replace('"', '""') + '"'
    return path


def format_files(files: list[str] | tuple[str, ...], fmt: str) -> str:
    if fmt == "csv":
        return ",".join(_csv_field(f) for f in files)
    if fmt == "json":
        return json.dumps(list(files))
    if fmt == "shell":
        return " ".join(shlex.quote(f) for f in files)
    if fmt == "escape":
        return " ".join(_ESCAPE_RE.sub(r"\\\1", f) for f in files)
    raise ValueError(f"Unsupported list-files format: {fmt}")


def build_outputs(report: FilterReport, list_files: str = "none") -> list[tuple[str, str]]:
    outputs: list[tuple[str, str]] = []
    for name, result in report.results.items():
        outputs.append((name, "true" if result.matched else "false"))
        outputs.append((f"{name}_count", str(result.count)))
        if list_files != "none":
            outputs.append((f"{name}_files", format_files(result.files, list_files)))
    outputs.append(("changes", json.dumps(report.matched_rules)))
    return outputs


def write_outputs(outputs: list[tuple[str, str]], path: Path | None) -> None:
    """Append step outputs to the GITHUB_OUTPUT file, or echo them when there is none."""
    if path is None:
        for name, value in outputs:
            typer.echo(f"{name}={value}")
        return

    with path.open("a", encoding="utf-8") as handle:
        for name, value in outputs:
            if "\n" in value or "\r" in value:
                delimiter = f"ghadelimiter_{uuid.uuid4()}"
                handle.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")
            else:
                handle.write(f"{name}={value}\n")


def write_json_report(report: FilterReport, path: Path) -> None:
    payload = report.to_dict()
    payload["tool"] = {"name": "pathfilter-ci", "version": __version__}
    path.write_text(json.dumps(payload, indent=2))


def build_markdown_summary(report: FilterReport) -> str:
    s = report.summary()
    lines = [
        "# pathfilter-ci results",
        "",
        f"- **Comparison:** `{report.comparison or 'all tracked files'}`",
        f"- **Changed Files:** {s['changed_files']}",
        f"- **Matched Rules:** {s['matched_rules']}/{s['rules']}",
        "",
    ]

    if report.fallback_used:
        lines.extend(
            [
                "> No merge base was found; changes were detected with a direct two-point comparison.",
                "",
            ]
        )

    if report.error:
        lines.extend(["## Error rule matched", ""])
        lines.extend([f"- `{f}`" for f in report.results[ERROR_RULE].files])
        lines.append("")

    lines.extend(["## Rules", "", "| Rule | Matched | Files |", "| --- | --- | --- |"])
    for name, result in report.results.items():
        lines.append(f"| `{name}` | {'yes' if result.matched else 'no'} | {result.count} |")
    lines.append("")

    return "\n".join(lines)


def append_markdown_summary(report: FilterReport, path: Path) -> None:
    with path.open("a", encoding="utf-8") as handle:
        handle.write(build_markdown_summary(report))
        handle.write("\n")
