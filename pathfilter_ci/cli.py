from __future__ import annotations

from pathlib import Path
import typer

from pathfilter_ci import console
from pathfilter_ci.config import (
    DEFAULT_INITIAL_FETCH_DEPTH,
    ConfigurationError,
    build_settings,
    load_event_context,
)
from pathfilter_ci.git_scope import ChangeSetDiscoverer, GitRepository, GitScopeError
from pathfilter_ci.github_api import GitHubApiError
from pathfilter_ci.models import ERROR_RULE, FilterReport
from pathfilter_ci.planner import discover_changes
from pathfilter_ci.reporters import (
    append_markdown_summary,
    build_outputs,
    write_json_report,
    write_outputs,
)
from pathfilter_ci.rules import evaluate, load_rules

app = typer.Typer(help="pathfilter-ci: report which areas of a repository changed")


@app.callback()
def main() -> None:
    """pathfilter-ci command group."""


@app.command("filter")
def filter_changes(
    filters: str = typer.Option(..., envvar="INPUT_FILTERS", help="Rules as inline YAML or path to a YAML file"),
    base: str | None = typer.Option(None, envvar="INPUT_BASE", help="Branch, tag or commit to compare against (HEAD = uncommitted changes)"),
    ref: str | None = typer.Option(None, envvar="INPUT_REF", help="Branch or tag whose changes are detected"),
    token: str | None = typer.Option(None, envvar="INPUT_TOKEN", help="GitHub token for listing pull request files"),
    working_directory: str = typer.Option(".", envvar="INPUT_WORKING-DIRECTORY", help="Repository checkout to inspect"),
    initial_fetch_depth: int = typer.Option(
        DEFAULT_INITIAL_FETCH_DEPTH,
        envvar="INPUT_INITIAL-FETCH-DEPTH",
        help="Commits fetched before deepening history in search of a merge base",
    ),
    list_files: str = typer.Option("none", envvar="INPUT_LIST-FILES", help="Matched file list format: none|csv|json|shell|escape"),
    output_file: str | None = typer.Option(None, envvar="GITHUB_OUTPUT", help="Step output file (echo to stdout when unset)"),
    summary_file: str | None = typer.Option(None, envvar="GITHUB_STEP_SUMMARY", help="Markdown job summary file"),
    json_out: str | None = typer.Option(None, help="Optional JSON report output path"),
) -> None:
    try:
        settings = build_settings(
            rules=filters,
            base=base,
            ref=ref,
            token=token,
            working_directory=working_directory,
            initial_fetch_depth=initial_fetch_depth,
            list_files=list_files,
        )
        rules = load_rules(settings.rules, settings.working_directory)
        event = load_event_context()
    except ConfigurationError as exc:
        typer.secho(f"Invalid configuration: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=2)

    repo = GitRepository(root=settings.working_directory)
    discoverer = ChangeSetDiscoverer(repo, initial_fetch_depth=settings.initial_fetch_depth)
    try:
        source = discover_changes(settings, event, discoverer)
    except ConfigurationError as exc:
        typer.secho(f"Invalid configuration: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=2)
    except (GitScopeError, GitHubApiError) as exc:
        console.error(str(exc))
        raise typer.Exit(code=1)

    console.info(f"Detected {len(source.changes)} changed files")
    report = FilterReport(
        results=evaluate(rules, source.changes),
        changes=source.changes,
        comparison=source.comparison,
        fallback_used=source.fallback_used,
    )

    with console.group("Filter results"):
        for name, result in report.results.items():
            console.info(f"{name}: {'matched' if result.matched else 'no match'} ({result.count} files)")
            for path in result.files:
                console.info(f"  {path}")

    write_outputs(build_outputs(report, settings.list_files), Path(output_file) if output_file else None)
    if json_out:
        write_json_report(report, Path(json_out))
    if summary_file:
        append_markdown_summary(report, Path(summary_file))

    summary = report.summary()
    typer.echo(
        f"Rules total={summary['rules']} matched={summary['matched_rules']} changed_files={summary['changed_files']} comparison={report.comparison or 'n/a'}"
    )

    if report.error:
        console.warning(f"Rule '{ERROR_RULE}' matched {report.results[ERROR_RULE].count} changed files")


if __name__ == "__main__":
    app()
