from pathlib import Path
from unittest.mock import patch

from typer.testing import CliRunner

from pathfilter_ci.cli import app
from pathfilter_ci.git_scope import RefNotFoundError
from pathfilter_ci.models import ChangeStatus, FileChange
from pathfilter_ci.planner import ChangeSource

runner = CliRunner()

RULES = "src:\n  - 'src/**'\nerror:\n  - 'missing/**'\n"


def _invoke(tmp_path: Path, *extra: str, rules: str = RULES):
    return runner.invoke(
        app,
        [
            "filter",
            "--filters",
            rules,
            "--working-directory",
            str(tmp_path),
            "--output-file",
            str(tmp_path / "out.txt"),
            *extra,
        ],
        env={"GITHUB_EVENT_NAME": "", "GITHUB_EVENT_PATH": "", "GITHUB_STEP_SUMMARY": ""},
    )


@patch("pathfilter_ci.cli.discover_changes")
def test_filter_writes_outputs(mock_discover, tmp_path: Path):
    mock_discover.return_value = ChangeSource(
        changes=[FileChange(path="src/app.py", status=ChangeStatus.MODIFIED)],
        comparison="main...HEAD",
    )
    result = _invoke(tmp_path, "--list-files", "csv", "--json-out", str(tmp_path / "report.json"))

    assert result.exit_code == 0, result.output
    out = (tmp_path / "out.txt").read_text().splitlines()
    assert "src=true" in out
    assert "src_files=src/app.py" in out
    assert "error=false" in out
    assert 'changes=["src"]' in out
    assert (tmp_path / "report.json").exists()


@patch("pathfilter_ci.cli.discover_changes")
def test_error_rule_match_is_not_a_failed_run(mock_discover, tmp_path: Path):
    mock_discover.return_value = ChangeSource(
        changes=[FileChange(path="missing/file", status=ChangeStatus.ADDED)]
    )
    result = _invoke(tmp_path)

    assert result.exit_code == 0
    assert "error=true" in (tmp_path / "out.txt").read_text()
    assert "::warning::Rule 'error' matched" in result.output


@patch("pathfilter_ci.cli.discover_changes")
def test_invalid_rules_fail_before_discovery(mock_discover, tmp_path: Path):
    result = _invoke(tmp_path, rules="a:\n  - x\na:\n  - y\n")

    assert result.exit_code == 2
    assert "Duplicate" in result.output
    mock_discover.assert_not_called()


@patch("pathfilter_ci.cli.discover_changes")
def test_discovery_failure_exits_without_outputs(mock_discover, tmp_path: Path):
    mock_discover.side_effect = RefNotFoundError("Could not determine what is 'ghost'")
    result = _invoke(tmp_path)

    assert result.exit_code == 1
    assert "::error::Could not determine what is 'ghost'" in result.output
    assert not (tmp_path / "out.txt").exists()
