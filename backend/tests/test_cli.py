"""Tests for the status-builder command line."""

import json
import os
from unittest.mock import patch

import pytest
import requests
from click.testing import CliRunner

from app.cli import cli
from services.issue_normalizer import normalize_all
from services.jira_client import JiraClient
from services.selection import SelectionStore


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, settings, args, **kwargs):
    return runner.invoke(cli, args, obj=settings, **kwargs)


class TestReportCommand:
    """Test report generation from the command line."""

    def test_offline_report(self, runner, settings, raw_issues, tmp_path):
        dump = tmp_path / "issues.json"
        dump.write_text(json.dumps({"issues": raw_issues, "velocityData": [{"completedCount": 3}]}))

        result = invoke(runner, settings, ["report", "--offline", str(dump), "--format", "all"])

        assert result.exit_code == 0, result.output
        assert "Processed 3 issues" in result.output
        written = sorted(os.listdir(os.path.join(settings.reports_dir, "markdown")))
        assert written[0].startswith("epic-focused-report-PROJ-")
        with open(os.path.join(settings.reports_dir, "markdown", written[0])) as f:
            content = f.read()
        assert "INIT-7" in content

    def test_offline_report_bad_file(self, runner, settings, tmp_path):
        dump = tmp_path / "issues.json"
        dump.write_text('{"issues": "nope"}')

        result = invoke(runner, settings, ["report", "--offline", str(dump)])

        assert result.exit_code == 1
        assert "does not contain a list of issues" in result.output

    def test_online_report(self, runner, settings, raw_issues, velocity_samples):
        issues = normalize_all(raw_issues)
        with patch.object(JiraClient, "fetch_report_issues", return_value=issues) as mock_fetch, \
                patch.object(JiraClient, "get_velocity_samples", return_value=velocity_samples), \
                patch.object(JiraClient, "get_board", return_value={"id": "5", "name": "Team Five"}):
            result = invoke(runner, settings, ["report", "--board", "5", "--weeks", "2", "--format", "text"])

        assert result.exit_code == 0, result.output
        assert "text:" in result.output
        mock_fetch.assert_called_once_with("PROJ", [{"id": "5", "name": "Team Five"}], 2, None)

    def test_saved_issues_filter_applies(self, runner, settings, raw_issues):
        issue_filter = {"component": "UI", "statuses": ["Open"], "dateRange": 7}
        SelectionStore(settings.selection_path).save({"key": "PROJ"}, [], issue_filter)

        with patch.object(JiraClient, "fetch_report_issues", return_value=normalize_all(raw_issues)) as mock_fetch, \
                patch.object(JiraClient, "get_velocity_samples", return_value=[]), \
                patch.object(JiraClient, "fetch_epic_hierarchy", return_value=None):
            result = invoke(runner, settings, ["report"])

        assert result.exit_code == 0, result.output
        mock_fetch.assert_called_once_with("PROJ", [], 1, issue_filter)
        markdown = os.path.join(settings.reports_dir, "markdown")
        with open(os.path.join(markdown, os.listdir(markdown)[0])) as f:
            assert "**Component:** UI" in f.read()

    def test_saved_filter_ignored_for_other_project(self, runner, settings):
        SelectionStore(settings.selection_path).save({"key": "PROJ"}, [], {"component": "UI"})

        with patch.object(JiraClient, "fetch_report_issues", return_value=[]) as mock_fetch, \
                patch.object(JiraClient, "get_velocity_samples", return_value=[]):
            result = invoke(runner, settings, ["report", "--project", "OTHER", "--format", "text"])

        assert result.exit_code == 0, result.output
        mock_fetch.assert_called_once_with("OTHER", [], 1, None)

    def test_jira_failure(self, runner, settings):
        with patch.object(JiraClient, "fetch_report_issues", side_effect=requests.exceptions.ConnectionError("down")):
            result = invoke(runner, settings, ["report", "--project", "PROJ"])

        assert result.exit_code == 1
        assert "Jira request failed" in result.output

    def test_missing_token(self, runner, settings_without_token):
        result = invoke(runner, settings_without_token, ["report", "--project", "PROJ"])
        assert result.exit_code == 1
        assert "JIRA_API_TOKEN" in result.output


class TestExportCommand:

    def test_export_csv(self, runner, settings, raw_issues):
        with patch.object(JiraClient, "search_issues", return_value=normalize_all(raw_issues)) as mock_search, \
                patch.object(JiraClient, "get_velocity_samples", return_value=[]):
            result = invoke(runner, settings, ["export", "--format", "csv"])

        assert result.exit_code == 0, result.output
        assert "Exported 3 issues" in result.output
        assert mock_search.call_args.args[0].startswith("project in (PROJ)")
        assert any(name.startswith("jira-issues-PROJ-") for name in os.listdir(settings.data_dir))

    def test_export_uses_saved_filter(self, runner, settings):
        SelectionStore(settings.selection_path).save({"key": "PROJ"}, [], {"component": "UI", "dateRange": 3})

        with patch.object(JiraClient, "search_issues", return_value=[]) as mock_search, \
                patch.object(JiraClient, "get_velocity_samples", return_value=[]):
            result = invoke(runner, settings, ["export"])

        assert result.exit_code == 0, result.output
        assert 'component = "UI"' in mock_search.call_args.args[0]

    def test_export_custom_jql(self, runner, settings):
        with patch.object(JiraClient, "search_issues", return_value=[]) as mock_search, \
                patch.object(JiraClient, "get_velocity_samples", return_value=[]):
            result = invoke(runner, settings, ["export", "--jql", "assignee = currentUser()"])

        assert result.exit_code == 0, result.output
        mock_search.assert_called_once_with("assignee = currentUser()")


class TestQueryCommand:

    def test_plain(self, runner, settings, raw_issues):
        with patch.object(JiraClient, "search_issues", return_value=normalize_all(raw_issues)):
            result = invoke(runner, settings, ["query", "project = PROJ", "--plain"])

        assert result.exit_code == 0, result.output
        assert "PROJ-102\tDone\tUnassigned\tFix session timeout" in result.output

    def test_raw(self, runner, settings, raw_issues):
        with patch.object(JiraClient, "search_raw", return_value=raw_issues):
            result = invoke(runner, settings, ["query", "project = PROJ", "--raw"])

        assert json.loads(result.output)[0]["key"] == "PROJ-1"

    def test_default_json(self, runner, settings, raw_issues):
        with patch.object(JiraClient, "search_issues", return_value=normalize_all(raw_issues)) as mock_search:
            result = invoke(runner, settings, ["query", "project = PROJ", "--max-results", "10"])

        assert json.loads(result.output)[1]["epic"]["key"] == "PROJ-1"
        mock_search.assert_called_once_with("project = PROJ", 10)


class TestSelectCommand:
    """Test saving the project/board selection."""

    def test_with_options(self, runner, settings):
        boards = [{"id": 1, "name": "Team A"}, {"id": 2, "name": "Team B"}]
        with patch.object(JiraClient, "get_boards_for_project", return_value=boards):
            result = invoke(runner, settings, ["select", "--project", "PROJ", "--board", "2"])

        assert result.exit_code == 0, result.output
        saved = SelectionStore(settings.selection_path).load()
        assert saved == {"project": {"key": "PROJ"}, "boards": [{"id": 2, "name": "Team B"}]}

    def test_interactive(self, runner, settings):
        with patch.object(JiraClient, "get_projects", return_value=[{"key": "PROJ", "name": "Project"}]), \
                patch.object(JiraClient, "get_boards_for_project", return_value=[{"id": 1, "name": "Team A"}]):
            result = invoke(runner, settings, ["select"], input="PROJ\n1\n")

        assert result.exit_code == 0, result.output
        assert SelectionStore(settings.selection_path).load()["boards"] == [{"id": 1, "name": "Team A"}]

    def test_issues_mode_options(self, runner, settings):
        with patch.object(JiraClient, "get_boards_for_project", return_value=[]):
            result = invoke(runner, settings, [
                "select", "--project", "PROJ", "--component", "UI",
                "--status", "Open", "--status", "In Progress"
            ])

        assert result.exit_code == 0, result.output
        assert SelectionStore(settings.selection_path).load()["issuesFilter"] == {
            "component": "UI", "statuses": ["Open", "In Progress"], "dateRange": 7
        }

    def test_unknown_board(self, runner, settings):
        with patch.object(JiraClient, "get_boards_for_project", return_value=[{"id": 1, "name": "Team A"}]):
            result = invoke(runner, settings, ["select", "--project", "PROJ", "--board", "99"])

        assert result.exit_code == 1
        assert "Board 99 does not belong to PROJ" in result.output


class TestInputCommand:

    def test_from_file(self, runner, settings, tmp_path):
        source = tmp_path / "narrative.json"
        source.write_text(json.dumps({"celebrations": {"kudos": "Thanks Alice"}}))

        result = invoke(runner, settings, ["input", "--from-file", str(source)])

        assert result.exit_code == 0, result.output
        with open(settings.manual_input_path) as f:
            assert json.load(f)["celebrations"] == {"kudos": "Thanks Alice"}

    def test_prompts(self, runner, settings):
        answers = "Upbeat\n" + "\n" * 13
        result = invoke(runner, settings, ["input"], input=answers)

        assert result.exit_code == 0, result.output
        with open(settings.manual_input_path) as f:
            data = json.load(f)
        assert data["teamMorale"]["assessment"] == "Upbeat"
        assert data["teamMorale"]["challenges"] == ""


class TestValidateCommand:

    def test_valid(self, runner, settings):
        with patch.object(JiraClient, "validate_token", return_value={"displayName": "Test User"}):
            result = invoke(runner, settings, ["validate"])
        assert result.exit_code == 0
        assert "as Test User" in result.output

    def test_rejected(self, runner, settings):
        with patch.object(JiraClient, "validate_token", return_value=None):
            result = invoke(runner, settings, ["validate"])
        assert result.exit_code == 1
        assert "rejected" in result.output


class TestServeCommand:

    def test_serve(self, runner, settings):
        with patch("flask.Flask.run") as mock_run:
            result = invoke(runner, settings, ["serve", "--port", "8080"])

        assert result.exit_code == 0, result.output
        mock_run.assert_called_once_with(host="127.0.0.1", port=8080, debug=False)
