"""Tests for the devassist command line."""

import json
from unittest.mock import MagicMock, patch

import click
import pytest
from click.testing import CliRunner

from devassist_cli import __version__
from devassist_cli.main import _collect_files, cli

from conftest import CLEAN_PHP, SQL_PHP


@pytest.fixture
def project(tmp_path):
    src = tmp_path / "project" / "src"
    src.mkdir(parents=True)
    (src / "UserRepository.php").write_text(SQL_PHP)
    (src / "Greeter.php").write_text(CLEAN_PHP)
    (src / "notes.txt").write_text("not source")
    vendor = tmp_path / "project" / "vendor" / "lib"
    vendor.mkdir(parents=True)
    (vendor / "Lib.php").write_text(SQL_PHP)
    return tmp_path / "project"


@pytest.fixture
def runner(tmp_path):
    return CliRunner(
        env={
            "DEVASSIST_CACHE_DIR": str(tmp_path / "cache"),
            "ANTHROPIC_API_KEY": None,
            "OPENAI_API_KEY": None,
        }
    )


class TestCollectFiles:
    def test_skips_ignored_dirs_and_unknown_extensions(self, project):
        files = _collect_files(project, (), (), 50)
        assert sorted(files) == ["src/Greeter.php", "src/UserRepository.php"]

    def test_include_and_exclude(self, project):
        assert sorted(_collect_files(project, ("*.txt",), (), 50)) == ["src/notes.txt"]
        assert sorted(_collect_files(project, (), ("*Greeter*",), 50)) == ["src/UserRepository.php"]

    def test_max_files(self, project):
        assert len(_collect_files(project, (), (), 1)) == 1
        assert _collect_files(project, (), (), 0) == {}

    def test_single_file(self, project):
        files = _collect_files(project / "src" / "Greeter.php", (), (), 50)
        assert files == {"Greeter.php": CLEAN_PHP}

    def test_single_file_honours_filters(self, project):
        greeter = project / "src" / "Greeter.php"
        assert _collect_files(greeter, (), ("*.php",), 50) == {}
        assert _collect_files(greeter, ("*.py",), (), 50) == {}
        assert _collect_files(greeter, ("Greet*",), (), 50) == {"Greeter.php": CLEAN_PHP}

    @patch("pathlib.Path.read_text")
    def test_unreadable_file(self, mock_read_text, project):
        mock_read_text.side_effect = PermissionError(13, "Permission denied")
        with pytest.raises(click.ClickException, match="Permission denied"):
            _collect_files(project, (), (), 50)


class TestAnalyzeCommand:
    """End-to-end runs on the static analyzers."""

    def test_json_output(self, runner, project):
        result = runner.invoke(cli, ["analyze", str(project), "--static", "--type", "security", "--format", "json"])
        assert result.exit_code == 0, result.output

        payload = json.loads(result.output)
        assert payload["version"] == __version__
        (entry,) = payload["results"]
        assert entry["ok"] is True
        assert entry["type"] == "security"
        assert entry["overall_severity"] == "critical"
        assert [i["rule"] for i in entry["issues"]] == ["SQL_INJECTION"]
        assert entry["issues"][0]["file"] == "src/UserRepository.php"

    def test_all_types(self, runner, project):
        result = runner.invoke(cli, ["analyze", str(project), "--static", "--type", "all", "--format", "json"])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert [r["type"] for r in payload["results"]] == [
            "code_quality",
            "architecture",
            "performance",
            "security",
        ]
        assert all(r["ok"] for r in payload["results"])

    def test_console_output(self, runner, project):
        result = runner.invoke(cli, ["analyze", str(project), "--static", "--type", "security"])
        assert result.exit_code == 0, result.output
        assert "Security Analysis" in result.output
        assert "critical" in result.output
        assert "Issues by severity: 1 critical" in result.output

    def test_without_api_keys_falls_back_to_static(self, runner, project):
        result = runner.invoke(cli, ["analyze", str(project), "--type", "security", "--no-cache"])
        assert result.exit_code == 0, result.output
        assert "using static analyzers" in result.output

    def test_output_file(self, runner, project, tmp_path):
        out = tmp_path / "report.json"
        result = runner.invoke(cli, ["analyze", str(project), "--static", "--no-cache", "-o", str(out)])
        assert result.exit_code == 0, result.output
        assert json.loads(out.read_text())["results"][0]["type"] == "code_quality"

    def test_no_source_files(self, runner, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()
        result = runner.invoke(cli, ["analyze", str(empty), "--static"])
        assert result.exit_code == 0
        assert "No source files found" in result.output

    def test_bad_environment(self, project):
        runner = CliRunner(env={"DEVASSIST_RATE_PER_MINUTE": "lots"})
        result = runner.invoke(cli, ["analyze", str(project), "--static"])
        assert result.exit_code == 1
        assert "DEVASSIST_RATE_PER_MINUTE" in result.output


class TestOtherCommands:
    def test_version(self):
        result = CliRunner().invoke(cli, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    @patch("httpx.Client.get")
    def test_models(self, mock_get, runner):
        from httpx import ConnectError

        mock_get.side_effect = ConnectError("connection refused")
        result = runner.invoke(cli, ["models"])
        assert result.exit_code == 0, result.output
        assert "Model Tiers" in result.output
        assert "Anthropic key" in result.output
        assert "Ollama is not running" in result.output

    @patch("httpx.Client.get")
    def test_models_reports_local_tiers(self, mock_get, runner):
        response = MagicMock()
        response.status_code = 200
        response.json.return_value = {"models": [{"name": "qwen2.5-coder:7b"}]}
        mock_get.return_value = response

        result = runner.invoke(
            cli,
            ["models"],
            env={"DEVASSIST_DEFAULT_MODEL": "qwen2.5-coder:7b", "DEVASSIST_HIGH_MODEL": "llama3"},
        )
        assert result.exit_code == 0, result.output
        assert "Ollama is running" in result.output
        assert "qwen2.5-coder:7b: installed" in result.output
        assert "llama3: not installed (ollama pull llama3)" in result.output
