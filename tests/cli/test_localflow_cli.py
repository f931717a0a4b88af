"""
Tests for the localflow CLI.
"""

import json
import sys
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from localflow import __version__
from localflow.cli.app import app

runner = CliRunner()


def _write(tmp_path, name: str, doc: dict) -> str:
    path = tmp_path / f"{name}.yaml"
    path.write_text(yaml.safe_dump(doc), encoding="utf-8")
    return str(path)


def _steps_doc(name: str = "demo") -> dict:
    return {
        "apiVersion": "argoproj.io/v1alpha1",
        "kind": "Workflow",
        "metadata": {"name": name},
        "spec": {
            "entrypoint": "main",
            "templates": [
                {"name": "main", "steps": [[{"name": "a", "template": "echo"}, {"name": "b", "template": "echo"}]]},
                {"name": "echo", "container": {"image": "alpine", "command": ["echo"], "args": ["hi"]}},
            ],
        },
    }


def _python_doc(name: str, code: str) -> dict:
    return {
        "metadata": {"name": name},
        "spec": {
            "entrypoint": "py",
            "templates": [
                {"name": "py", "container": {"image": "python:3.12", "command": [sys.executable, "-c", code]}},
            ],
        },
    }


class TestVersion:
    def test_version_flag(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"localflow {__version__}" in result.output


class TestValidate:
    def test_valid(self, tmp_path):
        result = runner.invoke(app, ["validate", _write(tmp_path, "wf", _steps_doc())])

        assert result.exit_code == 0
        assert "demo: 2 templates" in result.output

    def test_unknown_template(self, tmp_path):
        doc = _steps_doc()
        doc["spec"]["templates"][0]["steps"][0][0]["template"] = "ghost"
        result = runner.invoke(app, ["validate", _write(tmp_path, "wf", doc)])

        assert result.exit_code == 1
        assert "VALIDATION_FAILED" in result.output
        assert "ghost" in result.output

    def test_missing_entrypoint(self, tmp_path):
        doc = _steps_doc()
        del doc["spec"]["entrypoint"]
        result = runner.invoke(app, ["validate", _write(tmp_path, "wf", doc)])

        assert result.exit_code == 1
        assert "No entrypoint specified" in result.output

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["validate", str(tmp_path / "absent.yaml")])
        assert result.exit_code != 0


class TestRun:
    def test_run_stub_json(self, tmp_path):
        result = runner.invoke(app, ["run", _write(tmp_path, "wf", _steps_doc()), "--runtime", "stub", "--json"])

        assert result.exit_code == 0, result.output
        body = json.loads(result.stdout)
        assert body["status"]["phase"] == "Succeeded"
        assert len(body["status"]["nodes"]) == 3

    def test_run_stub_table(self, tmp_path):
        result = runner.invoke(app, ["run", _write(tmp_path, "wf", _steps_doc()), "-r", "stub", "--logs"])

        assert result.exit_code == 0, result.output
        assert "demo" in result.output
        assert "echo hi" in result.output

    def test_unknown_runtime(self, tmp_path):
        result = runner.invoke(app, ["run", _write(tmp_path, "wf", _steps_doc()), "--runtime", "k8s"])
        assert result.exit_code == 2

    def test_invalid_document(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("metadata: [oops", encoding="utf-8")
        result = runner.invoke(app, ["run", str(path), "--runtime", "stub"])

        assert result.exit_code == 1
        assert "Failed to parse workflow" in result.output

    @pytest.mark.integration
    def test_run_local_success(self, tmp_path):
        doc = _python_doc("ok", "import os; print(os.environ['LOCALFLOW_WORKFLOW_NAME'])")
        result = runner.invoke(app, ["run", _write(tmp_path, "ok", doc), "--runtime", "local", "--json"])

        assert result.exit_code == 0, result.output
        (node,) = json.loads(result.stdout)["status"]["nodes"].values()
        assert node["outputs"]["logs"].strip() == "ok"

    @pytest.mark.integration
    def test_run_local_failure_exits_nonzero(self, tmp_path):
        doc = _python_doc("boom", "import sys; sys.exit(3)")
        result = runner.invoke(app, ["run", _write(tmp_path, "boom", doc), "--runtime", "local", "--json"])

        assert result.exit_code == 1
        status = json.loads(result.stdout)["status"]
        assert status["phase"] == "Failed"
        assert status["message"] == "node 'py' failed: exited with code 3"


class TestServe:
    def test_serve_passes_settings_to_uvicorn(self):
        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(app, ["serve", "--port", "9090", "--runtime", "stub", "--log-level", "debug"])

        assert result.exit_code == 0, result.output
        _, kwargs = mock_run.call_args
        assert kwargs["port"] == 9090
        assert kwargs["log_level"] == "debug"
        fastapi_app = mock_run.call_args.args[0]
        assert fastapi_app.state.settings.runtime == "stub"
