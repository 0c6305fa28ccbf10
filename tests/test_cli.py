from __future__ import annotations

import json

from cryptography.fernet import Fernet
from typer.testing import CliRunner

from httptool.cli import app

runner = CliRunner()


def _write_config(tmp_path, **overrides) -> str:
    config = {
        "name": "search",
        "description": "Search items.",
        "url": "https://api.example.com/search",
        "query": {"enabled": True, "parameters": [{"name": "q", "description": "Search text"}]},
    }
    config.update(overrides)
    path = tmp_path / "tool.json"
    path.write_text(json.dumps(config), encoding="utf-8")
    return str(path)


def test_schema_prints_tool_definition(tmp_path) -> None:
    result = runner.invoke(app, ["schema", _write_config(tmp_path)])
    assert result.exit_code == 0, result.output
    tool_def = json.loads(result.output)
    assert tool_def["name"] == "search"
    assert tool_def["parameters"]["properties"]["q"]["description"] == "Search text"


def test_schema_reports_configuration_errors(tmp_path) -> None:
    result = runner.invoke(app, ["schema", _write_config(tmp_path, url="https://api.example.com/{missing}")])
    assert result.exit_code == 1


def test_encrypt_credential(tmp_path, monkeypatch) -> None:
    creds = tmp_path / "credentials.json"
    monkeypatch.setenv("HTTPTOOL_CREDENTIALS_FILE", str(creds))
    monkeypatch.setenv("HTTPTOOL_SECRET_KEY", Fernet.generate_key().decode())
    result = runner.invoke(app, ["encrypt-credential", "exampleApi", '{"token": "abc"}'])
    assert result.exit_code == 0, result.output
    stored = json.loads(creds.read_text(encoding="utf-8"))
    assert list(stored) == ["exampleApi"]
    assert "abc" not in stored["exampleApi"]


def test_encrypt_credential_requires_object(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("HTTPTOOL_CREDENTIALS_FILE", str(tmp_path / "credentials.json"))
    monkeypatch.setenv("HTTPTOOL_SECRET_KEY", Fernet.generate_key().decode())
    result = runner.invoke(app, ["encrypt-credential", "exampleApi", "[1, 2]"])
    assert result.exit_code == 1
