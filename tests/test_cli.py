"""CLI smoke tests."""

from __future__ import annotations

import textwrap

from typer.testing import CliRunner

from modelmux import __version__
from modelmux.cli.app import app

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert f"modelmux v{__version__}" in result.output


def test_config_validate(tmp_path, monkeypatch):
    monkeypatch.delenv("TOGETHER_API_KEY", raising=False)
    path = tmp_path / "modelmux.yaml"
    path.write_text(textwrap.dedent("""
        custom_providers:
          - id: lab
            api_base_url: https://lab/v1
    """), encoding="utf-8")

    result = runner.invoke(app, ["config", "validate", "--config", str(path)])

    assert result.exit_code == 0
    assert "Config is valid." in result.output
    assert "Custom providers: 1" in result.output


def test_config_show_masks_secrets(tmp_path):
    path = tmp_path / "modelmux.yaml"
    path.write_text(textwrap.dedent("""
        vertex:
          private_key: very-secret
        custom_providers:
          - id: lab
            api_key: also-secret
    """), encoding="utf-8")

    result = runner.invoke(app, ["config", "show", "--config", str(path)])

    assert result.exit_code == 0
    assert "very-secret" not in result.output
    assert "also-secret" not in result.output


def test_chat_configuration_error(tmp_path, monkeypatch):
    monkeypatch.delenv("TOGETHER_API_KEY", raising=False)
    empty = tmp_path / "empty.yaml"
    empty.write_text("{}\n", encoding="utf-8")

    result = runner.invoke(app, ["chat", "together::m", "Hi", "--config", str(empty)])

    assert result.exit_code == 2
    assert "Together AI API key" in result.output
