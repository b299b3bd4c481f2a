"""Tests for modelmux.config."""

from __future__ import annotations

import textwrap

import pytest

from modelmux.config import CustomProviderConfig, ModelmuxConfig, load_config


@pytest.fixture
def clean_env(monkeypatch):
    for var in (
        "MODELMUX_TOGETHER_BASE_URL",
        "MODELMUX_TIMEOUT",
        "MODELMUX_VERTEX_LOCATION",
        "MODELMUX_RETRY_ATTEMPTS",
        "TOGETHER_API_KEY",
        "CEREBRAS_API_KEY",
        "FIREWORKS_API_KEY",
        "GOOGLE_API_KEY",
    ):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


def write_config(tmp_path, text: str):
    path = tmp_path / "modelmux.yaml"
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


class TestLoadConfig:

    def test_defaults_without_file(self, clean_env, tmp_path):
        cfg = load_config(tmp_path / "missing.yaml")
        assert cfg.providers.together_base_url == "https://api.together.xyz/v1"
        assert cfg.retry.attempts == 6
        assert cfg.retry.base_delay_ms == 150
        assert cfg.retry.max_delay_ms == 2000
        assert cfg.custom_providers == []

    def test_yaml_file(self, clean_env, tmp_path):
        path = write_config(tmp_path, """
            providers:
              timeout_seconds: 30
              api_key_envs:
                together: MY_TOGETHER_KEY
            vertex:
              project_id: proj
              location: europe-west4
            custom_providers:
              - id: lab
                name: Lab
                api_base_url: https://lab/v1
                api_key: secret
                enabled: false
                unknown_field: ignored
        """)

        cfg = load_config(path)

        assert cfg.providers.timeout_seconds == 30
        assert cfg.providers.api_key_envs["together"] == "MY_TOGETHER_KEY"
        assert cfg.providers.api_key_envs["google"] == "GOOGLE_API_KEY"
        assert cfg.vertex.location == "europe-west4"
        lab = cfg.find_custom_provider("lab")
        assert lab is not None and lab.enabled is False
        assert lab.kind == "openai"

    def test_profile_overlays_file(self, clean_env, tmp_path):
        path = write_config(tmp_path, """
            vertex:
              location: us-central1
            profiles:
              eu:
                vertex:
                  location: europe-west1
        """)
        assert load_config(path).vertex.location == "us-central1"
        assert load_config(path, profile="eu").vertex.location == "europe-west1"

    def test_env_beats_file_and_cli_beats_env(self, clean_env, tmp_path):
        path = write_config(tmp_path, """
            providers:
              timeout_seconds: 30
        """)
        clean_env.setenv("MODELMUX_TIMEOUT", "45")
        assert load_config(path).providers.timeout_seconds == 45

        cfg = load_config(path, cli_overrides={"providers.timeout_seconds": 5})
        assert cfg.providers.timeout_seconds == 5


class TestConfigHelpers:

    def test_api_keys_from_env(self, clean_env):
        clean_env.setenv("TOGETHER_API_KEY", "tg")
        clean_env.setenv("GOOGLE_API_KEY", "")
        assert ModelmuxConfig().api_keys() == {"together": "tg"}

    def test_session_override(self):
        cfg = ModelmuxConfig()
        cfg.set_override("vertex.location", "global")
        assert cfg.vertex.location == "global"
        assert cfg.get_override("vertex.location") == "global"
        assert "_overrides" not in cfg.to_dict()

    def test_private_key_file(self, tmp_path):
        key_file = tmp_path / "key.pem"
        key_file.write_text("PEM", encoding="utf-8")
        cfg = ModelmuxConfig()
        cfg.vertex.private_key_file = str(key_file)
        assert cfg.vertex.resolved_private_key() == "PEM"

    def test_custom_api_key_env(self, clean_env):
        clean_env.setenv("LAB_KEY", "from-env")
        provider = CustomProviderConfig(id="lab", api_key_env="LAB_KEY")
        assert provider.resolved_api_key() == "from-env"
        provider.api_key = "inline"
        assert provider.resolved_api_key() == "inline"
