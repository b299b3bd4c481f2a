"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < profile < env vars < CLI flags < per-session overrides
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class ProvidersConfig:
    together_base_url: str = "https://api.together.xyz/v1"
    cerebras_base_url: str = "https://api.cerebras.ai/v1"
    fireworks_base_url: str = "https://api.fireworks.ai/inference/v1"
    google_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai"
    api_key_envs: dict[str, str] = field(default_factory=lambda: {
        "together": "TOGETHER_API_KEY",
        "cerebras": "CEREBRAS_API_KEY",
        "fireworks": "FIREWORKS_API_KEY",
        "google": "GOOGLE_API_KEY",
    })
    timeout_seconds: int = 120


@dataclass
class VertexConfig:
    project_id: str = ""
    location: str = "us-central1"
    client_email: str = ""
    private_key: str = ""
    private_key_file: str = ""

    def resolved_private_key(self) -> str:
        if self.private_key:
            return self.private_key
        if self.private_key_file:
            return Path(self.private_key_file).expanduser().read_text(encoding="utf-8")
        return ""


@dataclass
class CustomProviderConfig:
    id: str = ""
    name: str = ""
    kind: str = "openai"
    api_base_url: str = ""
    api_key: str = ""
    api_key_env: str = ""
    enabled: bool = True

    def resolved_api_key(self) -> str:
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env, "")
        return ""


@dataclass
class RetryConfig:
    attempts: int = 6
    base_delay_ms: int = 150
    max_delay_ms: int = 2_000
    jitter_ms: int = 75


@dataclass
class ImagesConfig:
    output_dir: str = "~/.modelmux/generated_images"


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    file: str = ""


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class ModelmuxConfig:
    providers: ProvidersConfig = field(default_factory=ProvidersConfig)
    vertex: VertexConfig = field(default_factory=VertexConfig)
    custom_providers: list[CustomProviderConfig] = field(default_factory=list)
    retry: RetryConfig = field(default_factory=RetryConfig)
    images: ImagesConfig = field(default_factory=ImagesConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    # ----- per-session overrides (applied last) ----
    _overrides: dict[str, Any] = field(default_factory=dict, repr=False)

    def set_override(self, dotpath: str, value: Any) -> None:
        """Set a per-session override using dot notation (e.g. 'vertex.location')."""
        self._overrides[dotpath] = value
        _apply_dotpath(self, dotpath, value)

    def get_override(self, dotpath: str) -> Any | None:
        return self._overrides.get(dotpath)

    def api_keys(self) -> dict[str, str]:
        """Resolve provider API keys from their environment variables."""
        keys: dict[str, str] = {}
        for provider, env_var in self.providers.api_key_envs.items():
            value = os.environ.get(env_var)
            if value:
                keys[provider] = value
        return keys

    def find_custom_provider(self, provider_id: str) -> CustomProviderConfig | None:
        for provider in self.custom_providers:
            if provider.id == provider_id:
                return provider
        return None

    def to_dict(self) -> dict:
        d = asdict(self)
        d.pop("_overrides", None)
        return d


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Walk obj via dotpath and set the final attribute."""
    parts = dotpath.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay into base, returning a new dict."""
    merged = dict(base)
    for k, v in overlay.items():
        if k in merged and isinstance(merged[k], dict) and isinstance(v, dict):
            merged[k] = _deep_merge(merged[k], v)
        else:
            merged[k] = v
    return merged


def _coerce(value: str, target_type: type) -> Any:
    """Coerce a string env value to the target type."""
    if target_type is bool:
        return value.lower() in ("1", "true", "yes", "on")
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    if target_type is list:
        return [s.strip() for s in value.split(",") if s.strip()]
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in (raw or {}).items() if k in valid_fields}
    return cls(**filtered)


def _build_providers(raw: dict) -> ProvidersConfig:
    section = _build_section(ProvidersConfig, {k: v for k, v in (raw or {}).items() if k != "api_key_envs"})
    section.api_key_envs.update((raw or {}).get("api_key_envs") or {})
    return section


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "MODELMUX_TOGETHER_BASE_URL":   ("providers.together_base_url", str),
    "MODELMUX_CEREBRAS_BASE_URL":   ("providers.cerebras_base_url", str),
    "MODELMUX_FIREWORKS_BASE_URL":  ("providers.fireworks_base_url", str),
    "MODELMUX_GOOGLE_BASE_URL":     ("providers.google_base_url", str),
    "MODELMUX_TIMEOUT":             ("providers.timeout_seconds", int),
    "MODELMUX_VERTEX_PROJECT":      ("vertex.project_id", str),
    "MODELMUX_VERTEX_LOCATION":     ("vertex.location", str),
    "MODELMUX_VERTEX_CLIENT_EMAIL": ("vertex.client_email", str),
    "MODELMUX_VERTEX_KEY_FILE":     ("vertex.private_key_file", str),
    "MODELMUX_RETRY_ATTEMPTS":      ("retry.attempts", int),
    "MODELMUX_RETRY_BASE_DELAY_MS": ("retry.base_delay_ms", int),
    "MODELMUX_RETRY_MAX_DELAY_MS":  ("retry.max_delay_ms", int),
    "MODELMUX_IMAGES_DIR":          ("images.output_dir", str),
    "MODELMUX_LOG_LEVEL":           ("logging.level", str),
    "MODELMUX_LOG_FILE":            ("logging.file", str),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> ModelmuxConfig:
    """
    Build a ModelmuxConfig by layering sources in precedence order:

        defaults  <  config file  <  profile  <  env vars  <  CLI flags

    Parameters
    ----------
    config_path : path to YAML config file (optional)
    profile : name of a profile to apply from the config file
    cli_overrides : dict of dotpath -> value CLI flag overrides
    """
    raw: dict[str, Any] = {}

    # --- 1. Config file ---
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.is_file():
            with p.open("r", encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            raw = _deep_merge(raw, file_data)

    # --- 2. Profile overlay ---
    if profile and "profiles" in raw:
        profile_data = raw.get("profiles", {}).get(profile, {})
        if profile_data:
            raw = _deep_merge(raw, profile_data)

    # --- Build sections from raw ---
    cfg = ModelmuxConfig(
        providers=_build_providers(raw.get("providers", {})),
        vertex=_build_section(VertexConfig, raw.get("vertex", {})),
        custom_providers=[
            _build_section(CustomProviderConfig, entry)
            for entry in raw.get("custom_providers") or []
        ],
        retry=_build_section(RetryConfig, raw.get("retry", {})),
        images=_build_section(ImagesConfig, raw.get("images", {})),
        logging=_build_section(LoggingConfig, raw.get("logging", {})),
        profiles=raw.get("profiles", {}),
    )

    # --- 3. Env var overrides ---
    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = os.environ.get(env_var)
        if val is not None:
            _apply_dotpath(cfg, dotpath, _coerce(val, target_type))

    # --- 4. CLI flag overrides ---
    if cli_overrides:
        for dotpath, value in cli_overrides.items():
            _apply_dotpath(cfg, dotpath, value)

    return cfg
