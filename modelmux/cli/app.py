"""
Main CLI application for modelmux.

Usage:
    modelmux chat MODEL_ID PROMPT [--system TEXT] [--show-thoughts] [--effort LEVEL]
    modelmux providers
    modelmux history
    modelmux config show|validate
    modelmux version
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler

from modelmux.config import ModelmuxConfig, load_config

app = typer.Typer(name="modelmux", help="modelmux - one streaming interface for many LLM providers")
config_app = typer.Typer(help="Configuration management")

app.add_typer(config_app, name="config")

console = Console()
err_console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_config_path(explicit: str | None = None) -> Path | None:
    """Find config file in standard locations."""
    if explicit:
        return Path(explicit).expanduser()
    candidates = [
        Path.cwd() / "modelmux.yaml",
        Path.cwd() / "modelmux.yml",
        Path.home() / ".config" / "modelmux" / "config.yaml",
        Path.home() / ".modelmux" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def configure_logging(cfg: ModelmuxConfig) -> None:
    """Route library logging to stderr (and optionally a file) per config."""
    level = getattr(logging, cfg.logging.level.upper(), logging.WARNING)
    handlers: list[logging.Handler] = [
        RichHandler(console=err_console, show_path=False, rich_tracebacks=True)
    ]
    if cfg.logging.file:
        path = Path(cfg.logging.file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        handlers.append(file_handler)
    logging.basicConfig(level=level, format="%(message)s", handlers=handlers, force=True)


def _load_tools(path: str | None):
    """Read tool definitions from a JSON file: ``[{name, description, input_schema}]``."""
    from modelmux.llm.types import ToolDefinition

    if not path:
        return None
    raw = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
    return [
        ToolDefinition(
            namespaced_name=entry["name"],
            description=entry.get("description", ""),
            input_schema=entry.get("input_schema") or {"type": "object", "properties": {}},
        )
        for entry in raw
    ]


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def chat(
    model_id: str = typer.Argument(..., help="provider::model or custom::id::model"),
    prompt: str = typer.Argument(..., help="User message"),
    system: Optional[str] = typer.Option(None, "--system", "-s", help="System prompt"),
    show_thoughts: bool = typer.Option(False, "--show-thoughts", help="Stream model reasoning"),
    effort: Optional[str] = typer.Option(None, help="Reasoning effort: low, medium, high"),
    budget: Optional[int] = typer.Option(None, help="Thinking budget in tokens (Gemini 2.5)"),
    level: Optional[str] = typer.Option(None, "--thinking-level", help="Thinking level (Gemini 3)"),
    attach: list[str] = typer.Option([], "--attach", "-a", help="Text file to attach"),
    tools_file: Optional[str] = typer.Option(None, "--tools", help="JSON file of tool definitions"),
    web: bool = typer.Option(False, "--web", help="Enable the web search toolset"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Override the provider base URL"),
    history: Optional[str] = typer.Option(None, "--history", help="Record the turn in this SQLite file"),
    config: Optional[str] = typer.Option(None, "--config", help="Config file path"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Send one prompt and stream the reply."""
    from modelmux.cli.output import OutputFormatter
    from modelmux.history import TranscriptStore
    from modelmux.llm.errors import ConfigurationError
    from modelmux.llm.router import build_router
    from modelmux.llm.types import Attachment, Message, ModelConfig
    from modelmux.retry import RetryPolicy

    cfg = load_config(_get_config_path(config), profile=profile)
    configure_logging(cfg)
    formatter = OutputFormatter(console)

    attachments = [Attachment(type="text", path=p, name=Path(p).name) for p in attach]
    user_message = Message(role="user", content=prompt, attachments=attachments)
    model_config = ModelConfig(
        model_id=model_id,
        system_prompt=system,
        show_thoughts=show_thoughts,
        reasoning_effort=effort,
        budget_tokens=budget,
        thinking_level=level,
    )

    async def _run():
        router = build_router(cfg)
        result = await router.complete(
            [user_message],
            model_config,
            api_keys=cfg.api_keys(),
            tools=_load_tools(tools_file),
            enabled_toolsets=["web"] if web else None,
            custom_base_url=base_url,
            on_chunk=formatter.stream_text if show_thoughts else None,
        )
        if show_thoughts:
            console.print()
        formatter.format_result(result, streamed=show_thoughts)

        if history:
            store = TranscriptStore(history, RetryPolicy.from_config(cfg.retry))
            await store.init()
            try:
                await store.record(model_id, user_message, result)
            finally:
                await store.close()
        return result

    try:
        result = asyncio.run(_run())
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(2)
    if result.error:
        raise typer.Exit(1)


@app.command()
def providers(
    config: Optional[str] = typer.Option(None, "--config", help="Config file path"),
):
    """List provider families and whether credentials are configured."""
    from modelmux.cli.output import OutputFormatter
    from modelmux.llm.router import build_router

    cfg = load_config(_get_config_path(config))
    router = build_router(cfg)
    OutputFormatter(console).format_provider_list(cfg, router.provider_names)


@app.command("history")
def history_show(
    path: str = typer.Argument(..., help="SQLite history file"),
    limit: int = typer.Option(20, help="Number of turns to show"),
):
    """Show recorded turns, newest first."""
    from modelmux.cli.output import OutputFormatter
    from modelmux.history import TranscriptStore

    cfg = load_config(_get_config_path())

    async def _run():
        from modelmux.retry import RetryPolicy

        store = TranscriptStore(path, RetryPolicy.from_config(cfg.retry))
        await store.init()
        try:
            return await store.recent(limit)
        finally:
            await store.close()

    OutputFormatter(console).format_history(asyncio.run(_run()))


@config_app.command("show")
def config_show(
    config: Optional[str] = typer.Option(None, "--config", help="Config file path"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Show effective config."""
    from modelmux.cli.output import OutputFormatter

    cfg = load_config(_get_config_path(config), profile=profile)
    data = cfg.to_dict()
    # Never echo secrets.
    for custom in data.get("custom_providers", []):
        if custom.get("api_key"):
            custom["api_key"] = "***"
    if data.get("vertex", {}).get("private_key"):
        data["vertex"]["private_key"] = "***"
    OutputFormatter(console).format_config(data)


@config_app.command("validate")
def config_validate(
    config: Optional[str] = typer.Option(None, "--config", help="Config file path"),
):
    """Validate config and summarize what was loaded."""
    config_path = _get_config_path(config)
    try:
        cfg = load_config(config_path)
        console.print("[green]Config is valid.[/green]")
        if config_path:
            console.print(f"  Loaded from: {config_path}")
        else:
            console.print("  [dim]No config file found, using defaults.[/dim]")
        console.print(f"  API keys found: {', '.join(sorted(cfg.api_keys())) or 'none'}")
        console.print(f"  Custom providers: {len(cfg.custom_providers)}")
        console.print(f"  Images directory: {cfg.images.output_dir}")
    except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def version():
    """Show version."""
    from modelmux import __version__

    console.print(f"modelmux v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
