"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from modelmux.config import ModelmuxConfig
from modelmux.llm.reasoning import strip_think_blocks
from modelmux.llm.types import AssembledAssistant


class OutputFormatter:
    """Rich-based output formatting for the modelmux CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def stream_text(self, text: str) -> None:
        self.console.print(text, end="", markup=False, highlight=False, soft_wrap=True)

    def format_provider_list(self, cfg: ModelmuxConfig, names: list[str]) -> None:
        keys = cfg.api_keys()
        table = Table(title="Providers", show_lines=True)
        table.add_column("Key", style="cyan", no_wrap=True)
        table.add_column("Endpoint")
        table.add_column("Credentials", no_wrap=True)

        endpoints = {
            "together": cfg.providers.together_base_url,
            "cerebras": cfg.providers.cerebras_base_url,
            "fireworks": cfg.providers.fireworks_base_url,
            "google": cfg.providers.google_base_url,
            "vertex": f"{cfg.vertex.location} / {cfg.vertex.project_id or '-'}",
        }
        for name in names:
            if name == "custom":
                continue
            if name == "vertex":
                ok = bool(cfg.vertex.client_email and cfg.vertex.project_id)
            else:
                ok = name in keys
            status = Text("configured", style="green") if ok else Text("missing", style="red")
            table.add_row(name, endpoints.get(name, ""), status)

        for custom in cfg.custom_providers:
            if not custom.enabled:
                status = Text("disabled", style="dim")
            elif custom.resolved_api_key():
                status = Text("configured", style="green")
            else:
                status = Text("missing", style="red")
            table.add_row(f"custom::{custom.id}", custom.api_base_url, status)

        self.console.print(table)

    def format_result(self, result: AssembledAssistant, streamed: bool) -> None:
        if result.disabled is not None:
            self.console.print(
                f"[yellow]Model disabled:[/yellow] {result.disabled.model_id} "
                f"{result.disabled.reason}"
            )
            return
        if result.error:
            self.console.print(f"\n[red]Error:[/red] {result.error}")
        if not streamed and result.content:
            self.console.print(strip_think_blocks(result.content).strip(), markup=False)
        for call in result.tool_calls:
            self.console.print(Panel(
                Syntax(json.dumps(call.args, indent=2), "json", theme="monokai"),
                title=f"Tool call: {call.namespaced_tool_name} ({call.id})",
            ))
        for err in result.extra.get("tool_call_errors", []):
            self.console.print(f"[red]Tool call dropped:[/red] {err['name']}: {err['message']}")
        if "image_path" in result.extra:
            self.console.print(f"[dim]Image:[/dim] {result.extra['image_path']}")

    def format_history(self, turns: list[dict]) -> None:
        if not turns:
            self.console.print("[dim]No history.[/dim]")
            return

        table = Table(title="History")
        table.add_column("When", no_wrap=True)
        table.add_column("Model", style="cyan", no_wrap=True)
        table.add_column("Prompt")
        table.add_column("Reply")
        for turn in turns:
            reply = turn["error"] or strip_think_blocks(turn["content"]).strip()
            table.add_row(turn["created_at"], turn["model_id"], turn["prompt"][:60], reply[:80])
        self.console.print(table)

    def format_config(self, config: dict) -> None:
        json_str = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(json_str, "json", theme="monokai"))
