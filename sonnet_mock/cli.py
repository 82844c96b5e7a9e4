"""sonnet-mock CLI — Typer + Rich terminal interface.

Commands: serve, tokens, config.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from sonnet_mock import __version__
from sonnet_mock.corpus import TokenCorpus, load_corpus
from sonnet_mock.env import export_overrides
from sonnet_mock.errors import ConfigError, CorpusError
from sonnet_mock.schemas.config import OverflowPolicy, ServerConfig
from sonnet_mock.settings import load_server_config

console = Console()

app = typer.Typer(
    name="sonnet-mock",
    help="Mock OpenAI-compatible completion server backed by a fixed corpus.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"sonnet-mock {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """sonnet-mock — deterministic stand-in for an LLM completion API."""


# ── Helpers ──────────────────────────────────────────────────────


def _load_config(
    config_path: Path | None, overrides: dict | None = None
) -> ServerConfig:
    """Resolve the server config, exit on error."""
    try:
        return load_server_config(config_path, overrides)
    except (FileNotFoundError, ConfigError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


def _load_corpus(path: Path | None, tokenizer: str) -> TokenCorpus:
    """Load the token corpus, exit on error."""
    try:
        return load_corpus(path, tokenizer)
    except CorpusError as e:
        console.print(f"[red]Error loading corpus:[/red] {e}")
        raise typer.Exit(1) from None


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def _mask(secret: str | None) -> str:
    if not secret:
        return "[dim]not set[/dim]"
    return secret[:4] + "…" if len(secret) > 8 else "****"


# ── serve ────────────────────────────────────────────────────────


@app.command()
def serve(
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="TOML file with a [server] table",
    ),
    host: Optional[str] = typer.Option(None, "--host", help="Listen address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Listen port"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Worker processes"),
    max_connections: Optional[int] = typer.Option(
        None, "--max-connections", help="Concurrent connection limit per worker",
    ),
    request_timeout: Optional[float] = typer.Option(
        None, "--request-timeout", help="Idle connection timeout (seconds)",
    ),
    latency: Optional[float] = typer.Option(
        None, "--latency", help="Inter-token latency (ms); 0 streams back-to-back",
    ),
    jitter: Optional[float] = typer.Option(
        None, "--jitter", help="Extra uniform random delay per token (ms)",
    ),
    think_time: Optional[bool] = typer.Option(
        None, "--think-time/--no-think-time",
        help="Simulate time-to-first-token before streaming",
    ),
    api_key: Optional[str] = typer.Option(
        None, "--api-key", help="Require this Bearer token on /v1 routes",
    ),
    overflow: Optional[OverflowPolicy] = typer.Option(
        None, "--overflow", help="Budgets beyond the corpus: clamp or repeat",
    ),
    max_repeat_tokens: Optional[int] = typer.Option(
        None, "--max-repeat-tokens", help="Budget ceiling when overflow is repeat",
    ),
    corpus_path: Optional[Path] = typer.Option(
        None, "--corpus", help="Text file to use as the corpus",
    ),
    tokenizer: Optional[str] = typer.Option(
        None, "--tokenizer", help="'whitespace' or a Hugging Face tokenizer id",
    ),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for random delays"),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="critical, error, warning, info or debug",
    ),
) -> None:
    """Start the mock completion server."""
    config = _load_config(config_path, {
        "host": host,
        "port": port,
        "workers": workers,
        "max_connections": max_connections,
        "request_timeout": request_timeout,
        "inter_token_latency_ms": latency,
        "inter_token_jitter_ms": jitter,
        "think_time": think_time,
        "api_key": api_key,
        "overflow": overflow,
        "max_repeat_tokens": max_repeat_tokens,
        "corpus_path": corpus_path,
        "tokenizer": tokenizer,
        "random_seed": seed,
        "log_level": log_level,
    })
    _configure_logging(config.log_level)
    corpus = _load_corpus(config.corpus_path, config.tokenizer)

    console.print(Panel(
        f"[bold]URL:[/bold] http://{config.host}:{config.port}/v1/chat/completions\n"
        f"[bold]Corpus:[/bold] {corpus.total_count:,} tokens ({corpus.tokenizer})\n"
        f"[bold]Workers:[/bold] {config.workers}\n"
        f"[bold]Latency:[/bold] {config.inter_token_latency_ms:g} ms"
        f" + up to {config.inter_token_jitter_ms:g} ms jitter\n"
        f"[bold]Think time:[/bold] "
        + (
            f"{config.think_time_min_ms:g}-{config.think_time_max_ms:g} ms"
            if config.think_time else "off"
        )
        + f"\n[bold]Auth:[/bold] {'bearer token' if config.api_key else 'off'}",
        title="[bold blue]sonnet-mock[/bold blue]",
        border_style="blue",
    ))

    import uvicorn

    common = {
        "host": config.host,
        "port": config.port,
        "limit_concurrency": config.max_connections,
        "timeout_keep_alive": int(config.request_timeout),
        "log_level": config.log_level.lower(),
    }
    if config.workers > 1:
        # Each worker process rebuilds the app from the environment
        export_overrides(config.model_dump(mode="json"))
        uvicorn.run(
            "sonnet_mock.server:create_app",
            factory=True,
            workers=config.workers,
            **common,
        )
    else:
        from sonnet_mock.server import create_app

        uvicorn.run(create_app(config, corpus), **common)


# ── tokens ───────────────────────────────────────────────────────


@app.command()
def tokens(
    corpus_path: Optional[Path] = typer.Option(
        None, "--corpus", help="Text file to use as the corpus",
    ),
    tokenizer: str = typer.Option(
        "whitespace", "--tokenizer", help="'whitespace' or a Hugging Face tokenizer id",
    ),
    show: int = typer.Option(10, "--show", "-n", min=0, help="Tokens to preview"),
) -> None:
    """Show corpus statistics and the first few tokens."""
    corpus = _load_corpus(corpus_path, tokenizer)

    table = Table(title="Token Corpus", show_header=False, show_lines=True)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Source", corpus.source)
    table.add_row("Tokenizer", corpus.tokenizer)
    table.add_row("Tokens", f"{corpus.total_count:,}")
    table.add_row("Characters", f"{len(corpus.text):,}")
    console.print(table)

    if show:
        preview = Table(title=f"First {min(show, corpus.total_count)} tokens")
        preview.add_column("#", justify="right", style="dim")
        preview.add_column("Token", style="cyan")
        for i, token in enumerate(corpus.tokens[:show]):
            preview.add_row(str(i), repr(token))
        console.print(preview)


# ── config ───────────────────────────────────────────────────────


@app.command("config")
def config_show(
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="TOML file with a [server] table",
    ),
) -> None:
    """Show the resolved server configuration."""
    config = _load_config(config_path)

    table = Table(title="Server Configuration", show_header=False, show_lines=True)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    for name, value in config.model_dump().items():
        if name == "api_key":
            table.add_row(name, _mask(value))
        elif value is None:
            table.add_row(name, "[dim]not set[/dim]")
        else:
            table.add_row(name, str(value))
    console.print(table)


# ── Entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    app()
