from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .gen.config import (
    ConfigError,
    PlaceholderProviderConfig,
    ProvidersConfig,
    ServiceConfig,
    find_config,
    load_config,
)
from .gen.orchestrator import OrchestratorExhaustedError
from .gen.service import ImageService, create_image_service
from .gen.types import Difficulty, GenerateOptions, GenerationRequest, ImageOptions

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()
logger = logging.getLogger(__name__)


def offline_config() -> ServiceConfig:
    return ServiceConfig(
        default_provider="placeholder",
        providers=ProvidersConfig(placeholder=PlaceholderProviderConfig()),
    )


def resolve_config(config_path: Optional[Path]) -> ServiceConfig:
    path = config_path or find_config()
    if config_path is None and not path.exists():
        logger.warning("No coloring.toml found, using the offline placeholder provider")
        return offline_config()
    return load_config(path)


def _run(ctx: typer.Context, fn: Callable[[ImageService], Awaitable[Any]]) -> Any:
    try:
        config = resolve_config(ctx.obj.get("config"))
    except ConfigError as e:
        console.print(f"[bold red]Config error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=2) from e

    async def main() -> Any:
        try:
            service = create_image_service(config)
        except ConfigError as e:
            console.print(f"[bold red]Config error:[/bold red] {escape(str(e))}")
            raise typer.Exit(code=2) from e
        try:
            return await fn(service)
        finally:
            await service.aclose()

    return asyncio.run(main())


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", help="Path to coloring.toml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"config": config}


@app.command()
def generate(
    ctx: typer.Context,
    theme: str = typer.Argument(...),
    subject: str = typer.Argument(...),
    difficulty: Difficulty = typer.Option(Difficulty.EASY, "--difficulty"),
    custom_prompt: Optional[str] = typer.Option(None, "--custom-prompt"),
    provider: Optional[str] = typer.Option(None, "--provider", help="Use only this provider"),
    skip_cache: bool = typer.Option(False, "--skip-cache"),
    force_refresh: bool = typer.Option(False, "--force-refresh"),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=0.1),
    width: int = typer.Option(1024, "--width", min=64),
    height: int = typer.Option(1024, "--height", min=64),
    style: str = typer.Option("line_art", "--style"),
    quality: str = typer.Option("standard", "--quality"),
):
    """Generate one coloring page and print the result as JSON."""
    request = GenerationRequest(theme, subject, difficulty, custom_prompt)
    options = GenerateOptions(
        provider=provider,
        skip_cache=skip_cache,
        force_refresh=force_refresh,
        timeout=timeout,
        image_options=ImageOptions(width=width, height=height, style=style, quality=quality),
    )

    async def work(service: ImageService):
        return await service.generate(request, options)

    try:
        result = _run(ctx, work)
    except OrchestratorExhaustedError as e:
        console.print(f"[bold red]Generation failed:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1) from e
    console.print_json(json.dumps(result.to_dict()))


@app.command()
def gallery(
    ctx: typer.Context,
    theme: Optional[str] = typer.Option(None, "--theme"),
    limit: int = typer.Option(20, "--limit", min=1),
    offset: int = typer.Option(0, "--offset", min=0),
    order_by: str = typer.Option("popular", "--order-by", help="popular or recent"),
):
    """List gallery entries."""
    if order_by not in ("popular", "recent"):
        console.print(f"[bold red]Unknown order:[/bold red] {order_by}")
        raise typer.Exit(code=2)

    entries = _run(ctx, lambda s: s.get_gallery_images(theme, limit, offset, order_by))
    table = Table(title="Gallery")
    table.add_column("ID")
    table.add_column("Theme")
    table.add_column("Subject")
    table.add_column("Difficulty")
    table.add_column("Provider")
    table.add_column("Hits", justify="right")
    table.add_column("URL", overflow="fold")
    for e in entries:
        url = e.image_url if len(e.image_url) <= 80 else e.image_url[:77] + "..."
        table.add_row(e.id, e.theme, e.subject, e.difficulty, e.provider, str(e.access_count), url)
    console.print(table)


@app.command("gallery-hit")
def gallery_hit(ctx: typer.Context, entry_id: str = typer.Argument(...)):
    """Record a gallery view of an entry."""
    _run(ctx, lambda s: s.increment_access_count(entry_id))
    console.print(f"[green]Recorded hit[/green] {entry_id}")


@app.command()
def stats(ctx: typer.Context):
    """Show cache statistics."""
    result = _run(ctx, lambda s: s.get_cache_stats())
    table = Table(title="Cache")
    table.add_column("Entries", justify="right")
    table.add_column("Hits", justify="right")
    table.add_row(str(result.total_entries), str(result.total_hits))
    console.print(table)
    if result.top_themes:
        console.print("[bold]Top themes:[/bold]")
        for theme, count in result.top_themes:
            console.print(f"  - {theme}: {count}")


@app.command()
def cleanup(
    ctx: typer.Context,
    max_age_days: float = typer.Option(30, "--max-age-days", min=0),
    min_access_count: int = typer.Option(1, "--min-access-count", min=0),
):
    """Delete old, rarely viewed cache entries."""
    deleted = _run(ctx, lambda s: s.cleanup_cache(max_age_days, min_access_count))
    console.print(f"[bold green]Deleted[/bold green] {deleted} entries")


@app.command()
def providers(ctx: typer.Context):
    """Show the provider strategy."""

    async def work(service: ImageService):
        orchestrator = service.orchestrator
        return orchestrator.strategy, set(orchestrator.registered_provider_ids()), service.default_provider

    strategy, registered, default = _run(ctx, work)
    table = Table(title="Providers")
    table.add_column("ID")
    table.add_column("Priority", justify="right")
    table.add_column("Timeout (s)", justify="right")
    table.add_column("Enabled")
    table.add_column("Registered")
    for c in sorted(strategy.priorities, key=lambda c: c.priority):
        table.add_row(
            c.id + (" *" if c.id == default else ""),
            str(c.priority),
            "-" if c.timeout is None else f"{c.timeout:g}",
            "yes" if c.enabled else "no",
            "yes" if c.id in registered else "no",
        )
    console.print(table)
    fallback = "on" if strategy.auto_fallback else "off"
    console.print(f"Fallback: {fallback}  Global timeout: {strategy.global_timeout}s")


if __name__ == "__main__":
    app()
