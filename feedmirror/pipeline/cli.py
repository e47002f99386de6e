"""CLI for inspecting and feeding the replicated post store.

Usage:
    python -m feedmirror.pipeline.cli probe
    python -m feedmirror.pipeline.cli stats
    python -m feedmirror.pipeline.cli exists <guid>
    python -m feedmirror.pipeline.cli save posts.json
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click
from rich.console import Console
from rich.table import Table

from feedmirror.config import DEFAULT_CONFIG_PATH, build_registry, load_env, load_settings
from feedmirror.storage.errors import AggregateFailure, ConfigError
from feedmirror.storage.models import Post
from feedmirror.storage.replicator import ReplicatedStore

console = Console()


def run_async(coro):
    """Run an async function in a fresh event loop."""
    return asyncio.run(coro)


def open_store(ctx) -> ReplicatedStore:
    """Build the store from the CLI context, exiting on bad config."""
    try:
        settings = load_settings(ctx.obj["config_path"])
        return ReplicatedStore(build_registry(settings))
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {e}")
        sys.exit(2)


@click.group()
@click.option("--config", default=DEFAULT_CONFIG_PATH, help="Config file path")
@click.option("--env-dir", default=".", help="Directory holding .env / .env.local")
@click.option("--log-level", default="INFO", help="Logging level")
@click.pass_context
def cli(ctx, config: str, env_dir: str, log_level: str):
    """Replicated feed post store CLI."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    load_env(env_dir)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config


@cli.command()
@click.pass_context
def probe(ctx):
    """Check connectivity to every backend."""
    store = open_store(ctx)

    async def _run():
        async with store:
            return await store.probe_all()

    with console.status("[bold green]Probing backends..."):
        results = run_async(_run())

    table = Table(title="Backend Connectivity")
    table.add_column("Backend", style="cyan")
    table.add_column("Connected")
    table.add_column("Error", style="red")
    for r in results:
        table.add_row(r.name, "[green]yes" if r.connected else "[red]no", (r.error or "")[:60])
    console.print(table)

    connected = sum(1 for r in results if r.connected)
    console.print(f"{connected}/{len(results)} backends reachable")
    if not connected:
        sys.exit(1)


@cli.command()
@click.pass_context
def stats(ctx):
    """Show row counts and latest insert time per backend."""
    store = open_store(ctx)

    async def _run():
        async with store:
            return await store.collect_stats()

    with console.status("[bold green]Collecting stats..."):
        snapshots = run_async(_run())

    table = Table(title="Backend Stats")
    table.add_column("Backend", style="cyan")
    table.add_column("Posts", justify="right")
    table.add_column("Latest")
    table.add_column("Status")
    for s in snapshots:
        table.add_row(
            s.name,
            str(s.total_posts),
            s.latest_post.strftime("%Y-%m-%d %H:%M:%S") if s.latest_post else "-",
            "[green]healthy" if s.healthy else f"[red]error[/red] {(s.error or '')[:40]}",
        )
    console.print(table)


@cli.command()
@click.argument("guid")
@click.pass_context
def exists(ctx, guid: str):
    """Exit 0 if GUID is stored on any backend, 1 otherwise."""
    store = open_store(ctx)

    async def _run():
        async with store:
            return await store.exists(guid)

    found = run_async(_run())
    if found:
        console.print(f"[green]Found[/green] {guid}")
    else:
        console.print(f"[yellow]Not found[/yellow] {guid}")
        sys.exit(1)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def save(ctx, path: str):
    """Write the posts in a JSON array file to every backend."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON:[/red] {e}")
        sys.exit(2)
    if not isinstance(raw, list):
        console.print("[red]Error:[/red] expected a JSON array of posts")
        sys.exit(2)
    try:
        posts = [Post.from_dict(p) for p in raw]
    except (ValueError, AttributeError) as e:
        console.print(f"[red]Invalid post:[/red] {e}")
        sys.exit(2)

    store = open_store(ctx)

    async def _run():
        async with store:
            return await store.write_batch(posts)

    try:
        with console.status(f"[bold green]Saving {len(posts)} posts..."):
            result = run_async(_run())
    except AggregateFailure as e:
        outcomes = e.outcomes
        failed = True
    else:
        outcomes = result.outcomes
        failed = False

    table = Table(title=f"Saved {len(posts)} posts")
    table.add_column("Backend", style="cyan")
    table.add_column("Result")
    table.add_column("Error", style="red")
    for o in outcomes:
        table.add_row(o.name, "[green]ok" if o.success else "[red]failed", (o.error or "")[:60])
    console.print(table)

    if failed:
        console.print("[red]All backends failed[/red]")
        sys.exit(1)


def main():
    cli()


if __name__ == "__main__":
    main()
