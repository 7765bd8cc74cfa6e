#!/usr/bin/env python3
"""
FeedMill - Terminal Feed Aggregator
===================================

Main application entry point with CLI interface.

Usage:
    python main.py --help                    # Show all commands
    python main.py check-config              # Validate configuration
    python main.py init-db                   # Create or verify the article cache
    python main.py fetch                     # Run one update cycle
    python main.py list                      # Print cached articles
    python main.py run                       # Browse articles interactively
"""

import sys
import asyncio
import threading

import click
from rich.console import Console
from rich.live import Live
from rich.table import Table

from feedmill.app import FeedMillApp
from feedmill.collection.article_collection import ArticleCollection
from feedmill.config.settings import load_settings, resolve_config_path
from feedmill.storage.article_cache import ArticleCache
from feedmill.ui.navigation import ListNavigator
from feedmill.ui.render import format_date, render_article, render_list
from feedmill.utils.logging import configure_application_logging
from feedmill.utils.exceptions import FeedMillError

console = Console()

# Key sequences as returned by click.getchar()
KEYS_DOWN = ("j", "\x1b[B")
KEYS_UP = ("k", "\x1b[A")
KEYS_OPEN = ("\r", "\n", "l", "\x1b[C")
KEYS_BACK = ("\x1b", "h", "\x1b[D")
KEY_REFRESH = "r"
KEY_QUIT = "q"

REDRAW_SECONDS = 0.5


@click.group(invoke_without_command=True)
@click.option('--config', '-c', help='Configuration file path')
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, config, debug):
    """FeedMill - RSS/Atom feed aggregator for the terminal."""
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def _load(ctx, console_logging: bool = True):
    """Load settings for this invocation and configure logging from them."""
    overrides = {'debug': True} if ctx.obj.get('debug') else {}
    settings = load_settings(ctx.obj.get('config_path'), **overrides)

    configure_application_logging(
        log_level=settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=console_logging and settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count,
    )
    return settings


@cli.command()
@click.pass_context
def check_config(ctx):
    """Validate configuration file and environment variables."""
    console.print("[bold blue]🔧 Checking FeedMill Configuration[/bold blue]")

    try:
        config_path = resolve_config_path(ctx.obj.get('config_path'))
        settings = _load(ctx)
    except FeedMillError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Config file", str(config_path))
    table.add_row("Sources", str(len(settings.sources)))
    table.add_row("Update interval", f"{settings.update_interval}s")
    table.add_row("Retain failed sources", str(settings.retain_failed_sources))
    table.add_row("Cache", settings.database.path)
    table.add_row("Request timeout", f"{settings.limits.request_timeout}s")
    table.add_row("Max concurrent fetches", str(settings.limits.max_concurrent_fetches))
    table.add_row(
        "Logging",
        f"Level: {settings.get_effective_log_level()}, File: {settings.logging.file_path or '-'}",
    )
    console.print(table)

    for source in settings.sources:
        console.print(f"  • {source}")

    if not settings.sources:
        console.print("[yellow]⚠️ No sources configured, add a 'sources' list to the config file[/yellow]")

    console.print("[bold green]✅ Configuration is valid[/bold green]")


@cli.command()
@click.pass_context
def init_db(ctx):
    """Create the article cache, or verify an existing one."""
    console.print("[bold blue]🗄️ Initializing FeedMill Cache[/bold blue]")

    try:
        settings = _load(ctx)
        cache = ArticleCache.open(settings.database.path, pool_size=settings.database.pool_size)
    except FeedMillError as e:
        console.print(f"[bold red]❌ Cache initialization error: {e}[/bold red]")
        sys.exit(1)

    try:
        with cache.db.get_connection() as conn:
            verified = cache.schema.verify(conn)
        if not verified:
            console.print("[bold red]❌ Cache schema verification failed[/bold red]")
            sys.exit(1)

        if cache.was_reset:
            console.print("[yellow]⚠️ Cache was written by another schema version and has been reset[/yellow]")

        info = cache.db.get_database_info()
        info_table = Table(title="Cache Information")
        info_table.add_column("Property", style="cyan")
        info_table.add_column("Value", style="green")
        info_table.add_row("Cache Path", settings.database.path)
        info_table.add_row("Size", f"{info['database_size_mb']:.2f} MB")
        info_table.add_row("Schema Version", str(info['schema_version']))
        info_table.add_row("Articles", str(info['article_count']))
        console.print(info_table)

        console.print("[bold green]✅ Cache ready![/bold green]")
    finally:
        cache.close()


@cli.command()
@click.pass_context
def fetch(ctx):
    """Run one update cycle against the cache and summarize it."""
    console.print("[bold blue]📡 Fetching feeds[/bold blue]")

    async def run_fetch():
        settings = _load(ctx)
        if not settings.sources:
            console.print("[yellow]⚠️ No sources configured[/yellow]")
            return None

        async with FeedMillApp(settings) as app:
            return await app.refresh()

    try:
        report = asyncio.run(run_fetch())
    except FeedMillError as e:
        console.print(f"[bold red]❌ Fetch error: {e}[/bold red]")
        sys.exit(1)

    if report is None:
        return

    table = Table(title="Update Cycle")
    table.add_column("Result", style="cyan")
    table.add_column("Count", style="green", justify="right")
    table.add_row("Added", str(report.added))
    table.add_row("Changed", str(report.changed))
    table.add_row("Removed", str(report.removed))
    table.add_row("Unchanged", str(report.unchanged))
    if report.retained:
        table.add_row("Retained from failed sources", str(report.retained))
    table.add_row("Failed sources", str(len(report.failed_sources)))
    console.print(table)

    for source in report.failed_sources:
        console.print(f"  [red]✗[/red] {source}")

    console.print(f"[bold green]✅ Cycle completed in {report.duration_seconds:.2f}s[/bold green]")


@cli.command(name='list')
@click.option('--limit', '-n', default=50, show_default=True, help='Number of articles to show')
@click.option('--source', '-s', help='Only show articles from this feed URL')
@click.pass_context
def list_articles(ctx, limit, source):
    """Show cached articles, newest first."""
    try:
        settings = _load(ctx)
        cache = ArticleCache.open(settings.database.path, pool_size=settings.database.pool_size)
        try:
            collection = ArticleCollection(cache.load_all())
        finally:
            cache.close()
    except FeedMillError as e:
        console.print(f"[bold red]❌ Cache error: {e}[/bold red]")
        sys.exit(1)

    articles = collection.articles_from(source) if source else list(collection)
    if not articles:
        console.print("[yellow]📭 No cached articles[/yellow]")
        return

    table = Table(title=f"Articles ({len(articles)})")
    table.add_column("Date", style="dim", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Source", style="cyan", overflow="fold")

    for article in articles[:limit]:
        table.add_row(format_date(article), article.title or "(untitled)", article.source)

    console.print(table)


def _start_key_reader(loop: asyncio.AbstractEventLoop, keys: asyncio.Queue) -> threading.Thread:
    """Read keys on a daemon thread; the thread ends after posting quit."""

    def read_keys():
        while True:
            try:
                key = click.getchar()
            except (KeyboardInterrupt, EOFError):
                key = KEY_QUIT
            loop.call_soon_threadsafe(keys.put_nowait, key)
            if key == KEY_QUIT:
                return

    reader = threading.Thread(target=read_keys, name="key_reader", daemon=True)
    reader.start()
    return reader


async def _browse(app: FeedMillApp) -> None:
    navigator = ListNavigator(app.view)
    keys: asyncio.Queue = asyncio.Queue()

    status = "" if app.start() else "no sources configured"
    _start_key_reader(asyncio.get_running_loop(), keys)

    def draw():
        height = console.size.height
        if navigator.viewing_article:
            return render_article(navigator, height)
        driver_status = status or app.driver.state.value
        hint = "j/k move · enter open · r refresh · q quit"
        return render_list(navigator, height, f"{driver_status} · {hint}")

    with Live(draw(), console=console, screen=True, auto_refresh=False) as live:
        while True:
            try:
                key = await asyncio.wait_for(keys.get(), timeout=REDRAW_SECONDS)
            except asyncio.TimeoutError:
                live.update(draw(), refresh=True)
                continue

            if key == KEY_QUIT:
                break
            if key in KEYS_DOWN:
                navigator.down()
            elif key in KEYS_UP:
                navigator.up()
            elif key in KEYS_OPEN:
                navigator.open_selected()
            elif key in KEYS_BACK:
                navigator.close_article()
            elif key == KEY_REFRESH:
                app.driver.trigger()

            live.update(draw(), refresh=True)


@cli.command()
@click.pass_context
def run(ctx):
    """Browse articles while feeds refresh in the background."""

    async def run_app():
        # Log output would corrupt the full-screen view
        settings = _load(ctx, console_logging=False)
        async with FeedMillApp(settings) as app:
            await _browse(app)

    try:
        asyncio.run(run_app())
    except FeedMillError as e:
        console.print(f"[bold red]❌ {e.user_message}[/bold red]")
        sys.exit(1)


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 FeedMill interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[bold red]❌ Unexpected error: {e}[/bold red]")
        sys.exit(1)
