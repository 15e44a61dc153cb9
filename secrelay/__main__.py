"""CLI entry point: python -m secrelay [command]"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console()


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _exit_on_config_errors(settings, require_telegram: bool = False):
    errors = settings.validate(require_telegram=require_telegram)
    if errors:
        for err in errors:
            console.print(f"[red]Config error: {err}[/red]")
        console.print("\n[dim]Set the variables in the environment or a .env file.[/dim]")
        sys.exit(1)


def _build_bot(settings, pipeline):
    from secrelay.integrations.telegram import TelegramBot, TelegramClient
    from secrelay.rate_limit import RateLimiter

    return TelegramBot(
        client=TelegramClient(settings.telegram_bot_token, timeout=settings.fetch_timeout_seconds),
        pipeline=pipeline,
        limiter=RateLimiter(interval=settings.rate_limit_interval_seconds, burst=settings.rate_limit_burst),
        delivery_delay=settings.delivery_delay_seconds,
        poll_timeout=settings.telegram_poll_timeout,
        max_workers=settings.telegram_workers,
        per_chat_limit=settings.rate_limit_per_chat,
    )


def _start_sweeper(settings, pipeline):
    from secrelay.sweeper import CacheSweeper

    sweeper = CacheSweeper(pipeline.cache, interval_seconds=settings.cache_sweep_interval_seconds)
    sweeper.start()
    return sweeper


def cmd_serve(args):
    """Run the web API, plus the Telegram bot when a token is configured."""
    from secrelay.config import load_settings
    from secrelay.pipeline import create_pipeline

    settings = load_settings()
    setup_logging(settings.log_level)
    _exit_on_config_errors(settings)

    import uvicorn

    from secrelay.web.app import create_app

    # One pipeline, one cache: bot and API dedup against each other.
    pipeline = create_pipeline(settings)
    sweeper = _start_sweeper(settings, pipeline)

    bot = None
    bot_thread = None
    if settings.has_telegram():
        bot = _build_bot(settings, pipeline)
        bot_thread = threading.Thread(target=bot.run_until_failure, name="telegram-bot", daemon=True)
        bot_thread.start()
        console.print("[bold cyan]SECRELAY[/bold cyan] - Telegram bot started")
    else:
        console.print("[yellow]TELEGRAM_BOT_TOKEN not set or placeholder - running in web-only mode[/yellow]")

    host = args.host or settings.web_host
    port = args.port or settings.web_port
    app = create_app(settings, pipeline=pipeline)
    console.print(f"  Web interface: http://{host}:{port}")
    console.print(f"  API: http://{host}:{port}/api/articles")
    try:
        uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())
    finally:
        if bot is not None:
            bot.stop()
            bot_thread.join(timeout=5)
        sweeper.stop()


def cmd_bot(args):
    """Run the Telegram bot only."""
    from secrelay.config import load_settings
    from secrelay.pipeline import create_pipeline

    settings = load_settings()
    setup_logging(settings.log_level)
    _exit_on_config_errors(settings, require_telegram=True)

    pipeline = create_pipeline(settings)
    sweeper = _start_sweeper(settings, pipeline)
    bot = _build_bot(settings, pipeline)

    def handle_signal(sig, frame):
        console.print("\n[yellow]Shutting down gracefully...[/yellow]")
        bot.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    console.print("\n[bold cyan]SECRELAY[/bold cyan] - Habr InfoSec bot")
    try:
        bot.run()
    finally:
        sweeper.stop()


def cmd_web(args):
    """Run the web API only."""
    from secrelay.config import load_settings
    from secrelay.pipeline import create_pipeline

    settings = load_settings()
    setup_logging(settings.log_level)
    _exit_on_config_errors(settings)

    import uvicorn

    from secrelay.web.app import create_app

    pipeline = create_pipeline(settings)
    sweeper = _start_sweeper(settings, pipeline)
    host = args.host or settings.web_host
    port = args.port or settings.web_port
    console.print(f"\n[bold cyan]SECRELAY[/bold cyan] - API at http://{host}:{port}/api/articles")
    try:
        uvicorn.run(create_app(settings, pipeline=pipeline), host=host, port=port, log_level=settings.log_level.lower())
    finally:
        sweeper.stop()


def cmd_fetch(args):
    """Run a single pipeline cycle and print the result."""
    from secrelay.config import load_settings
    from secrelay.integrations.rss import FeedFetchError
    from secrelay.pipeline import create_pipeline

    settings = load_settings()
    setup_logging(settings.log_level)
    _exit_on_config_errors(settings)

    pipeline = create_pipeline(settings)
    try:
        articles = pipeline.fetch_new_articles(max_results=args.limit)
    except FeedFetchError as e:
        console.print(f"[red]Failed to fetch feed: {e}[/red]")
        sys.exit(1)

    if not articles:
        console.print("[dim]No new articles.[/dim]")
        return

    table = Table(title=f"New articles ({len(articles)})")
    table.add_column("Published", style="dim", no_wrap=True)
    table.add_column("Title", style="bold")
    table.add_column("Summary")
    table.add_column("Link", style="cyan")
    for a in articles:
        table.add_row(a.published_at.strftime("%Y-%m-%d %H:%M"), a.title, a.summary, a.link)
    console.print(table)


def cmd_healthcheck(args):
    """Run health checks on all external dependencies."""
    from secrelay.config import load_settings
    from secrelay.healthcheck import run_all_checks

    settings = load_settings()
    setup_logging(settings.log_level)

    console.print("\n[bold cyan]SECRELAY HEALTH CHECK[/bold cyan]")
    console.print("━" * 40)

    results = run_all_checks(settings)
    all_ok = True

    for result in results:
        icon = "[green]PASS[/green]" if result.ok else "[red]FAIL[/red]"
        console.print(f"  {icon} {result.name}: {result.message}")
        if not result.ok:
            all_ok = False

    console.print("━" * 40)
    if all_ok:
        console.print("[green]All checks passed![/green]")
    else:
        console.print("[red]Some checks failed. Fix the issues above.[/red]")
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(
        prog="secrelay",
        description="secrelay - Habr infosec articles for Telegram and the web",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the web API and, if configured, the Telegram bot")
    serve_parser.add_argument("--host", type=str, help="Host to bind to")
    serve_parser.add_argument("--port", type=int, help="Port to bind to")
    serve_parser.set_defaults(func=cmd_serve)

    # bot
    bot_parser = subparsers.add_parser("bot", help="Run the Telegram bot only")
    bot_parser.set_defaults(func=cmd_bot)

    # web
    web_parser = subparsers.add_parser("web", help="Run the web API only")
    web_parser.add_argument("--host", type=str, help="Host to bind to")
    web_parser.add_argument("--port", type=int, help="Port to bind to")
    web_parser.set_defaults(func=cmd_web)

    # fetch
    fetch_parser = subparsers.add_parser("fetch", help="Fetch new articles once and print them")
    fetch_parser.add_argument("--limit", type=int, help="Maximum number of articles (default: from config)")
    fetch_parser.set_defaults(func=cmd_fetch)

    # healthcheck
    health_parser = subparsers.add_parser("healthcheck", help="Run health checks on all dependencies")
    health_parser.set_defaults(func=cmd_healthcheck)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
