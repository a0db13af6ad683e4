"""
Command line entry point: run the web service or check the configuration.
"""

import argparse
import asyncio
import sys
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from epic_bot import __version__
from epic_bot.api.slack_client import SlackClient
from epic_bot.core.config import Settings, get_settings, obscure
from epic_bot.core.exceptions import ConfigurationError, EpicBotError
from epic_bot.core.logging import get_logger, setup_logging

console = Console()
logger = get_logger(__name__)

SECRET_VARIABLES = ("SLACK_BOT_TOKEN", "SLACK_SIGNING_SECRET", "ANTHROPIC_API_KEY", "GITHUB_TOKEN")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="epic-bot",
        description="Slack bot that turns feature requests into user stories on GitHub",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the webhook server
  epic-bot serve --port 3000

  # Verify environment variables and the Slack token
  epic-bot check
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the Slack webhook server")
    serve.add_argument("--host", type=str, default=None, help="Bind address (default: HOST)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: PORT)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes")

    check = subparsers.add_parser("check", help="Check configuration and Slack connectivity")
    check.add_argument("--offline", action="store_true", help="Skip the Slack auth.test call")

    return parser.parse_args(argv)


def _variables(config: Settings) -> dict[str, str]:
    return {
        "SLACK_BOT_TOKEN": config.slack.bot_token,
        "SLACK_SIGNING_SECRET": config.slack.signing_secret,
        "ANTHROPIC_API_KEY": config.anthropic.api_key,
        "GITHUB_TOKEN": config.github.token,
        "GITHUB_OWNER": config.github.owner,
        "GITHUB_REPO": config.github.repo,
    }


async def run_check(config: Settings, offline: bool = False) -> int:
    """Report configuration status; non-zero when anything required is wrong."""
    table = Table(title="Environment Variables")
    table.add_column("Variable")
    table.add_column("Status")

    for name, value in _variables(config).items():
        if name in SECRET_VARIABLES:
            status = obscure(value)
        else:
            status = f"✓ {value}" if value else "✗ Missing"
        table.add_row(name, status)
    console.print(table)

    missing = config.missing_required()
    if missing:
        console.print(f"[red]❌ Missing required environment variables:[/red] {', '.join(missing)}")
        return 1

    if not config.slack.bot_token.startswith("xoxb-"):
        console.print("[red]✗[/red] Bot token does not start with xoxb- (wrong token type?)")
        return 1

    if offline:
        console.print("[yellow]Skipping Slack connectivity check[/yellow]")
        return 0

    client = SlackClient(config.slack)
    try:
        identity = await client.auth_test()
    except EpicBotError as e:
        logger.error("Slack auth test failed", error=e.message)
        console.print(f"[red]❌ Slack auth.test failed:[/red] {e.message}")
        return 1
    finally:
        await client.close()

    console.print(
        Panel(
            f"[bold]Team:[/bold] {identity.get('team', '?')}\n"
            f"[bold]Bot user:[/bold] {identity.get('user', '?')}",
            title="✅ Slack connection OK",
            border_style="green",
        )
    )
    return 0


def run_serve(config: Settings, args: argparse.Namespace) -> int:
    """Start uvicorn once the required credentials are present."""
    import uvicorn

    try:
        config.require_credentials()
    except ConfigurationError as e:
        logger.error("Refusing to start", error=e.message, missing=e.details.get("missing"))
        console.print(f"[red]Error:[/red] {e.message}")
        return 1

    uvicorn.run(
        "epic_bot.main:app",
        host=args.host or config.host,
        port=args.port or config.port,
        reload=args.reload,
    )
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging()
    config = get_settings()

    try:
        if args.command == "check":
            return asyncio.run(run_check(config, offline=args.offline))
        return run_serve(config, args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled by user[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
