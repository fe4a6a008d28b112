"""Command-line interface for FitConnect.

Commands:
- init: Create the database schema
- status: Show configuration and row counts
- feed: Print an account's feed
- serve: Run the REST API with uvicorn

Example:
    $ fitconnect init
    $ fitconnect status
    $ fitconnect feed 7 --limit 10
    $ fitconnect serve --port 3000
"""

from pathlib import Path
from typing import Optional

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from fitconnect import __version__
from fitconnect.config import settings
from fitconnect.database import DatabaseManager
from fitconnect.errors import FitConnectError
from fitconnect.feed import FeedService
from fitconnect.logging import setup_logging
from fitconnect.utils import format_iso, truncate

# Initialize CLI app
app     = typer.Typer(
    name="fitconnect",
    help="Social fitness-tracking backend",
    add_completion=False,
)
console = Console()

DatabaseOption = typer.Option(
    None,
    "--database",
    "-d",
    help="SQLite database path (defaults to FITCONNECT settings)",
)
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable verbose logging")


# =============================================================================
# Helper Functions
# =============================================================================


def configure_logging(verbose: bool = False) -> None:
    """Re-level the console logger for CLI use."""
    setup_logging(
        level="DEBUG" if verbose else "WARNING",
        json_logs=settings.log_json,
        log_file=settings.log_file,
        colorize=not settings.log_json,
    )


# =============================================================================
# CLI Commands
# =============================================================================


@app.command()
def init(
    database: Optional[Path] = DatabaseOption,
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Delete an existing database file and recreate it",
    ),
    verbose: bool = VerboseOption,
) -> None:
    """Create the database and all tables.

    Examples:
        $ fitconnect init
        $ fitconnect init --force
    """
    configure_logging(verbose)
    console.print("🏗️  [bold cyan]FitConnect Initialization[/bold cyan]\n")

    db_path = database or settings.database_path
    if str(db_path) != ":memory:" and Path(db_path).exists():
        if not force:
            console.print(
                f"⚠️  Database already exists at {db_path}\n"
                "Use --force to recreate it."
            )
            return
        Path(db_path).unlink()

    try:
        db = DatabaseManager(db_path)
        db.initialize()
        db.close()
    except Exception as e:
        console.print(f"\n❌ [bold red]Initialization failed: {e}[/bold red]")
        raise typer.Exit(code=1)

    console.print(f"✅ Database created at [yellow]{db_path}[/yellow]")
    console.print("\nNext steps:")
    console.print("  1. Run: fitconnect serve")
    console.print("  2. Register an account with POST /api/accounts")


@app.command()
def status(
    database: Optional[Path] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """Show configuration and row counts per table.

    Examples:
        $ fitconnect status
    """
    configure_logging(verbose)
    console.print("📊 [bold cyan]FitConnect Status[/bold cyan]\n")

    try:
        db = DatabaseManager(database)
        db.initialize()

        config_table = Table(title="Configuration", show_header=False)
        config_table.add_column("Key", style="cyan")
        config_table.add_column("Value", style="yellow")

        config_table.add_row("Version", __version__)
        config_table.add_row("Environment", str(settings.environment))
        config_table.add_row("Database Path", str(db.database_path))
        config_table.add_row("Feed Page Cap", str(settings.feed_max_limit))
        config_table.add_row("Comment Preview", str(settings.feed_comment_preview))

        console.print(config_table)
        console.print()

        counts      = db.table_counts()
        stats_table = Table(title="Database Statistics")
        stats_table.add_column("Table", style="cyan")
        stats_table.add_column("Rows", justify="right", style="green")
        for name, count in counts.items():
            stats_table.add_row(name.capitalize(), f"{count:,}")

        console.print(stats_table)
        db.close()

    except Exception as e:
        console.print(f"\n❌ [bold red]Status failed: {e}[/bold red]")
        raise typer.Exit(code=1)


@app.command()
def feed(
    account_id: int = typer.Argument(..., help="Viewer account id"),
    limit: int = typer.Option(20, "--limit", "-n", min=0, help="Posts to show"),
    offset: int = typer.Option(0, "--offset", min=0, help="Posts to skip"),
    database: Optional[Path] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """Print the feed of an account.

    Examples:
        $ fitconnect feed 7
        $ fitconnect feed 7 --limit 5 --offset 5
    """
    configure_logging(verbose)

    db = DatabaseManager(database)
    db.initialize()
    try:
        with db.session() as session:
            posts = FeedService(session).get_feed(account_id, limit=limit, offset=offset)
    except FitConnectError as e:
        console.print(f"❌ [bold red]{e.message}[/bold red]")
        raise typer.Exit(code=1)
    finally:
        db.close()

    if not posts:
        console.print("📭 Feed is empty")
        return

    table = Table(title=f"Feed for account {account_id}")
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Author", style="magenta")
    table.add_column("Posted", style="yellow")
    table.add_column("Likes", justify="right", style="green")
    table.add_column("Comments", justify="right", style="green")
    table.add_column("Content")

    for post in posts:
        table.add_row(
            str(post.id),
            post.author.display_name if post.author else str(post.author_id),
            format_iso(post.created_at) or "",
            str(post.like_count),
            str(post.comment_count),
            truncate(post.content, 60),
        )
    console.print(table)


@app.command()
def serve(
    host: str = typer.Option(settings.api_host, "--host", help="Bind address"),
    port: int = typer.Option(settings.api_port, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the REST API.

    Examples:
        $ fitconnect serve
        $ fitconnect serve --host 0.0.0.0 --port 8080
    """
    console.print(f"🚀 [bold cyan]FitConnect API[/bold cyan] on http://{host}:{port}/api")
    uvicorn.run(
        "fitconnect.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower() if settings.log_level != "SUCCESS" else "info",
    )


if __name__ == "__main__":
    app()
