"""LinkRay CLI — entry-point for scanner operations.

Usage:
    python cli/main.py --help

Commands:
    db init     → create the scans database
    scan        → run the full scan pipeline against a URL
    recent      → list a user's recent scans
    backends    → show the classifier fallback order
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from linkray.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import json
from typing import Optional

import typer

from linkray.classifier import ClassifierConfig, ClassifierGateway
from linkray.config import configure_logging, settings
from linkray.db import ScanStore, get_connection, init_db
from linkray.errors import ScanError
from linkray.pipeline import ScanDepth, ScanPipeline

app = typer.Typer(
    name="linkray",
    help="LinkRay website risk scanner CLI.",
    no_args_is_help=True,
)

# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Database operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Initialise the SQLite database (create tables if they do not exist)."""
    conn = get_connection()
    init_db(conn)
    conn.close()
    typer.echo(f"[db init] Database ready at {settings.db_path}")


# ---------------------------------------------------------------------------
# Scan commands
# ---------------------------------------------------------------------------
@app.command("scan")
def scan(
    url: str = typer.Argument(..., help="URL to scan (scheme optional)."),
    depth: ScanDepth = typer.Option(ScanDepth.PAGE, help="page | quick | deep."),
    user: Optional[str] = typer.Option(None, help="Owner id; enables caching."),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result envelope."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show pipeline logs."),
) -> None:
    """Scan a website and print its risk assessment."""
    configure_logging("DEBUG" if verbose else "WARNING")
    conn = get_connection()
    init_db(conn)
    pipeline = ScanPipeline(
        ScanStore(conn),
        ClassifierGateway.from_config(ClassifierConfig.from_settings()),
    )

    try:
        outcome = pipeline.run(url, user_id=user, depth=depth)
    except ScanError as exc:
        if as_json:
            typer.echo(json.dumps({"success": False, "error": exc.user_message}))
        else:
            typer.echo(f"❌ {exc.user_message}")
            if exc.detail:
                typer.echo(f"   ({exc.stage}: {exc.detail})")
        raise typer.Exit(code=1)
    finally:
        conn.close()

    data = outcome.to_dict()
    if as_json:
        typer.echo(json.dumps({"success": True, "data": data}, indent=2))
        return

    source = "cache" if outcome.from_cache else "fresh scan"
    typer.echo(f"[scan] {data['url']}  ({source}, depth={data['depth']})")
    typer.echo(f"[scan] Risk score : {data['risk_score']}/100")
    typer.echo(f"[scan] Category   : {data['category']}")
    typer.echo(f"[scan] Tags       : {', '.join(data['tags']) or '(none)'}")
    typer.echo("")
    typer.echo(data["summary"])
    typer.echo("")
    typer.echo(f"Why: {data['reason']}")


@app.command("recent")
def recent(
    user: str = typer.Option(..., help="Owner id."),
    limit: int = typer.Option(10, help="Maximum number of scans to list."),
) -> None:
    """List a user's most recent scans, newest first."""
    conn = get_connection()
    init_db(conn)
    try:
        scans = ScanStore(conn).list_recent(user, limit)
    finally:
        conn.close()

    if not scans:
        typer.echo(f"[recent] No scans found for {user!r}.")
        return
    for s in scans:
        typer.echo(f"  {s.to_dict()['created_at']}  [{s.risk_score:>3}]  {s.url}  ({s.category})")


@app.command("backends")
def backends() -> None:
    """Show the classifier backends in the order they are tried."""
    config = ClassifierConfig.from_settings()
    gateway = ClassifierGateway.from_config(config)
    typer.echo(f"[backends] Provider : {config.provider}  ({config.base_url})")
    if config.provider == "openai":
        key_state = "set" if config.api_key else "MISSING (set GEMINI_API_KEY)"
        typer.echo(f"[backends] API key  : {key_state}")
    for i, name in enumerate(gateway.backend_names, start=1):
        typer.echo(f"  {i}. {name}")


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
