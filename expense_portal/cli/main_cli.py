# expense_portal/cli/main_cli.py
import json
from typing import Optional

import typer
import uvicorn
from pydantic import ValidationError

from . import config  # noqa: F401  (loads .env before Settings is read)
from ..settings import Settings
from ..utils import generate_session_secret
from .utils_cli import make_api_request

app = typer.Typer(
    name="expense-portal",
    help="Expense Portal Command Line Interface.",
    no_args_is_help=True
)


@app.callback()
def main_callback():
    """
    Expense Portal main CLI application.
    """
    pass


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Interface to bind."),
    port: int = typer.Option(8000, help="Port to listen on."),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes (development)."),
    log_level: str = typer.Option("info", help="Uvicorn log level."),
):
    """Run the portal with uvicorn."""
    typer.echo(f"Starting Expense Portal on {host}:{port} (reload={reload})")
    uvicorn.run(
        "expense_portal.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level.lower(),
    )


@app.command("generate-secret")
def generate_secret():
    """Print a new random value for SESSION_SECRET."""
    typer.echo(generate_session_secret())


def _mask(value: Optional[str]) -> str:
    return '********' if value else 'None'


@app.command("check-config")
def check_config():
    """
    Validate the environment / .env configuration and report what a production
    deployment is still missing. Exits with code 1 when something required is absent.
    """
    try:
        settings = Settings()
    except ValidationError as e:
        typer.secho(f"Invalid configuration:\n{e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.echo(f"ENVIRONMENT: {settings.environment}")
    typer.echo(f"GOOGLE_CLIENT_ID: {_mask(settings.google_client_id)}")
    typer.echo(f"GOOGLE_CLIENT_SECRET: {_mask(settings.google_client_secret)}")
    typer.echo(f"GOOGLE_SCOPES: {' '.join(settings.google_scopes)}")
    typer.echo(f"SESSION_SECRET: {_mask(settings.session_secret)}")
    typer.echo(f"DRIVE_FOLDER_ID: {settings.drive_folder_id or 'None'}")
    typer.echo(f"PUBLIC_BASE_URL: {settings.public_base_url or 'None (derived from each request)'}")
    typer.echo(f"REDIS_URL: {_mask(settings.redis_url)}")

    problems = []
    if not settings.google_oauth_configured:
        problems.append("GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are required for login.")
    if not settings.drive_folder_id:
        problems.append("DRIVE_FOLDER_ID is required to store receipts.")
    if not settings.session_secret:
        problems.append("SESSION_SECRET is not set; sessions will not survive a restart.")
    if settings.is_production and not settings.redis_url:
        problems.append("REDIS_URL is required when ENVIRONMENT=production.")
    if settings.is_production and not settings.session_cookie_secure:
        problems.append("SESSION_COOKIE_SECURE should be true in production.")

    if problems:
        for problem in problems:
            typer.secho(f"- {problem}", fg=typer.colors.YELLOW)
        raise typer.Exit(code=1)
    typer.secho("Configuration OK.", fg=typer.colors.GREEN)


@app.command("health")
def health():
    """Query /health on a running portal (EXPENSE_CLI_API_BASE_URL)."""
    result = make_api_request("GET", "/health")
    typer.echo(json.dumps(result, indent=2))
    if result.get("status") != "healthy":
        raise typer.Exit(code=1)


def cli_entry_point():
    """Entry point function for console script registration in pyproject.toml"""
    app()


if __name__ == "__main__":
    cli_entry_point()
