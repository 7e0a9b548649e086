# expense_portal/cli/utils_cli.py
import json
from typing import Any, Dict, List, Optional, Union

import httpx
import typer

from .config import EXPENSE_CLI_API_BASE_URL


def make_api_request(
    method: str,
    endpoint: str,
    params_payload: Optional[Dict[str, Any]] = None,
    expected_status: Union[int, List[int]] = 200,
    timeout: float = 10.0,
) -> Any:
    """
    Calls the running portal and returns the decoded JSON body.

    Exits the CLI with code 1 on connection errors or unexpected status codes.
    """
    full_url = f"{EXPENSE_CLI_API_BASE_URL}{endpoint}"
    typer.echo(f"CLI: {method.upper()} {full_url}")
    if params_payload:
        typer.echo(f"CLI: Query Params: {params_payload}")

    try:
        response = httpx.request(method, full_url, params=params_payload, timeout=timeout)
    except httpx.RequestError as e:
        typer.secho(f"CLI: Request failed: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.echo(f"CLI: Response Status: {response.status_code}")
    allowed = expected_status if isinstance(expected_status, list) else [expected_status]
    if response.status_code not in allowed:
        typer.secho(
            f"CLI: Error - expected status {allowed}, got {response.status_code}. Body: {response.text[:500]}",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    try:
        return response.json()
    except json.JSONDecodeError:
        typer.secho(f"CLI: Response was not JSON: {response.text[:500]}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
