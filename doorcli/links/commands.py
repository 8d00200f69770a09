import time
from datetime import datetime
from typing import Optional

import typer

from doorcli.core.config import BASE_URL
from doorcli.core.keys import format_duration, load_signing_account
from doorserver.capability.service import (
    GRACE_SECONDS,
    build_signed_url,
    check_window,
    parse_capability,
    parse_signed_url,
    recover_signer,
    sign_capability,
)
from doorserver.core.errors import AccessDenied

app = typer.Typer(help="Signed access link commands")


@app.command("generate")
def generate(
    name: str = typer.Option(..., "--name", "-n", help="Name of the person requesting access"),
    host: str = typer.Option(..., "--host", help="Event organiser identifier"),
    reason: str = typer.Option(..., "--reason", "-r", help="Event name or reason"),
    duration: int = typer.Option(..., "--duration", "-d", help="Duration in minutes"),
    start_in: int = typer.Option(0, "--start-in", help="Minutes from now to start (negative for past)"),
    event_url: Optional[str] = typer.Option(None, "--event-url", help="Event page, signed with the link"),
    base_url: str = typer.Option(BASE_URL, "--base-url", help="Door server URL"),
    private_key: Optional[str] = typer.Option(None, "--private-key", "-k", help="Hex private key"),
):
    """
    Generate a signed door access URL.
    """
    if duration <= 0:
        typer.echo("Duration must be a positive number of minutes.")
        raise typer.Exit(code=1)

    account = load_signing_account(private_key)
    start_time = int(time.time()) + start_in * 60
    request = sign_capability(account, name, host, reason, start_time, duration, event_url=event_url)
    url = build_signed_url(request, base_url)

    typer.echo(url)
    typer.echo("")
    typer.echo(f"Name:        {name}")
    typer.echo(f"Host:        {host}")
    typer.echo(f"Reason:      {reason}")
    typer.echo(f"Start Time:  {datetime.fromtimestamp(request.window_start)}")
    typer.echo(f"End Time:    {datetime.fromtimestamp(request.window_end)}")
    typer.echo(f"Duration:    {format_duration(duration)}")
    typer.echo(f"Signed By:   {account.address}")
    typer.echo("Make sure this address is authorized in authorized_keys.json")


@app.command("verify")
def verify(url: str = typer.Argument(..., help="Signed access URL")):
    """
    Show who signed a link and whether it is currently valid.
    """
    params = parse_signed_url(url)
    try:
        request = parse_capability(params)
        signer = recover_signer(request.canonical_message(), request.sig)
    except AccessDenied as e:
        typer.echo(f"Invalid link: {e.reason}")
        raise typer.Exit(code=1)

    typer.echo(f"Signed By:   {signer}")
    typer.echo(f"Valid From:  {datetime.fromtimestamp(request.window_start - GRACE_SECONDS)}")
    typer.echo(f"Valid Until: {datetime.fromtimestamp(request.window_end + GRACE_SECONDS)}")
    try:
        check_window(request, time.time())
    except AccessDenied as e:
        typer.echo(f"Status:      {e.reason}")
        raise typer.Exit(code=2)
    typer.echo("Status:      valid now")
