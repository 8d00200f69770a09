from datetime import datetime
from zoneinfo import ZoneInfo

import typer

from doorcli.core.config import GUILD_ID, SECRET, TIMEZONE
from doorserver.tokens.service import token_for_principal, token_for_today

app = typer.Typer(help="Rotating token commands")


@app.command("today")
def today(
    guild_id: str = typer.Option(GUILD_ID, "--guild-id", help="Chat server id"),
    secret: str = typer.Option(SECRET, "--secret", help="Server SECRET"),
    timezone: str = typer.Option(TIMEZONE, "--timezone", help="Server timezone"),
):
    """
    Print today's token, valid until local midnight.
    """
    if not guild_id:
        typer.echo("Missing --guild-id (or DISCORD_GUILD_ID).")
        raise typer.Exit(code=1)
    typer.echo(token_for_today(guild_id, secret, datetime.now(ZoneInfo(timezone))))


@app.command("shortcut")
def shortcut(
    user_id: str = typer.Option(..., "--user-id", "-u", help="Member id"),
    guild_id: str = typer.Option(GUILD_ID, "--guild-id", help="Chat server id"),
    secret: str = typer.Option(SECRET, "--secret", help="Server SECRET"),
):
    """
    Print the shortcut token for a member (POST /open {token, userid}).
    """
    if not guild_id:
        typer.echo("Missing --guild-id (or DISCORD_GUILD_ID).")
        raise typer.Exit(code=1)
    typer.echo(token_for_principal(guild_id, user_id, secret))
