from typing import Optional

import typer

from doorcli.core.keys import load_signing_account
from doorserver.core.crypto import generate_keypair

app = typer.Typer(help="Signing key commands")


@app.command("address")
def address(
    private_key: Optional[str] = typer.Option(None, "--private-key", "-k", help="Hex private key"),
):
    """
    Print the address to add to authorized_keys.json.
    """
    account = load_signing_account(private_key)
    typer.echo(account.address)


@app.command("generate")
def generate():
    """
    Generate a new signing key pair.
    """
    private_key, public_address = generate_keypair()
    typer.echo(f"Private key: {private_key}")
    typer.echo(f"Address:     {public_address}")
    typer.echo("Keep the private key secret. Add the address to authorized_keys.json.")
