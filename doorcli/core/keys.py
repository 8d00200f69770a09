# doorcli/core/keys.py
import os
from typing import Optional

import typer
from eth_account.signers.local import LocalAccount

from doorserver.core.crypto import account_from_key, decrypt_private_key_with_password
from doorserver.core.errors import ConfigurationError

from .config import PRIVATE_KEY_FILE


def load_signing_account(private_key: Optional[str]) -> LocalAccount:
    """
    Key from --private-key, then PRIVATE_KEY, then the server key file.
    Exits with code 1 when none is usable.
    """
    key = private_key or os.environ.get("PRIVATE_KEY")
    try:
        if not key and PRIVATE_KEY_FILE.exists():
            key = PRIVATE_KEY_FILE.read_text(encoding="utf-8").strip()
            if key.startswith("{"):
                passphrase = os.environ.get("KEY_PASSPHRASE") or typer.prompt("Key passphrase", hide_input=True)
                key = decrypt_private_key_with_password(key, passphrase)
        if not key:
            typer.echo("No private key: use --private-key, PRIVATE_KEY or a .privateKey file in DATA_DIR.")
            raise typer.Exit(code=1)
        return account_from_key(key)
    except ConfigurationError as e:
        typer.echo(f"Invalid private key: {e}")
        raise typer.Exit(code=1)


def format_duration(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    if hours and mins:
        return f"{hours}h {mins}m"
    if hours:
        return f"{hours}h"
    return f"{mins}m"
