# doorcli/main.py


import typer
from doorcli.links.commands import app as links_app
from doorcli.keys.commands import app as keys_app
from doorcli.token.commands import app as token_app

app = typer.Typer(help="Door operator tools")
app.add_typer(links_app, name="links")
app.add_typer(keys_app, name="keys")
app.add_typer(token_app, name="token")

if __name__ == "__main__":
    app()
