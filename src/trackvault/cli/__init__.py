"""CLI commands for trackvault.

Provides command-line interface using Typer:
- trackvault serve: Run the API server
- trackvault verify: Check the library document against the blob directories

Usage:
    trackvault --help
    trackvault serve --port 8080
    trackvault verify --prune
"""

import typer

from trackvault.cli.serve import app as serve_app
from trackvault.cli.verify_cmd import app as verify_app

# Main CLI application
app = typer.Typer(
    name="trackvault",
    help="trackvault: GPS track library server",
    no_args_is_help=True,
)

app.add_typer(serve_app, name="serve")
app.add_typer(verify_app, name="verify")


@app.callback()
def callback() -> None:
    """trackvault: GPS track library server."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
