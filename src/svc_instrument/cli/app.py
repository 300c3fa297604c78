import logging
from typing import Annotated

import typer
from rich.logging import RichHandler

from svc_instrument.cli.positions import positions
from svc_instrument.cli.rewrite import rewrite

app = typer.Typer(
    name="svc-instrument",
    help="svc-instrument — rewrite Go service code to call the tracing runtime.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def _configure(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log each rewritten file.")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(show_path=False)],
        force=True,
    )


app.command("rewrite")(rewrite)
app.command("positions")(positions)


def main() -> None:
    app()
