from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from svc_instrument.core.markers import parse_markers

console = Console()


def positions(
    path: Annotated[Path, typer.Argument(help="Rewritten source file.")],
) -> None:
    """List the position markers in a rewritten file."""
    try:
        source = path.read_bytes()
    except FileNotFoundError:
        console.print(f"[red]File not found:[/red] {path}")
        raise typer.Exit(1) from None

    markers = parse_markers(source)
    table = Table(show_lines=False)
    table.add_column("offset")
    table.add_column("original")
    for marker in markers:
        table.add_row(str(marker.offset), str(marker.position))
    console.print(table)
    console.print(f"({len(markers)} markers)")
