from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from svc_instrument.core.errors import RewriteError
from svc_instrument.core.manifest import load_manifest
from svc_instrument.core.rewrite import rewrite_program, write_overlay_file

console = Console()


def rewrite(
    manifest: Annotated[Path, typer.Argument(help="Path to the rewrite manifest (JSON).")],
    out: Annotated[Path, typer.Option(help="Directory that receives the rewritten files.")] = Path("build/rewrite"),
    overlay: Annotated[
        Path | None, typer.Option(help="Where to write the go build overlay file. Defaults to OUT/overlay.json.")
    ] = None,
    runtime_path: Annotated[
        str | None, typer.Option(help="Import path of the runtime package (env: SVC_INSTRUMENT_RUNTIME_PATH).")
    ] = None,
) -> None:
    """Rewrite the packages listed in a manifest and write a build overlay."""
    try:
        program = load_manifest(manifest)
        overlays = rewrite_program(program, out, runtime_path=runtime_path)
        overlay_path = write_overlay_file(overlays, overlay or out / "overlay.json")
    except (RewriteError, OSError) as exc:
        console.print(f"[red]Rewrite failed:[/red] {exc}")
        raise typer.Exit(1) from exc

    table = Table(show_lines=False)
    table.add_column("original")
    table.add_column("rewritten")
    for entry in overlays:
        table.add_row(entry.original, entry.rewritten)
    console.print(table)
    console.print(f"[green]Wrote[/green] overlay for {len(overlays)} file(s) to {overlay_path}")
