import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from svc_instrument.core.dispatch import rewrite_file
from svc_instrument.core.program import NodeRegistry, Package, Program, SourceFile
from svc_instrument.core.runtime import WRAPPERS_FILE_NAME, get_runtime_path
from svc_instrument.core.wrappers import WrapperSet, generate_wrappers
from svc_instrument.models import Overlay, OverlayFile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RewriteContext:
    registry: NodeRegistry
    files: Mapping[str, SourceFile]
    runtime_path: str = field(default_factory=get_runtime_path)


def rewrite_package(package: Package, target_dir: str | Path, ctx: RewriteContext) -> list[Overlay]:
    """Rewrite every file of ``package`` that carries directives into ``target_dir``.

    All files are rewritten in memory before anything is written, so a failing
    directive leaves no output behind for this package. Write errors propagate
    and the caller must discard whatever was already written.
    """
    wrappers = WrapperSet()
    outputs: list[tuple[SourceFile, bytes]] = []
    for source_file in package.files:
        if not source_file.directives:
            continue
        data = rewrite_file(package, source_file, ctx.registry, wrappers, ctx.runtime_path)
        outputs.append((source_file, data))

    wrapper_source = generate_wrappers(package, wrappers, ctx.files, ctx.runtime_path)

    target = Path(target_dir)
    if outputs or wrapper_source is not None:
        target.mkdir(parents=True, exist_ok=True)

    overlays: list[Overlay] = []
    for source_file, data in outputs:
        dst = target / Path(source_file.path).name
        dst.write_bytes(data)
        overlays.append(Overlay(original=source_file.path, rewritten=str(dst)))

    if wrapper_source is not None:
        wrapper_path = target / WRAPPERS_FILE_NAME
        wrapper_path.write_bytes(wrapper_source)
        overlays.append(Overlay(original=str(Path(package.dir) / WRAPPERS_FILE_NAME), rewritten=str(wrapper_path)))

    logger.info(
        "Rewrote package %s: %d file(s), %d wrapper(s)",
        package.import_path,
        len(outputs),
        len(wrappers),
    )
    return overlays


def package_output_dir(out_dir: str | Path, package: Package) -> Path:
    return Path(out_dir).joinpath(*[part for part in package.import_path.split("/") if part])


def rewrite_program(program: Program, out_dir: str | Path, runtime_path: str | None = None) -> list[Overlay]:
    ctx = RewriteContext(
        registry=program.registry,
        files=program.files,
        runtime_path=runtime_path or get_runtime_path(),
    )
    overlays: list[Overlay] = []
    for package in program.packages:
        overlays.extend(rewrite_package(package, package_output_dir(out_dir, package), ctx))
    return overlays


def write_overlay_file(overlays: list[Overlay], path: str | Path) -> Path:
    overlay_path = Path(path)
    overlay_path.parent.mkdir(parents=True, exist_ok=True)
    overlay_path.write_text(OverlayFile.from_overlays(overlays).model_dump_json(by_alias=True, indent=2), encoding="utf-8")
    logger.info("Wrote overlay for %d file(s) to %s", len(overlays), overlay_path)
    return overlay_path
