"""Loading of rewrite manifests.

A manifest is the JSON hand-off from the classification pass. It addresses
syntax nodes by byte span (and optionally node type) because node ids only
exist once the files are parsed here.
"""

import logging
from pathlib import Path

from pydantic import ValidationError

from svc_instrument.core.directives import (
    DatabaseHandle,
    LogAnnotation,
    NodeKey,
    RemoteCall,
    RemoteCallDefinition,
    RewriteDirective,
    RpcTarget,
    SecretDeclaration,
)
from svc_instrument.core.errors import ManifestError, UnhandledDirectiveError, UnknownNodeError
from svc_instrument.core.program import NodeRegistry, Package, Program, Service, SourceFile
from svc_instrument.core.syntax import SyntaxNode, SyntaxTree, parse_file
from svc_instrument.models import DirectiveSpec, Manifest, NodeSpan

logger = logging.getLogger(__name__)


class _TreeCache:
    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir
        self.trees: dict[str, SyntaxTree] = {}

    def resolve(self, path: str) -> str:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.base_dir / candidate
        return str(candidate)

    def tree(self, path: str) -> SyntaxTree:
        resolved = self.resolve(path)
        if resolved not in self.trees:
            try:
                self.trees[resolved] = parse_file(resolved)
            except FileNotFoundError as exc:
                raise ManifestError(str(exc)) from exc
        return self.trees[resolved]


def _resolve_node(tree: SyntaxTree, span: NodeSpan, path: str) -> SyntaxNode:
    try:
        return tree.find(span.start_byte, span.end_byte, span.type)
    except UnknownNodeError as exc:
        raise ManifestError(f"{path}: {exc}") from exc


def _package_clause_name(tree: SyntaxTree) -> str:
    for child in tree.named_children(tree.root):
        if child.type == "package_clause":
            name = tree.named_children(child)
            if name:
                return tree.text(name[0])
    raise ManifestError("Source file has no package clause")


def to_directive(spec: DirectiveSpec, rpcs: dict[str, RpcTarget]) -> RewriteDirective:
    match spec.kind:
        case "database_handle":
            return DatabaseHandle()
        case "log_annotation":
            return LogAnnotation()
        case "secret_declaration":
            return SecretDeclaration()
        case "remote_call" | "remote_call_definition":
            if spec.rpc is None or spec.rpc not in rpcs:
                raise ManifestError(f"Directive {spec.kind} references unknown RPC {spec.rpc!r}")
            rpc = rpcs[spec.rpc]
            return RemoteCall(rpc) if spec.kind == "remote_call" else RemoteCallDefinition(rpc)
        case _:
            raise UnhandledDirectiveError(f"Unhandled rewrite directive kind {spec.kind!r}")


def build_program(manifest: Manifest, base_dir: str | Path) -> Program:
    cache = _TreeCache(Path(base_dir))
    package_names = {p.import_path: p.name for p in manifest.packages}

    rpcs: dict[str, RpcTarget] = {}
    for spec in manifest.rpcs:
        path = cache.resolve(spec.definition.path)
        tree = cache.tree(spec.definition.path)
        node = _resolve_node(tree, spec.definition, path)
        rpcs[f"{spec.service}.{spec.name}"] = RpcTarget(
            service=spec.service,
            name=spec.name,
            definition=NodeKey(path, node.id),
            package_path=spec.package,
            package_name=package_names.get(spec.package) or _package_clause_name(tree),
        )

    packages: list[Package] = []
    for package_spec in manifest.packages:
        files: list[SourceFile] = []
        for file_spec in package_spec.files:
            path = cache.resolve(file_spec.path)
            tree = cache.tree(file_spec.path)
            directives: dict[int, RewriteDirective] = {}
            for directive_spec in file_spec.directives:
                node = _resolve_node(tree, directive_spec.node, path)
                if node.id in directives:
                    raise ManifestError(f"{path}: more than one directive for {node.type} at {node.start_byte}")
                directives[node.id] = to_directive(directive_spec, rpcs)
            files.append(
                SourceFile(
                    path=path,
                    contents=tree.source,
                    tree=tree,
                    directives=directives,
                    token_base=file_spec.token_base,
                )
            )
        packages.append(
            Package(
                name=package_spec.name,
                import_path=package_spec.import_path,
                dir=cache.resolve(package_spec.dir),
                service=Service(package_spec.service),
                files=tuple(files),
                secrets=tuple(package_spec.secrets),
            )
        )

    ids: dict[NodeKey, int] = {}
    for tx in manifest.transactions:
        path = cache.resolve(tx.path)
        node = _resolve_node(cache.tree(tx.path), tx, path)
        ids[NodeKey(path, node.id)] = tx.id

    package_paths = {f.path for p in packages for f in p.files}
    extra_files = [
        SourceFile(path=path, contents=tree.source, tree=tree)
        for path, tree in cache.trees.items()
        if path not in package_paths
    ]
    logger.debug(
        "Loaded manifest: %d package(s), %d RPC(s), %d transaction id(s)",
        len(packages),
        len(rpcs),
        len(ids),
    )
    return Program.build(packages, NodeRegistry(ids), extra_files)


def load_manifest(path: str | Path) -> Program:
    manifest_path = Path(path)
    try:
        manifest = Manifest.model_validate_json(manifest_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ManifestError(f"Manifest not found: {path}") from None
    except ValidationError as exc:
        raise ManifestError(f"Invalid manifest {path}: {exc}") from exc
    return build_program(manifest, manifest_path.parent)
