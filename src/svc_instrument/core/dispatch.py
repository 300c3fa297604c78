import json
import logging

from svc_instrument.core.directives import (
    DatabaseHandle,
    LogAnnotation,
    RemoteCall,
    RemoteCallDefinition,
    RewriteDirective,
    RpcTarget,
    SecretDeclaration,
)
from svc_instrument.core.edits import EditBuffer
from svc_instrument.core.errors import DirectiveMismatchError, UnhandledDirectiveError
from svc_instrument.core.imports import unused_import_spans
from svc_instrument.core.markers import format_marker, position_after, position_before
from svc_instrument.core.program import NodeRegistry, Package, SourceFile
from svc_instrument.core.runtime import RUNTIME_ALIAS, wrapper_name
from svc_instrument.core.syntax import SyntaxNode
from svc_instrument.core.wrappers import WrapperSet

logger = logging.getLogger(__name__)


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


class FileRewriter:
    """Applies the rewrite directives of one source file to an edit buffer."""

    def __init__(
        self,
        package: Package,
        source_file: SourceFile,
        registry: NodeRegistry,
        wrappers: WrapperSet,
        runtime_path: str,
    ) -> None:
        self.package = package
        self.file = source_file
        self.tree = source_file.tree
        self.registry = registry
        self.wrappers = wrappers
        self.runtime_path = runtime_path
        self.buffer = EditBuffer(source_file.contents, source_file.token_base)
        # import path -> package name of every package reached through a rewritten call
        self.rewritten_packages: dict[str, str] = {}
        # selector expressions replaced by wrapper calls; they no longer use their import
        self.use_exceptions: set[int] = set()
        self._runtime_imported = False

    def rewrite(self) -> bytes:
        stack = [self.tree.root]
        while stack:
            node = stack.pop()
            directive = self.file.directives.get(node.id)
            if directive is not None and not self._apply(node, directive):
                continue
            stack.extend(reversed(self.tree.children(node)))

        for start, end in unused_import_spans(self.tree, self.rewritten_packages, self.use_exceptions):
            logger.debug("Removing unused import at %d..%d in %s", start, end, self.file.path)
            self.buffer.delete(self._pos(start), self._pos(end))

        logger.debug("Rewrote %s with %d edits", self.file.path, len(self.buffer))
        return self.buffer.data()

    def _apply(self, node: SyntaxNode, directive: RewriteDirective) -> bool:
        """Record the edits for ``directive``; return whether to descend into ``node``."""
        match directive:
            case DatabaseHandle():
                self._rewrite_database_handle(node)
                return True
            case LogAnnotation():
                return False
            case RemoteCall(rpc=rpc):
                self._rewrite_remote_call(node, rpc)
                return True
            case RemoteCallDefinition():
                return True
            case SecretDeclaration():
                self._rewrite_secrets(node)
                return True
            case _:
                raise UnhandledDirectiveError(
                    f"Unhandled rewrite directive {directive!r} on {node.type} in {self.file.path}"
                )

    def _rewrite_database_handle(self, node: SyntaxNode) -> None:
        _, lparen = self._call_parts(node)
        payload = f"{_quote(self.package.service.name)}, ".encode() + format_marker(position_after(lparen))
        self.buffer.insert(self._pos(lparen.end_byte), payload)

    def _rewrite_remote_call(self, node: SyntaxNode, rpc: RpcTarget) -> None:
        func, lparen = self._call_parts(node)

        # Same-package calls are plain identifiers and never affect imports.
        if func.type == "selector_expression":
            self.use_exceptions.add(func.id)
            self.rewritten_packages[rpc.package_path] = rpc.package_name

        self.buffer.replace(self._pos(func.start_byte), self._pos(func.end_byte), wrapper_name(rpc).encode())

        call_tx = self.registry.lookup(self.file.key(node.id))
        rpc_tx = self.registry.lookup(rpc.definition)
        payload = f"{call_tx}, {rpc_tx}, ".encode() + format_marker(position_after(lparen))
        self.buffer.insert(self._pos(lparen.end_byte), payload)

        self.wrappers.add(rpc)

    def _rewrite_secrets(self, node: SyntaxNode) -> None:
        if node.type != "var_spec":
            raise DirectiveMismatchError(f"Secret declaration on {node.type} in {self.file.path}")
        type_node = self.tree.child_by_field(node, "type")
        if type_node is None or self.tree.child_by_field(node, "value") is not None:
            raise DirectiveMismatchError(
                f"Secret declaration in {self.file.path} must have a type and no initializer: "
                f"{self.tree.text(node)!r}"
            )

        lines = ["{\n"]
        for secret in self.package.secrets:
            lines.append(f"\t{secret}: {RUNTIME_ALIAS}.LoadSecret({_quote(secret)}),\n")
        lines.append("}")
        composite = "".join(lines).encode() + format_marker(position_after(node))

        self.buffer.insert(self._pos(type_node.start_byte), b"= ")
        self.buffer.insert(self._pos(node.end_byte), composite)
        self._inject_runtime_import()

    def _inject_runtime_import(self) -> None:
        if self._runtime_imported:
            return
        decl = self.tree.declarations()[0]
        payload = f"import {RUNTIME_ALIAS} {_quote(self.runtime_path)}\n".encode() + format_marker(
            position_before(decl)
        )
        self.buffer.insert(self._pos(decl.start_byte), payload)
        self._runtime_imported = True

    def _call_parts(self, node: SyntaxNode) -> tuple[SyntaxNode, SyntaxNode]:
        """Return the function expression and opening parenthesis of a call."""
        if node.type != "call_expression":
            raise DirectiveMismatchError(f"Expected call_expression, got {node.type} in {self.file.path}")
        func = self.tree.child_by_field(node, "function")
        arguments = self.tree.child_by_field(node, "arguments")
        if func is None or arguments is None or not arguments.children:
            raise DirectiveMismatchError(f"Malformed call expression in {self.file.path}: {self.tree.text(node)!r}")
        lparen = self.tree.node(arguments.children[0])
        if lparen.type != "(":
            raise DirectiveMismatchError(f"Call without argument list in {self.file.path}: {self.tree.text(node)!r}")
        return func, lparen

    def _pos(self, offset: int) -> int:
        return self.file.token_base + offset


def rewrite_file(
    package: Package,
    source_file: SourceFile,
    registry: NodeRegistry,
    wrappers: WrapperSet,
    runtime_path: str,
) -> bytes:
    return FileRewriter(package, source_file, registry, wrappers, runtime_path).rewrite()
