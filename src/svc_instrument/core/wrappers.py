"""Generation of the per-package RPC wrapper file.

Every remote call site is redirected to a wrapper function named after its
target. The wrapper receives the call site's and the definition's
transaction ids, reports them to the runtime and forwards to the real
function, returning its results unchanged.
"""

import re
import threading
from collections.abc import Iterator, Mapping, Sequence

from svc_instrument.core.directives import RpcTarget
from svc_instrument.core.edits import EditBuffer
from svc_instrument.core.errors import DirectiveMismatchError
from svc_instrument.core.imports import import_alias, import_path, iter_imports
from svc_instrument.core.program import Package, SourceFile
from svc_instrument.core.runtime import RUNTIME_ALIAS, wrapper_name
from svc_instrument.core.syntax import SyntaxNode, SyntaxTree

_PREDECLARED_TYPES = frozenset(
    {
        "any",
        "bool",
        "byte",
        "comparable",
        "complex64",
        "complex128",
        "error",
        "float32",
        "float64",
        "int",
        "int8",
        "int16",
        "int32",
        "int64",
        "rune",
        "string",
        "uint",
        "uint8",
        "uint16",
        "uint32",
        "uint64",
        "uintptr",
    }
)

_MAJOR_VERSION_RE = re.compile(r"^v\d+$")

GENERATED_HEADER = "// Code generated by svc-instrument. DO NOT EDIT.\n"


class WrapperSet:
    """Insertion-ordered set of RPC targets, deduplicated by service and procedure."""

    def __init__(self) -> None:
        self._targets: dict[tuple[str, str], RpcTarget] = {}
        self._lock = threading.Lock()

    def add(self, rpc: RpcTarget) -> bool:
        """Add ``rpc`` unless a target with the same key is present. Return whether it was added."""
        with self._lock:
            if rpc.key in self._targets:
                return False
            self._targets[rpc.key] = rpc
            return True

    def __contains__(self, rpc: object) -> bool:
        return isinstance(rpc, RpcTarget) and rpc.key in self._targets

    def __iter__(self) -> Iterator[RpcTarget]:
        return iter(list(self._targets.values()))

    def __len__(self) -> int:
        return len(self._targets)


def default_import_name(path: str) -> str:
    """Guess the package name Go binds for an unaliased import of ``path``."""
    parts = [p for p in path.split("/") if p]
    if len(parts) > 1 and _MAJOR_VERSION_RE.match(parts[-1]):
        return parts[-2]
    return parts[-1] if parts else path


class _Param:
    def __init__(self, name: str, type_text: str, variadic: bool = False) -> None:
        self.name = name
        self.type_text = type_text
        self.variadic = variadic

    def declaration(self) -> str:
        return f"{self.name} ...{self.type_text}" if self.variadic else f"{self.name} {self.type_text}"

    def argument(self) -> str:
        return f"{self.name}..." if self.variadic else self.name


class _WrapperWriter:
    def __init__(self, package: Package, files: Mapping[str, SourceFile], runtime_path: str) -> None:
        self.package = package
        self.files = files
        # local name -> import path
        self.imports: dict[str, str] = {RUNTIME_ALIAS: runtime_path}
        self.functions: list[str] = []
        # wrapper name -> (service, procedure) it was generated for
        self.names: dict[str, tuple[str, str]] = {}

    def add(self, rpc: RpcTarget) -> None:
        source_file = self.files.get(rpc.definition.path)
        if source_file is None:
            raise DirectiveMismatchError(f"Definition file {rpc.definition.path} of {rpc.service}.{rpc.name} is unknown")
        tree = source_file.tree
        func = tree.node(rpc.definition.node)
        if func.type != "function_declaration":
            raise DirectiveMismatchError(f"Definition of {rpc.service}.{rpc.name} is a {func.type}, not a function")

        name = wrapper_name(rpc)
        owner = self.names.get(name)
        if owner == rpc.key:
            return
        if owner is not None:
            raise DirectiveMismatchError(
                f"Wrapper name {name} is shared by {owner[0]}.{owner[1]} and {rpc.service}.{rpc.name}"
            )
        self.names[name] = rpc.key

        qualifier = rpc.package_name if rpc.package_path != self.package.import_path else None
        if qualifier is not None:
            self._require_import(qualifier, rpc.package_path)
        def_imports = self._file_imports(tree)

        params = self._params(tree, tree.child_by_field(func, "parameters"), qualifier, def_imports)
        results = self._results(tree, tree.child_by_field(func, "result"), qualifier, def_imports)

        signature = ", ".join(["callTxID, defTxID uint32", *(p.declaration() for p in params)])
        target = f"{qualifier}.{rpc.name}" if qualifier else rpc.name
        call = f"{target}({', '.join(p.argument() for p in params)})"
        body = f"\treturn {call}\n" if results else f"\t{call}\n"
        self.functions.append(
            f"func {name}({signature}){results} {{\n"
            f"\t{RUNTIME_ALIAS}.TraceCall(callTxID, defTxID)\n"
            f"{body}"
            "}\n"
        )

    def render(self) -> bytes:
        lines = [GENERATED_HEADER, "\n", f"package {self.package.name}\n", "\n", "import (\n"]
        lines.append(f'\t{RUNTIME_ALIAS} "{self.imports[RUNTIME_ALIAS]}"\n')
        others = sorted((path, name) for name, path in self.imports.items() if name != RUNTIME_ALIAS)
        for path, name in others:
            if default_import_name(path) == name:
                lines.append(f'\t"{path}"\n')
            else:
                lines.append(f'\t{name} "{path}"\n')
        lines.append(")\n")
        for function in self.functions:
            lines.append("\n")
            lines.append(function)
        return "".join(lines).encode()

    def _require_import(self, name: str, path: str) -> None:
        existing = self.imports.get(name)
        if existing is not None and existing != path:
            raise DirectiveMismatchError(f"Wrapper imports {name!r} from both {existing} and {path}")
        self.imports[name] = path

    def _file_imports(self, tree: SyntaxTree) -> dict[str, str]:
        result: dict[str, str] = {}
        for site in iter_imports(tree):
            path = import_path(tree, site.spec)
            alias = import_alias(tree, site.spec)
            result[alias or default_import_name(path)] = path
        return result

    def _params(
        self,
        tree: SyntaxTree,
        param_list: SyntaxNode | None,
        qualifier: str | None,
        def_imports: dict[str, str],
    ) -> list[_Param]:
        params: list[_Param] = []
        if param_list is None:
            return params
        for decl in tree.named_children(param_list):
            type_node = tree.child_by_field(decl, "type")
            if type_node is None:
                continue
            type_text = self._render_type(tree, type_node, qualifier, def_imports)
            if decl.type == "variadic_parameter_declaration":
                params.append(_Param(f"p{len(params)}", type_text, variadic=True))
                continue
            for _ in range(max(1, len(tree.children_by_field(decl, "name")))):
                params.append(_Param(f"p{len(params)}", type_text))
        return params

    def _results(
        self,
        tree: SyntaxTree,
        result: SyntaxNode | None,
        qualifier: str | None,
        def_imports: dict[str, str],
    ) -> str:
        if result is None:
            return ""
        if result.type != "parameter_list":
            return " " + self._render_type(tree, result, qualifier, def_imports)
        types = [p.type_text for p in self._params(tree, result, qualifier, def_imports)]
        return f" ({', '.join(types)})" if types else ""

    def _render_type(
        self,
        tree: SyntaxTree,
        type_node: SyntaxNode,
        qualifier: str | None,
        def_imports: dict[str, str],
    ) -> str:
        """Render a type from the definition file so it resolves inside the wrapper file."""
        buffer = EditBuffer(tree.source[type_node.start_byte : type_node.end_byte], base=type_node.start_byte)
        for node in tree.walk(type_node):
            if node.type == "qualified_type":
                package = tree.child_by_field(node, "package")
                assert package is not None
                name = tree.text(package)
                if name not in def_imports:
                    raise DirectiveMismatchError(f"Type {tree.text(node)} refers to a package that is not imported")
                self._require_import(name, def_imports[name])
            elif node.type == "type_identifier" and qualifier is not None:
                parent = tree.node(node.parent) if node.parent is not None else None
                if parent is not None and parent.type == "qualified_type":
                    continue
                if tree.text(node) in _PREDECLARED_TYPES:
                    continue
                buffer.insert(node.start_byte, f"{qualifier}.".encode())
        return buffer.data().decode("utf-8")


def generate_wrappers(
    package: Package,
    targets: Sequence[RpcTarget] | WrapperSet,
    files: Mapping[str, SourceFile],
    runtime_path: str,
) -> bytes | None:
    """Return the Go source of the wrapper file, or ``None`` when there are no targets."""
    targets = list(targets)
    if not targets:
        return None
    writer = _WrapperWriter(package, files, runtime_path)
    for rpc in targets:
        writer.add(rpc)
    return writer.render()
