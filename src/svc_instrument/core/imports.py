"""Import liveness analysis for rewritten files.

Rewriting ``pkg.Func(...)`` into a call to a local wrapper can leave the
import of ``pkg`` unused, which the Go compiler rejects. These helpers decide
whether an import still has a qualified reference and locate its span.
"""

from collections.abc import Iterator, Mapping
from typing import NamedTuple

from svc_instrument.core.syntax import SyntaxNode, SyntaxTree

# Import aliases that bring no usable package name into scope.
_OPAQUE_ALIASES = frozenset({"_", "."})


class ImportSite(NamedTuple):
    spec: SyntaxNode
    decl: SyntaxNode
    group_size: int


def import_path(tree: SyntaxTree, spec: SyntaxNode) -> str:
    path_node = tree.child_by_field(spec, "path")
    if path_node is None:
        return ""
    return tree.text(path_node)[1:-1]


def import_alias(tree: SyntaxTree, spec: SyntaxNode) -> str | None:
    name_node = tree.child_by_field(spec, "name")
    return tree.text(name_node) if name_node is not None else None


def iter_imports(tree: SyntaxTree) -> Iterator[ImportSite]:
    for decl in tree.named_children(tree.root):
        if decl.type != "import_declaration":
            continue
        specs: list[SyntaxNode] = []
        for child in tree.named_children(decl):
            if child.type == "import_spec":
                specs.append(child)
            elif child.type == "import_spec_list":
                specs.extend(c for c in tree.named_children(child) if c.type == "import_spec")
        for spec in specs:
            yield ImportSite(spec, decl, len(specs))


def find_import(tree: SyntaxTree, path: str) -> ImportSite | None:
    for site in iter_imports(tree):
        if import_path(tree, site.spec) == path:
            return site
    return None


def uses_import(tree: SyntaxTree, name: str, path: str, exceptions: set[int] | frozenset[int] = frozenset()) -> bool:
    """Report whether the file still refers to the package imported from ``path``.

    ``name`` is the package's declared name, used unless the import renames it.
    Selector expressions listed in ``exceptions`` are ignored.
    """
    local_name = name
    site = find_import(tree, path)
    if site is not None:
        alias = import_alias(tree, site.spec)
        if alias in _OPAQUE_ALIASES:
            return True
        if alias is not None:
            local_name = alias

    for node in tree.walk():
        if node.type == "selector_expression":
            if node.id in exceptions:
                continue
            operand = tree.child_by_field(node, "operand")
            if operand is not None and operand.type == "identifier" and tree.text(operand) == local_name:
                return True
        elif node.type == "qualified_type":
            package = tree.child_by_field(node, "package")
            if package is not None and tree.text(package) == local_name:
                return True
    return False


def unused_import_spans(
    tree: SyntaxTree,
    candidates: Mapping[str, str],
    exceptions: set[int] | frozenset[int] = frozenset(),
) -> list[tuple[int, int]]:
    """Byte spans to delete for imports in ``candidates`` that are no longer used.

    ``candidates`` maps import paths to package names. A spec inside a group
    with other specs is removed on its own; a lone spec takes its whole
    declaration with it. Candidates without a matching import are skipped.
    """
    spans: list[tuple[int, int]] = []
    for path, name in candidates.items():
        if uses_import(tree, name, path, exceptions):
            continue
        site = find_import(tree, path)
        if site is None:
            continue
        target = site.spec if site.group_size > 1 else site.decl
        spans.append((target.start_byte, target.end_byte))
    return spans
