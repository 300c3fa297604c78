from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from tree_sitter import Node
from tree_sitter_language_pack import get_parser

from svc_instrument.core.errors import UnknownNodeError

LANGUAGE = "go"


@dataclass(frozen=True)
class SyntaxNode:
    id: int
    type: str
    is_named: bool
    start_byte: int
    end_byte: int
    start_point: tuple[int, int]
    end_point: tuple[int, int]
    parent: int | None
    children: tuple[int, ...]
    fields: tuple[str | None, ...]


class SyntaxTree:
    """Flattened tree-sitter parse tree.

    Nodes live in an arena indexed by their preorder position, so ids are stable
    for a given source buffer and safe to use as keys across passes.
    """

    def __init__(self, source: bytes, nodes: list[SyntaxNode]) -> None:
        self.source = source
        self._nodes = nodes

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def root(self) -> SyntaxNode:
        return self._nodes[0]

    def node(self, node_id: int) -> SyntaxNode:
        if not 0 <= node_id < len(self._nodes):
            raise UnknownNodeError(f"No syntax node with id {node_id}")
        return self._nodes[node_id]

    def children(self, node: SyntaxNode) -> list[SyntaxNode]:
        return [self._nodes[i] for i in node.children]

    def named_children(self, node: SyntaxNode) -> list[SyntaxNode]:
        return [child for child in self.children(node) if child.is_named]

    def child_by_field(self, node: SyntaxNode, field: str) -> SyntaxNode | None:
        for child_id, name in zip(node.children, node.fields, strict=True):
            if name == field:
                return self._nodes[child_id]
        return None

    def children_by_field(self, node: SyntaxNode, field: str) -> list[SyntaxNode]:
        return [self._nodes[i] for i, name in zip(node.children, node.fields, strict=True) if name == field]

    def text(self, node: SyntaxNode) -> str:
        return self.source[node.start_byte : node.end_byte].decode("utf-8")

    def walk(self, node: SyntaxNode | None = None) -> Iterator[SyntaxNode]:
        """Yield ``node`` and all of its descendants in document order."""
        start = self.root if node is None else node
        stack = [start]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(self._nodes[i] for i in reversed(current.children))

    def find(self, start_byte: int, end_byte: int, node_type: str | None = None) -> SyntaxNode:
        """Return the outermost node covering exactly ``[start_byte, end_byte)``."""
        for candidate in self.walk():
            if candidate.start_byte != start_byte or candidate.end_byte != end_byte:
                continue
            if node_type is None or candidate.type == node_type:
                return candidate
        kind = node_type or "node"
        raise UnknownNodeError(f"No {kind} spans bytes {start_byte}..{end_byte}")

    def declarations(self) -> list[SyntaxNode]:
        """Top-level declarations of a source file, in document order."""
        return [
            child
            for child in self.named_children(self.root)
            if child.type not in ("package_clause", "comment", "ERROR")
        ]


def parse_source(source_bytes: bytes) -> SyntaxTree:
    parser = get_parser(LANGUAGE)
    tree = parser.parse(source_bytes)

    nodes: list[SyntaxNode] = []

    def visit(ts_node: Node, parent: int | None) -> int:
        node_id = len(nodes)
        nodes.append(None)  # type: ignore[arg-type]  # placeholder keeps preorder ids
        child_ids: list[int] = []
        fields: list[str | None] = []
        for index, child in enumerate(ts_node.children):
            fields.append(ts_node.field_name_for_child(index))
            child_ids.append(visit(child, node_id))
        nodes[node_id] = SyntaxNode(
            id=node_id,
            type=ts_node.type,
            is_named=ts_node.is_named,
            start_byte=ts_node.start_byte,
            end_byte=ts_node.end_byte,
            start_point=(ts_node.start_point[0], ts_node.start_point[1]),
            end_point=(ts_node.end_point[0], ts_node.end_point[1]),
            parent=parent,
            children=tuple(child_ids),
            fields=tuple(fields),
        )
        return node_id

    visit(tree.root_node, None)
    return SyntaxTree(source_bytes, nodes)


def parse_file(path: str | Path) -> SyntaxTree:
    file_path = Path(path)
    try:
        source_bytes = file_path.read_bytes()
    except FileNotFoundError:
        raise FileNotFoundError(f"File not found: {path}") from None
    return parse_source(source_bytes)
