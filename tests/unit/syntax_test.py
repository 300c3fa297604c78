"""Unit tests for the syntax arena built from tree-sitter."""

from pathlib import Path

import pytest

from svc_instrument.core.errors import UnknownNodeError
from svc_instrument.core.syntax import parse_file, parse_source

SOURCE = b"""package billing

import "fmt"

func run() {
\tfmt.Println("hi")
}
"""


class TestParseSource:
    def test_root_is_source_file_with_id_zero(self) -> None:
        tree = parse_source(SOURCE)
        assert tree.root.type == "source_file"
        assert tree.root.id == 0
        assert tree.root.parent is None

    def test_ids_follow_document_order(self) -> None:
        tree = parse_source(SOURCE)
        ids = [node.id for node in tree.walk()]
        assert ids == list(range(len(tree)))

    def test_ids_are_stable_across_parses(self) -> None:
        first = [(n.id, n.type, n.start_byte) for n in parse_source(SOURCE).walk()]
        second = [(n.id, n.type, n.start_byte) for n in parse_source(SOURCE).walk()]
        assert first == second

    def test_children_point_back_to_parent(self) -> None:
        tree = parse_source(SOURCE)
        for node in tree.walk():
            for child in tree.children(node):
                assert child.parent == node.id

    def test_anonymous_tokens_are_kept(self) -> None:
        tree = parse_source(SOURCE)
        assert any(node.type == "(" and not node.is_named for node in tree.walk())

    def test_child_by_field(self) -> None:
        tree = parse_source(SOURCE)
        call = next(n for n in tree.walk() if n.type == "call_expression")
        func = tree.child_by_field(call, "function")
        args = tree.child_by_field(call, "arguments")
        assert func is not None and tree.text(func) == "fmt.Println"
        assert args is not None and tree.text(args) == '("hi")'
        assert tree.child_by_field(call, "missing") is None

    def test_points_are_zero_based(self) -> None:
        tree = parse_source(SOURCE)
        call = next(n for n in tree.walk() if n.type == "call_expression")
        assert call.start_point == (5, 1)


class TestSyntaxTreeLookup:
    def test_find_by_span_and_type(self) -> None:
        tree = parse_source(SOURCE)
        start = SOURCE.index(b"fmt.Println")
        end = SOURCE.index(b")\n}") + 1
        node = tree.find(start, end, "call_expression")
        assert tree.text(node) == 'fmt.Println("hi")'

    def test_find_without_type_returns_outermost(self) -> None:
        tree = parse_source(SOURCE)
        start = SOURCE.index(b"fmt.Println")
        end = SOURCE.index(b")\n}") + 1
        outer = tree.find(start, end)
        call = tree.find(start, end, "call_expression")
        assert outer.id <= call.id
        assert outer.type != "call_expression" or outer.id == call.id

    def test_find_missing_span_raises(self) -> None:
        tree = parse_source(SOURCE)
        with pytest.raises(UnknownNodeError):
            tree.find(1, 3, "call_expression")

    def test_node_with_unknown_id_raises(self) -> None:
        tree = parse_source(SOURCE)
        with pytest.raises(UnknownNodeError):
            tree.node(len(tree))

    def test_declarations_skip_package_clause(self) -> None:
        tree = parse_source(SOURCE)
        assert [d.type for d in tree.declarations()] == ["import_declaration", "function_declaration"]


class TestParseFile:
    def test_parses_file_from_disk(self, tmp_path: Path) -> None:
        go_file = tmp_path / "main.go"
        go_file.write_bytes(SOURCE)
        tree = parse_file(go_file)
        assert tree.source == SOURCE

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="File not found"):
            parse_file(tmp_path / "missing.go")
