"""Shared fixtures and helpers for tests."""

from collections.abc import Callable
from pathlib import Path

import pytest
from tree_sitter import Parser
from tree_sitter_language_pack import get_parser

from svc_instrument.core.directives import NodeKey, RewriteDirective, RpcTarget
from svc_instrument.core.program import NodeRegistry, Package, Service, SourceFile
from svc_instrument.core.syntax import SyntaxNode, SyntaxTree, parse_source

_REPO_ROOT = Path(__file__).parent.parent


# ---------------------------------------------------------------------------
# Auto-marker: tag tests as "unit" or "integration" based on directory
# ---------------------------------------------------------------------------


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        test_path = Path(str(item.fspath))
        rel = test_path.relative_to(_REPO_ROOT / "tests")
        parts = rel.parts
        if parts and parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# ---------------------------------------------------------------------------
# Shared unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def go_parser() -> Parser:
    """Return a tree-sitter parser for Go."""
    return get_parser("go")


def find_node(tree: SyntaxTree, node_type: str, text: str) -> SyntaxNode:
    """Return the first node of ``node_type`` whose source text is ``text``."""
    for node in tree.walk():
        if node.type == node_type and tree.text(node) == text:
            return node
    raise AssertionError(f"No {node_type} with text {text!r}")


@pytest.fixture
def find() -> Callable[[SyntaxTree, str, str], SyntaxNode]:
    return find_node


@pytest.fixture
def make_file() -> Callable[..., SourceFile]:
    """Build a parsed SourceFile; ``directives`` maps (node type, text) to a directive."""

    def _make(
        source: str,
        path: str = "app/billing/billing.go",
        directives: dict[tuple[str, str], RewriteDirective] | None = None,
        token_base: int = 0,
    ) -> SourceFile:
        tree = parse_source(source.encode("utf-8"))
        resolved = {find_node(tree, t, text).id: d for (t, text), d in (directives or {}).items()}
        return SourceFile(path=path, contents=tree.source, tree=tree, directives=resolved, token_base=token_base)

    return _make


@pytest.fixture
def make_package() -> Callable[..., Package]:
    def _make(
        files: list[SourceFile] | None = None,
        name: str = "billing",
        import_path: str = "example.com/app/billing",
        service: str = "billing",
        secrets: tuple[str, ...] = (),
    ) -> Package:
        return Package(
            name=name,
            import_path=import_path,
            dir="app/billing",
            service=Service(service),
            files=tuple(files or ()),
            secrets=secrets,
        )

    return _make


USERS_SOURCE = """package users

import (
	"context"
)

type Params struct {
	ID int
}

type User struct {
	Name string
}

func Get(ctx context.Context, p *Params) (*User, error) {
	return &User{}, nil
}

func Ping(ctx context.Context) error {
	return nil
}

func Notify(ctx context.Context, ids ...int) {
}
"""


@pytest.fixture
def users_file() -> SourceFile:
    """The definition file of the ``users`` service."""
    tree = parse_source(USERS_SOURCE.encode("utf-8"))
    return SourceFile(path="app/users/users.go", contents=tree.source, tree=tree)


@pytest.fixture
def rpc_factory(users_file: SourceFile) -> Callable[[str], RpcTarget]:
    """Build an RpcTarget for a function defined in ``users_file``."""

    def _make(name: str) -> RpcTarget:
        tree = users_file.tree
        for node in tree.walk():
            if node.type != "function_declaration":
                continue
            name_node = tree.child_by_field(node, "name")
            if name_node is not None and tree.text(name_node) == name:
                return RpcTarget(
                    service="users",
                    name=name,
                    definition=NodeKey(users_file.path, node.id),
                    package_path="example.com/app/users",
                    package_name="users",
                )
        raise AssertionError(f"No function {name} in users.go")

    return _make


@pytest.fixture
def registry_for() -> Callable[..., NodeRegistry]:
    """Registry assigning ids 100, 101, ... to call sites and 900, 901, ... to definitions."""

    def _make(call_sites: list[NodeKey], definitions: list[NodeKey]) -> NodeRegistry:
        ids: dict[NodeKey, int] = {}
        for i, key in enumerate(call_sites):
            ids[key] = 100 + i
        for i, key in enumerate(definitions):
            ids[key] = 900 + i
        return NodeRegistry(ids)

    return _make
