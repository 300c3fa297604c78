from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from svc_instrument.core.directives import NodeKey, RewriteDirective
from svc_instrument.core.errors import UnknownNodeError
from svc_instrument.core.syntax import SyntaxTree


@dataclass(frozen=True)
class Service:
    name: str


@dataclass(frozen=True)
class SourceFile:
    path: str
    contents: bytes
    tree: SyntaxTree
    directives: Mapping[int, RewriteDirective] = field(default_factory=dict)
    token_base: int = 0

    def key(self, node_id: int) -> NodeKey:
        return NodeKey(self.path, node_id)


@dataclass(frozen=True)
class Package:
    name: str
    import_path: str
    dir: str
    service: Service
    files: tuple[SourceFile, ...] = ()
    secrets: tuple[str, ...] = ()


class NodeRegistry:
    """Read-only mapping from syntax nodes to their transaction ids."""

    def __init__(self, ids: Mapping[NodeKey, int] | None = None) -> None:
        self._ids: Mapping[NodeKey, int] = MappingProxyType(dict(ids or {}))

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, key: object) -> bool:
        return key in self._ids

    def lookup(self, key: NodeKey) -> int:
        try:
            return self._ids[key]
        except KeyError:
            raise UnknownNodeError(f"No transaction id registered for node {key.node} in {key.path}") from None


@dataclass(frozen=True)
class Program:
    packages: tuple[Package, ...]
    registry: NodeRegistry
    files: Mapping[str, SourceFile]

    @classmethod
    def build(
        cls,
        packages: list[Package],
        registry: NodeRegistry,
        extra_files: list[SourceFile] | None = None,
    ) -> "Program":
        files: dict[str, SourceFile] = {}
        for source_file in extra_files or []:
            files[source_file.path] = source_file
        for package in packages:
            for source_file in package.files:
                files[source_file.path] = source_file
        return cls(packages=tuple(packages), registry=registry, files=MappingProxyType(files))

    def file(self, path: str | Path) -> SourceFile:
        try:
            return self.files[str(path)]
        except KeyError:
            raise UnknownNodeError(f"Source file {path} is not part of the program") from None
