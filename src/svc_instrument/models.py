from pydantic import BaseModel, ConfigDict, Field


class Position(BaseModel):
    model_config = ConfigDict(frozen=True)

    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


class Marker(BaseModel):
    offset: int
    position: Position


class Overlay(BaseModel):
    original: str
    rewritten: str


class OverlayFile(BaseModel):
    """The ``-overlay`` file format understood by ``go build``."""

    model_config = ConfigDict(populate_by_name=True)

    replace: dict[str, str] = Field(default_factory=dict, alias="Replace")

    @classmethod
    def from_overlays(cls, overlays: list[Overlay]) -> "OverlayFile":
        return cls(replace={o.original: o.rewritten for o in overlays})


# ---------------------------------------------------------------------------
# Rewrite manifest
# ---------------------------------------------------------------------------


class NodeSpan(BaseModel):
    start_byte: int
    end_byte: int
    type: str | None = None


class FileNodeSpan(NodeSpan):
    path: str


class DirectiveSpec(BaseModel):
    kind: str
    node: NodeSpan
    rpc: str | None = None


class FileManifest(BaseModel):
    path: str
    token_base: int = 0
    directives: list[DirectiveSpec] = Field(default_factory=list)


class PackageManifest(BaseModel):
    name: str
    import_path: str
    dir: str
    service: str
    secrets: list[str] = Field(default_factory=list)
    files: list[FileManifest] = Field(default_factory=list)


class RpcSpec(BaseModel):
    service: str
    name: str
    package: str
    definition: FileNodeSpan


class TransactionSpec(FileNodeSpan):
    id: int


class Manifest(BaseModel):
    packages: list[PackageManifest]
    rpcs: list[RpcSpec] = Field(default_factory=list)
    transactions: list[TransactionSpec] = Field(default_factory=list)
