from dataclasses import dataclass
from typing import NamedTuple


class NodeKey(NamedTuple):
    path: str
    node: int


@dataclass(frozen=True)
class RpcTarget:
    service: str
    name: str
    definition: NodeKey
    package_path: str
    package_name: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.service, self.name)


@dataclass(frozen=True)
class DatabaseHandle:
    pass


@dataclass(frozen=True)
class LogAnnotation:
    pass


@dataclass(frozen=True)
class RemoteCall:
    rpc: RpcTarget


@dataclass(frozen=True)
class RemoteCallDefinition:
    rpc: RpcTarget


@dataclass(frozen=True)
class SecretDeclaration:
    pass


RewriteDirective = DatabaseHandle | LogAnnotation | RemoteCall | RemoteCallDefinition | SecretDeclaration
