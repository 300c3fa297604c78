"""Position markers embedded in rewritten source.

A marker has the form ``/*line :L:C*/`` with 1-based line and column. It
names the original position of the byte that immediately follows it, which
is how the Go toolchain interprets line directives.
"""

import re

from svc_instrument.core.syntax import SyntaxNode
from svc_instrument.models import Marker, Position

_MARKER_RE = re.compile(rb"/\*line :(\d+):(\d+)\*/")


def format_marker(position: Position) -> bytes:
    return f"/*line :{position.line}:{position.column}*/".encode()


def position_before(node: SyntaxNode) -> Position:
    """Original position of the first byte of ``node``."""
    return Position(line=node.start_point[0] + 1, column=node.start_point[1] + 1)


def position_after(node: SyntaxNode) -> Position:
    """Original position of the byte right after ``node``."""
    return Position(line=node.end_point[0] + 1, column=node.end_point[1] + 1)


def parse_markers(source: bytes) -> list[Marker]:
    """Return every marker in ``source`` with the offset of the byte it annotates."""
    return [
        Marker(
            offset=match.end(),
            position=Position(line=int(match.group(1)), column=int(match.group(2))),
        )
        for match in _MARKER_RE.finditer(source)
    ]
