from dataclasses import dataclass

from svc_instrument.core.errors import OverlappingEditError


@dataclass(frozen=True)
class Edit:
    start: int
    end: int
    data: bytes
    seq: int

    @property
    def is_insert(self) -> bool:
        return self.start == self.end


class EditBuffer:
    """Records edits against an immutable source buffer.

    Positions are absolute: ``base`` is subtracted before an edit is stored,
    so callers can pass token positions from a file-scoped position space.
    Edits may be recorded in any order. They are sorted once, when the final
    buffer is produced, and overlapping edits are rejected at that point.
    """

    def __init__(self, original: bytes, base: int = 0) -> None:
        self._original = original
        self._base = base
        self._edits: list[Edit] = []

    def __len__(self) -> int:
        return len(self._edits)

    def insert(self, pos: int, data: bytes) -> None:
        offset = self._offset(pos)
        self._record(offset, offset, data)

    def replace(self, start: int, end: int, data: bytes) -> None:
        self._record(self._offset(start), self._offset(end), data)

    def delete(self, start: int, end: int) -> None:
        self._record(self._offset(start), self._offset(end), b"")

    def data(self) -> bytes:
        """Materialize the original buffer with every recorded edit applied."""
        # inserts at an offset go before a range starting at that offset
        ordered = sorted(self._edits, key=lambda e: (e.start, not e.is_insert, e.seq))
        pieces: list[bytes] = []
        cursor = 0
        previous: Edit | None = None
        for edit in ordered:
            if edit.start < cursor:
                assert previous is not None
                raise OverlappingEditError(
                    f"Edit at {edit.start}..{edit.end} overlaps edit at {previous.start}..{previous.end}"
                )
            pieces.append(self._original[cursor : edit.start])
            pieces.append(edit.data)
            cursor = edit.end
            if not edit.is_insert:
                previous = edit
        pieces.append(self._original[cursor:])
        return b"".join(pieces)

    def _offset(self, pos: int) -> int:
        offset = pos - self._base
        if not 0 <= offset <= len(self._original):
            raise ValueError(f"Position {pos} is outside the buffer (base {self._base}, size {len(self._original)})")
        return offset

    def _record(self, start: int, end: int, data: bytes) -> None:
        if start > end:
            raise ValueError(f"Edit start {start} is after its end {end}")
        self._edits.append(Edit(start=start, end=end, data=data, seq=len(self._edits)))
