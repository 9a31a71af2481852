from __future__ import annotations

from dataclasses import dataclass

from tunestream.errors import UnsatisfiableRange


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int
    total: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total}"

    @property
    def header(self) -> str:
        """The Range header to send upstream for exactly this window."""
        return f"bytes={self.start}-{self.end}"


@dataclass(frozen=True)
class RangeRequest:
    start: int
    end: int | None

    def resolve(self, total: int) -> ByteRange:
        """Resolve against a resource of `total` bytes, clamping the end to the last byte."""
        if self.start >= total:
            raise UnsatisfiableRange(total)
        end = total - 1 if self.end is None else min(self.end, total - 1)
        if self.start > end:
            raise UnsatisfiableRange(total)
        return ByteRange(start=self.start, end=end, total=total)


def _parse_int(value: str) -> int | None:
    value = value.strip()
    # int() accepts "+5", " 5" and "5_000", none of which are valid here
    if not value.isascii() or not value.isdigit():
        return None
    return int(value)


def parse_range_header(value: str | None) -> RangeRequest | None:
    """Parse `bytes=<start>-[<end>]`.

    Anything that does not fit the grammar returns None and is served as a
    request for the whole resource. Suffix ranges (`bytes=-500`) need a start
    and count as malformed. Only the first range of a multi-range header is
    kept.
    """
    if not value:
        return None
    unit, sep, spec = value.strip().partition("=")
    if not sep or unit.strip().lower() != "bytes":
        return None
    first = spec.split(",")[0]
    start_str, sep, end_str = first.partition("-")
    if not sep:
        return None
    start = _parse_int(start_str)
    if start is None:
        return None
    if not end_str.strip():
        return RangeRequest(start=start, end=None)
    end = _parse_int(end_str)
    if end is None:
        return None
    return RangeRequest(start=start, end=end)
