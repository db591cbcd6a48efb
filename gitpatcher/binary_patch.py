"""
Decoding of "GIT binary patch" sections.

git writes binary changes as one or two blocks:

    GIT binary patch
    literal 256                 <- forward: new content (or "delta N")
    zcmV<...base85 lines...>

    literal 0                   <- reverse: old content, for checking
    HcmV?d00001

Each data line starts with a length character (A-Z for 1..26 bytes,
a-z for 27..52) followed by base85 text in git's alphabet, which is the
same alphabet base64.b85decode uses. The concatenated bytes are a zlib
stream; inflated, they are either the literal file content or a git
delta against the other side.
"""

from __future__ import annotations

import base64
import zlib
from typing import List, Sequence, Tuple

from .domain import BinaryHunk
from .errors import BinaryPatchError

_COPY_OFFSET_BITS = ((0x01, 0), (0x02, 8), (0x04, 16), (0x08, 24))
_COPY_SIZE_BITS = ((0x10, 0), (0x20, 8), (0x40, 16))


def decode_line(line: bytes) -> bytes:
    """
    Decode one base85 data line, dropping the padding of the last group.
    """

    if not line:
        raise BinaryPatchError("empty line in binary patch data")

    marker = line[0]
    if ord("A") <= marker <= ord("Z"):
        length = marker - ord("A") + 1
    elif ord("a") <= marker <= ord("z"):
        length = marker - ord("a") + 27
    else:
        raise BinaryPatchError(f"bad length marker in binary patch line: {line[:8]!r}")

    encoded = line[1:]
    if len(encoded) != (length + 3) // 4 * 5:
        raise BinaryPatchError(
            f"binary patch line has {len(encoded)} characters, expected "
            f"{(length + 3) // 4 * 5} for {length} bytes"
        )
    try:
        decoded = base64.b85decode(encoded)
    except ValueError as exc:
        raise BinaryPatchError(f"invalid base85 in binary patch: {exc}") from exc
    return decoded[:length]


def decode_block(kind: str, size: int, lines: Sequence[bytes]) -> BinaryHunk:
    """
    Turn the data lines of one block into an inflated BinaryHunk.
    """

    compressed = b"".join(decode_line(line) for line in lines)
    try:
        data = zlib.decompress(compressed)
    except zlib.error as exc:
        raise BinaryPatchError(f"corrupt zlib data in binary patch: {exc}") from exc

    if len(data) != size:
        raise BinaryPatchError(f"binary {kind} inflates to {len(data)} bytes, header says {size}")
    return BinaryHunk(kind=kind, size=size, data=data)  # type: ignore[arg-type]


def _read_size(delta: bytes, pos: int) -> Tuple[int, int]:
    value = 0
    shift = 0
    while True:
        if pos >= len(delta):
            raise BinaryPatchError("truncated delta header")
        byte = delta[pos]
        pos += 1
        value |= (byte & 0x7F) << shift
        shift += 7
        if not byte & 0x80:
            return value, pos


def apply_delta(source: bytes, delta: bytes) -> bytes:
    """
    Rebuild the target of a git delta from its source.

    Raises BinaryPatchError when the delta was made against content of a
    different size or its instructions run out of bounds.
    """

    source_size, pos = _read_size(delta, 0)
    if source_size != len(source):
        raise BinaryPatchError(
            f"delta expects a {source_size}-byte preimage, file has {len(source)} bytes"
        )
    target_size, pos = _read_size(delta, pos)

    out: List[bytes] = []
    try:
        while pos < len(delta):
            opcode = delta[pos]
            pos += 1
            if opcode & 0x80:
                offset = 0
                size = 0
                for bit, shift in _COPY_OFFSET_BITS:
                    if opcode & bit:
                        offset |= delta[pos] << shift
                        pos += 1
                for bit, shift in _COPY_SIZE_BITS:
                    if opcode & bit:
                        size |= delta[pos] << shift
                        pos += 1
                size = size or 0x10000
                if offset + size > len(source):
                    raise BinaryPatchError("delta copies past the end of the preimage")
                out.append(source[offset : offset + size])
            elif opcode:
                if pos + opcode > len(delta):
                    raise BinaryPatchError("delta inserts past the end of its data")
                out.append(delta[pos : pos + opcode])
                pos += opcode
            else:
                raise BinaryPatchError("reserved opcode 0 in delta")
    except IndexError as exc:
        raise BinaryPatchError("truncated delta instruction") from exc

    result = b"".join(out)
    if len(result) != target_size:
        raise BinaryPatchError(f"delta produced {len(result)} bytes, expected {target_size}")
    return result


def apply_block(block: BinaryHunk, source: bytes) -> bytes:
    if block.kind == "literal":
        return block.data
    return apply_delta(source, block.data)
