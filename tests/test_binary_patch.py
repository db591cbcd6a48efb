import pytest

from gitpatcher.binary_patch import apply_block, apply_delta, decode_block, decode_line
from gitpatcher.diff_parser import parse_unified_diff
from gitpatcher.errors import BinaryPatchError

# Output of `git diff --binary` for a 3001-byte file with five bytes
# replaced in the middle; git chose deltas in both directions.
DELTA_SOURCE = b"x" * 3000 + b"\0"
DELTA_TARGET = b"x" * 1000 + b"hello" + b"x" * 1995 + b"\0"
DELTA_DIFF = b"""\
diff --git a/blob.bin b/blob.bin
GIT binary patch
delta 19
acmdlfzEga|3ue}g)SR6Bjf|(+85sahl?K`X

delta 15
XcmdlfzEgbj2j&y(n^-<DGco`GHc17*

"""


def test_decode_line_drops_padding():
    assert decode_line(b"NcmeAS@N;JX0sslO0dD{R").startswith(b"x\x9c")
    assert len(decode_line(b"NcmeAS@N;JX0sslO0dD{R")) == 14


def test_decode_line_rejects_bad_marker_and_length():
    with pytest.raises(BinaryPatchError, match="length marker"):
        decode_line(b"1cmV?d00001")
    with pytest.raises(BinaryPatchError, match="characters"):
        decode_line(b"HcmV?d0000")


def test_decode_block_inflates_literal():
    block = decode_block("literal", 8, [b"NcmeAS@N;JX0sslO0dD{R"])

    assert block.kind == "literal"
    assert block.data == b"\x89PNG\0\0\0\0"
    assert apply_block(block, b"ignored") == b"\x89PNG\0\0\0\0"


def test_decode_block_checks_inflated_size():
    with pytest.raises(BinaryPatchError, match="header says 8"):
        decode_block("literal", 8, [b"HcmV?d00001"])


def test_apply_delta_copies_and_inserts():
    # source size 11, target size 11, copy 6 bytes from offset 0, insert "there"
    delta = bytes([11, 11, 0x90, 6, 5]) + b"there"

    assert apply_delta(b"hello world", delta) == b"hello there"


def test_apply_delta_rejects_wrong_preimage():
    delta = bytes([11, 11, 0x90, 6, 5]) + b"there"

    with pytest.raises(BinaryPatchError, match="11-byte preimage"):
        apply_delta(b"hello", delta)


@pytest.mark.parametrize(
    "source, delta",
    [
        (b"abc", bytes([3, 5, 0x91, 2, 5])),
        (b"", bytes([0, 1, 0])),
        (b"", bytes([0, 3, 3]) + b"a"),
        (b"abc", bytes([3, 3, 0x91])),
        (b"abc", bytes([3, 4, 3]) + b"abc"),
    ],
)
def test_apply_delta_rejects_bad_instructions(source, delta):
    with pytest.raises(BinaryPatchError):
        apply_delta(source, delta)


def test_git_delta_applies_both_ways():
    (file_patch,) = parse_unified_diff(DELTA_DIFF)

    assert file_patch.binary_forward.kind == "delta"
    new = apply_block(file_patch.binary_forward, DELTA_SOURCE)
    assert new == DELTA_TARGET
    assert apply_block(file_patch.binary_reverse, new) == DELTA_SOURCE
