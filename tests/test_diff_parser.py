import pytest

from gitpatcher.diff_parser import parse_unified_diff, unquote_path
from gitpatcher.errors import DiffParseError


def test_parse_simple_modify():
    raw = b"""\
diff --git a/foo.py b/foo.py
--- a/foo.py
+++ b/foo.py
@@ -1,2 +1,2 @@
-a = 1
+a = 2
 b = 3
"""
    files = parse_unified_diff(raw)
    assert len(files) == 1
    file = files[0]
    assert file.path_old == b"foo.py"
    assert file.path_new == b"foo.py"
    assert file.change_type == "modify"
    assert not file.is_binary
    assert len(file.hunks) == 1
    hunk = file.hunks[0]
    assert [l.line_type for l in hunk.lines] == ["-", "+", " "]
    assert hunk.old_lines() == [b"a = 1\n", b"b = 3\n"]
    assert hunk.new_lines() == [b"a = 2\n", b"b = 3\n"]


def test_parse_add_and_delete_files():
    raw = b"""\
diff --git a/new.txt b/new.txt
new file mode 100644
--- /dev/null
+++ b/new.txt
@@ -0,0 +1,2 @@
+hello
+world
diff --git a/old.txt b/old.txt
deleted file mode 100644
--- a/old.txt
+++ /dev/null
@@ -1,2 +0,0 @@
-bye
-world
"""
    files = parse_unified_diff(raw)
    assert len(files) == 2
    add_file, del_file = files

    assert add_file.change_type == "add"
    assert add_file.path_old is None
    assert add_file.path_new == b"new.txt"
    assert add_file.new_mode == "100644"

    assert del_file.change_type == "delete"
    assert del_file.path_old == b"old.txt"
    assert del_file.path_new is None


def test_parse_mode_change_without_hunks():
    raw = b"""\
diff --git a/run me.sh b/run me.sh
old mode 100644
new mode 100755
"""
    (file,) = parse_unified_diff(raw)
    assert file.path_old == b"run me.sh"
    assert file.path_new == b"run me.sh"
    assert file.old_mode == "100644"
    assert file.new_mode == "100755"
    assert file.hunks == []


def test_parse_quoted_paths():
    raw = b"""\
diff --git "a/caf\\303\\251.txt" "b/caf\\303\\251.txt"
--- "a/caf\\303\\251.txt"
+++ "b/caf\\303\\251.txt"
@@ -1 +1 @@
-x
+y
"""
    (file,) = parse_unified_diff(raw)
    assert file.path_new == "café.txt".encode("utf-8")
    assert file.display_path == "café.txt"


def test_unquote_path_escapes():
    assert unquote_path(b'"tab\\there"') == b"tab\there"
    assert unquote_path(b'"q\\"uote"') == b'q"uote'
    assert unquote_path(b"plain") == b"plain"


def test_no_newline_markers():
    raw = b"""\
diff --git a/f.txt b/f.txt
--- a/f.txt
+++ b/f.txt
@@ -1,2 +1,2 @@
 keep
-old
\\ No newline at end of file
+new
\\ No newline at end of file
"""
    (file,) = parse_unified_diff(raw)
    (hunk,) = file.hunks
    assert hunk.old_lines() == [b"keep\n", b"old"]
    assert hunk.new_lines() == [b"keep\n", b"new"]


def test_content_that_looks_like_a_header_is_kept():
    raw = b"""\
diff --git a/notes.md b/notes.md
--- a/notes.md
+++ b/notes.md
@@ -1,2 +1,3 @@
 intro
+@@ not a hunk @@
 outro
"""
    (file,) = parse_unified_diff(raw)
    (hunk,) = file.hunks
    assert hunk.new_lines()[1] == b"@@ not a hunk @@\n"


def test_binary_patch_is_decoded():
    raw = b"""\
diff --git a/logo.png b/logo.png
new file mode 100644
GIT binary patch
literal 8
NcmeAS@N;JX0sslO0dD{R

literal 0
HcmV?d00001

diff --git a/notes.txt b/notes.txt
--- a/notes.txt
+++ b/notes.txt
@@ -1 +1 @@
-old
+new
"""
    logo, notes = parse_unified_diff(raw)

    assert logo.is_binary
    assert logo.change_type == "add"
    assert logo.binary_forward.data == b"\x89PNG\0\0\0\0"
    assert logo.binary_reverse.data == b""
    assert not notes.is_binary
    assert notes.hunks[0].new_lines() == [b"new\n"]


def test_binary_without_data_is_flagged():
    raw = b"diff --git a/logo.png b/logo.png\nBinary files a/logo.png and b/logo.png differ\n"
    (logo,) = parse_unified_diff(raw)

    assert logo.is_binary
    assert logo.binary_forward is None


def test_corrupt_binary_patch_raises():
    raw = b"diff --git a/x.bin b/x.bin\nGIT binary patch\nliteral 8\nNcmeAT@N;JX0sslO0dD{R\n\n"
    with pytest.raises(DiffParseError):
        parse_unified_diff(raw)


def test_truncated_hunk_raises():
    raw = b"""\
diff --git a/foo.py b/foo.py
--- a/foo.py
+++ b/foo.py
@@ -1,3 +1,3 @@
-a = 1
+a = 2
"""
    with pytest.raises(DiffParseError):
        parse_unified_diff(raw)
