import pytest

from gitpatcher.errors import RangeError
from gitpatcher.git_adapter import GitRepo
from gitpatcher.range_resolver import resolve_range


def _upstream(builder):
    builder.write("README", "upstream\n")
    base = builder.commit("Upstream import")
    builder.tag("upstream")
    return base


def test_linear_range_oldest_first(repo_builder, ctx):
    builder = repo_builder()
    base = _upstream(builder)
    builder.write("a.txt", "1\n")
    first = builder.commit("First")
    builder.write("a.txt", "2\n")
    second = builder.commit("Second\n\nWith a body.\n")

    commit_range = resolve_range(GitRepo(builder.path), "upstream", ctx)

    assert commit_range.base == base
    assert commit_range.head == second
    assert [c.id for c in commit_range.commits] == [first, second]
    assert commit_range.commits[0].parent == base
    assert commit_range.commits[1].message == b"Second\n\nWith a body.\n"


def test_base_at_head_gives_empty_range(repo_builder, ctx):
    builder = repo_builder()
    _upstream(builder)

    commit_range = resolve_range(GitRepo(builder.path), "upstream", ctx)

    assert commit_range.commits == ()


def test_unknown_reference(repo_builder, ctx):
    builder = repo_builder()
    _upstream(builder)

    with pytest.raises(RangeError, match="does not resolve"):
        resolve_range(GitRepo(builder.path), "upstream/nowhere", ctx)


def test_base_must_be_an_ancestor(repo_builder, ctx):
    builder = repo_builder()
    base = _upstream(builder)
    builder.write("a.txt", "mine\n")
    builder.commit("Local")
    mine = builder.head()

    builder.git("checkout", "-q", "--detach", base)
    builder.write("b.txt", "theirs\n")
    builder.commit("Elsewhere")
    builder.tag("upstream")
    builder.git("checkout", "-q", mine)

    with pytest.raises(RangeError, match="not an ancestor"):
        resolve_range(GitRepo(builder.path), "upstream", ctx)


def test_merge_in_range_is_rejected(repo_builder, ctx):
    builder = repo_builder()
    base = _upstream(builder)
    builder.git("branch", "side")
    builder.write("a.txt", "main\n")
    builder.commit("Main work")
    main = builder.head()

    builder.git("checkout", "-q", "side")
    builder.write("b.txt", "side\n")
    builder.commit("Side work")
    builder.git("checkout", "-q", main)
    builder.git("merge", "-q", "--no-ff", "--no-edit", "side")

    with pytest.raises(RangeError, match="merge commits"):
        resolve_range(GitRepo(builder.path), base, ctx)


@pytest.mark.parametrize(
    "marker, name",
    [
        ("rebase-apply/applying", "am"),
        ("MERGE_HEAD", "merge"),
        ("CHERRY_PICK_HEAD", "cherry-pick"),
    ],
)
def test_operation_in_progress_is_rejected(repo_builder, ctx, marker, name):
    builder = repo_builder()
    _upstream(builder)
    path = builder.path / ".git" / marker
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")

    with pytest.raises(RangeError, match=f"{name} in progress"):
        resolve_range(GitRepo(builder.path), "upstream", ctx)


@pytest.mark.parametrize("marker", ["rebase-merge", "rebase-apply"])
def test_paused_rebase_gives_partial_range(repo_builder, ctx, marker):
    builder = repo_builder()
    _upstream(builder)
    builder.write("a.txt", "1\n")
    first = builder.commit("First")
    (builder.path / ".git" / marker).mkdir()

    commit_range = resolve_range(GitRepo(builder.path), "upstream", ctx)

    assert commit_range.partial
    assert [c.id for c in commit_range.commits] == [first]
