from __future__ import annotations

from pathlib import Path

import pytest

from guardedit.tools.glob import glob_match, glob_to_regex
from guardedit.tools.path_guard import is_blocked, is_under_root, to_unix


@pytest.mark.parametrize(
    ("pattern", "path", "expected"),
    [
        ("**/*.lock", "x.lock", True),
        ("**/*.lock", "a/b/yarn.lock", True),
        ("*.lock", "a/yarn.lock", False),
        (".git/**", ".git/config", True),
        (".git/**", ".gitignore", False),
        ("src/?.py", "src/a.py", True),
        ("src/?.py", "src/ab.py", False),
        ("src/*.py", "src/pkg/a.py", False),
        (".github/workflows/**", ".github/workflows/ci.yml", True),
        ("pom.xml", "pomXxml", False),
    ],
)
def test_glob_match_semantics(pattern: str, path: str, expected: bool) -> None:
    assert glob_match(pattern, path) is expected


def test_glob_to_regex_is_cached() -> None:
    assert glob_to_regex("docs/**") is glob_to_regex("docs/**")


def test_is_under_root_compares_components(tmp_path: Path) -> None:
    root = tmp_path / "p"
    sibling = tmp_path / "p2" / "x.txt"

    assert is_under_root(root / "src" / "a.py", root)
    assert is_under_root(root, root)
    assert not is_under_root(sibling, root)
    assert not is_under_root(root / ".." / "p2" / "x.txt", root)
    assert is_under_root(root / "src" / ".." / "a.py", root)


def test_is_blocked_matches_names_and_absolute_globs() -> None:
    assert is_blocked("/work/proj/package.json")
    assert is_blocked("/work/proj/services/api/pom.xml")
    assert is_blocked("/work/proj/Cargo.lock")
    assert is_blocked("/work/proj/go.sum")
    assert is_blocked("/work/proj/.git/HEAD")
    assert is_blocked("/work/proj/.github/workflows/ci.yml")
    assert not is_blocked("/work/proj/src/app.py")
    assert not is_blocked("/work/proj/.github/CODEOWNERS")


def test_is_blocked_honours_extra_globs() -> None:
    assert not is_blocked("/work/proj/secrets/key.pem")
    assert is_blocked("/work/proj/secrets/key.pem", ["secrets/**"])
    assert is_blocked("/work/proj/deploy/prod.env", ["**/*.env"])


def test_to_unix_normalises_backslashes() -> None:
    assert to_unix("src\\pkg\\a.py") == "src/pkg/a.py"
