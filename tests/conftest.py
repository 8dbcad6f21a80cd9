from __future__ import annotations

import subprocess
import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@dataclass(slots=True)
class TinyRepo:
    """Fixture payload representing the synthetic repository under test."""

    root: Path

    def git(self, *args: str) -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            ["git", *args],
            cwd=self.root,
            check=True,
            capture_output=True,
            text=True,
        )

    def branch(self) -> str:
        return self.git("rev-parse", "--abbrev-ref", "HEAD").stdout.strip()

    def branches(self) -> list[str]:
        output = self.git("branch", "--format=%(refname:short)").stdout
        return [line.strip() for line in output.splitlines() if line.strip()]


CALCULATOR_SOURCE = textwrap.dedent(
    """
    def add(left, right):
        return left + right
    """
).lstrip()

CALCULATOR_DOC_DIFF = textwrap.dedent(
    """
    diff --git a/src/calculator.py b/src/calculator.py
    --- a/src/calculator.py
    +++ b/src/calculator.py
    @@ -1,2 +1,3 @@
     def add(left, right):
    +    \"\"\"Return the sum of both operands.\"\"\"
         return left + right
    """
).lstrip()


@pytest.fixture()
def tiny_repo(tmp_path: Path) -> TinyRepo:
    """Create a tiny committed git repository with one source file."""

    repo_root = tmp_path / "tiny-repo"
    (repo_root / "src").mkdir(parents=True)
    repo = TinyRepo(root=repo_root)
    repo.git("init")
    repo.git("config", "user.email", "agent@example.com")
    repo.git("config", "user.name", "Guarded Editor")
    repo.git("config", "commit.gpgsign", "false")

    (repo_root / "src" / "calculator.py").write_text(CALCULATOR_SOURCE, encoding="utf-8")
    (repo_root / "README.md").write_text("# Tiny\n", encoding="utf-8")
    repo.git("add", ".")
    repo.git("commit", "-m", "Initial tiny repo state")
    return repo


@pytest.fixture()
def guardedit_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the project registry at a throwaway directory."""

    home = tmp_path / "guardedit-home"
    monkeypatch.setenv("GUARDEDIT_HOME", str(home))
    monkeypatch.delenv("GUARDEDIT_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("GUARDEDIT_TIMEOUT", raising=False)
    return home
