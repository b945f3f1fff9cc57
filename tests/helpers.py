"""Shared test doubles: a scripted in-memory accessor and a throwaway Git repo builder."""
from __future__ import annotations

import os
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from app.domain.errors import RepositoryError
from app.domain.models import CommitRef
from app.storage.repository_accessor import RepositoryAccessor


def at(day: int, hour: int = 12) -> datetime:
    return datetime(2021, 3, day, hour, 0, 0, tzinfo=timezone.utc)


def chart_yaml(name: str, version: str, **extra: str) -> str:
    lines = ["apiVersion: v2", f"name: {name}", f"version: {version}"]
    lines.extend(f"{k}: {v}" for k, v in extra.items())
    return "\n".join(lines) + "\n"


class FakeAccessor(RepositoryAccessor):
    """
    Accessor whose history is a scripted list of (commit, tree) pairs, visited
    in list order. Trees map repository paths to file bytes.
    """

    def __init__(self, history: Sequence[Tuple[CommitRef, Dict[str, bytes]]]):
        self.history = list(history)
        self._trees = {commit.hash: tree for commit, tree in self.history}
        self._current: Optional[str] = None
        self.checkouts: List[str] = []
        self.opened = 0

    def open(self) -> None:
        self.opened += 1

    @property
    def current_commit(self) -> Optional[str]:
        return self._current

    @property
    def _tree(self) -> Dict[str, bytes]:
        if self._current is None:
            raise RepositoryError("nothing checked out")
        return self._trees[self._current]

    def all_commits(self) -> Iterator[CommitRef]:
        return iter([commit for commit, _ in self.history])

    def checkout(self, commit_hash: str, timeout: Optional[float] = None) -> None:
        if commit_hash not in self._trees:
            raise RepositoryError(f"unknown commit {commit_hash}")
        self._current = commit_hash
        self.checkouts.append(commit_hash)

    def read_dir(self, path: str) -> List[str]:
        prefix = "" if path in ("", ".") else path.rstrip("/") + "/"
        names = {p[len(prefix):].split("/", 1)[0] for p in self._tree if p.startswith(prefix)}
        if not names:
            raise RepositoryError(f"no such directory: {path}")
        return sorted(names)

    def read_file(self, path: str) -> bytes:
        try:
            return self._tree[path]
        except KeyError:
            raise RepositoryError(f"no such file: {path}") from None

    def is_dir(self, path: str) -> bool:
        prefix = path.rstrip("/") + "/"
        return any(p.startswith(prefix) for p in self._tree)

    def exists(self, path: str) -> bool:
        return path in self._tree or self.is_dir(path)

    def walk_files(self, path: str) -> List[str]:
        prefix = path.rstrip("/") + "/"
        return sorted(p[len(prefix):] for p in self._tree if p.startswith(prefix))

    def is_executable(self, path: str) -> bool:
        return False


class GitChartRepo:
    """Builds a real Git repository commit by commit, with fixed timestamps."""

    def __init__(self, path: Path):
        self.path = path
        self.path.mkdir(parents=True, exist_ok=True)
        self.git("init", "--quiet")
        self.git("symbolic-ref", "HEAD", "refs/heads/main")
        self.git("config", "user.name", "Chart Bot")
        self.git("config", "user.email", "charts@example.com")
        self.git("config", "commit.gpgsign", "false")

    def git(self, *args: str, env: Optional[Dict[str, str]] = None) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=self.path,
            capture_output=True,
            text=True,
            check=True,
            env={**os.environ, **(env or {})},
        )
        return result.stdout.strip()

    @property
    def url(self) -> str:
        return str(self.path)

    def write(self, relative: str, content: str, executable: bool = False) -> None:
        target = self.path / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        if executable:
            target.chmod(0o755)

    def write_chart(self, name: str, version: str, directory: Optional[str] = None, base: str = "stable",
                    files: Optional[Dict[str, str]] = None) -> None:
        chart_dir = f"{base}/{directory or name}"
        self.write(f"{chart_dir}/Chart.yaml", chart_yaml(name, version))
        for relative, content in (files or {}).items():
            self.write(f"{chart_dir}/{relative}", content)

    def remove(self, relative: str) -> None:
        self.git("rm", "-r", "--quiet", relative)

    def commit(self, message: str, when: datetime) -> str:
        stamp = f"{int(when.timestamp())} +0000"
        self.git("add", "--all")
        self.git(
            "commit", "--quiet", "--allow-empty", "-m", message,
            env={"GIT_AUTHOR_DATE": stamp, "GIT_COMMITTER_DATE": stamp},
        )
        return self.git("rev-parse", "HEAD")
