from __future__ import annotations

import logging
import os
import re
import stat
import subprocess
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from app.domain.errors import DeadlineExceeded, RepositoryError
from app.domain.models import CommitRef
from app.storage.repository_accessor import RepositoryAccessor

logger = logging.getLogger(__name__)

_COMMIT_HASH_RE = re.compile(r"^[0-9a-fA-F]{4,64}$")


def _run_git(args: List[str], *, cwd: Path, timeout: Optional[float] = None) -> str:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise DeadlineExceeded(f"git {args[0]} timed out after {timeout:.1f}s (cwd={cwd})") from exc
    except OSError as exc:
        raise RepositoryError(f"unable to run git {args[0]}: {exc}") from exc
    if result.returncode != 0:
        raise RepositoryError(
            f"git {' '.join(args)} failed (cwd={cwd}): {result.stderr.strip() or result.stdout.strip()}"
        )
    return result.stdout


class GitRepositoryAccessor(RepositoryAccessor):
    """
    Working view backed by a private clone of the chart repository.

    The clone is owned exclusively by this accessor: ``checkout`` forces the
    tree to the requested commit and removes untracked files, so the working
    view never mixes two commits.
    """

    def __init__(self, repo_url: str, clone_path: Optional[Path] = None, git_timeout: Optional[float] = None):
        self.repo_url = repo_url
        self._clone_path = Path(clone_path).resolve() if clone_path else None
        self._git_timeout = git_timeout
        self._tip: Optional[str] = None
        self._current: Optional[str] = None
        self._tempdir: Optional[tempfile.TemporaryDirectory] = None

    @property
    def root(self) -> Path:
        if self._clone_path is None:
            raise RepositoryError("repository has not been opened")
        return self._clone_path

    @property
    def current_commit(self) -> Optional[str]:
        return self._current

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def open(self) -> None:
        if self._clone_path is None:
            self._tempdir = tempfile.TemporaryDirectory(prefix="chart-streams-")
            self._clone_path = Path(self._tempdir.name).resolve() / "repo"

        if (self._clone_path / ".git").is_dir():
            self._reuse_clone()
        else:
            self._clone()

        self._tip = self._resolve_tip()
        self._current = None
        logger.info(f"Repository {self.repo_url} ready at {self._clone_path} (tip {self._tip[:10]})")

    def _clone(self) -> None:
        if self._clone_path.exists() and any(self._clone_path.iterdir()):
            raise RepositoryError(f"clone path {self._clone_path} exists and is not a git repository")
        self._clone_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Cloning {self.repo_url} into {self._clone_path}")
        _run_git(
            ["clone", "--quiet", self.repo_url, str(self._clone_path)],
            cwd=self._clone_path.parent,
            timeout=self._git_timeout,
        )

    def _reuse_clone(self) -> None:
        origin = _run_git(["config", "--get", "remote.origin.url"], cwd=self._clone_path).strip()
        if origin != self.repo_url:
            raise RepositoryError(
                f"clone path {self._clone_path} tracks {origin}, not {self.repo_url}"
            )
        logger.info(f"Reusing clone at {self._clone_path}, fetching {self.repo_url}")
        _run_git(["fetch", "--quiet", "--prune", "origin"], cwd=self._clone_path, timeout=self._git_timeout)

    def _resolve_tip(self) -> str:
        # origin/HEAD survives the detached checkouts made while indexing.
        for ref in ("refs/remotes/origin/HEAD", "HEAD"):
            try:
                return _run_git(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"], cwd=self.root).strip()
            except RepositoryError:
                continue
        raise RepositoryError(f"repository {self.repo_url} has no commits")

    def close(self) -> None:
        if self._tempdir is not None:
            self._tempdir.cleanup()
            self._tempdir = None
            self._clone_path = None
        self._current = None

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def all_commits(self) -> Iterator[CommitRef]:
        """
        Commits reachable from the tip in reverse-topological order
        (children before parents), newest first among unrelated commits.
        """
        if self._tip is None:
            raise RepositoryError("repository has not been opened")
        output = _run_git(
            ["log", "--topo-order", "--format=%H %ct", self._tip],
            cwd=self.root,
            timeout=self._git_timeout,
        )
        commits: List[CommitRef] = []
        for line in output.splitlines():
            line = line.strip()
            if not line:
                continue
            commit_hash, _, epoch = line.partition(" ")
            commits.append(
                CommitRef(hash=commit_hash, timestamp=datetime.fromtimestamp(int(epoch), tz=timezone.utc))
            )
        return iter(commits)

    def checkout(self, commit_hash: str, timeout: Optional[float] = None) -> None:
        if not _COMMIT_HASH_RE.match(commit_hash or ""):
            raise RepositoryError(f"invalid commit hash: {commit_hash!r}")
        self._current = None
        _run_git(["checkout", "--quiet", "--force", "--detach", commit_hash], cwd=self.root, timeout=timeout)
        _run_git(["clean", "-ffdxq"], cwd=self.root, timeout=timeout)
        self._current = commit_hash
        logger.debug(f"Checked out {commit_hash[:10]}")

    # ------------------------------------------------------------------
    # Working view reads
    # ------------------------------------------------------------------

    def _resolve(self, path: str) -> Path:
        root = self.root
        candidate = (root / path).resolve()
        try:
            relative = candidate.relative_to(root)
        except ValueError:
            raise RepositoryError(f"path {path!r} escapes the working view") from None
        if relative.parts and relative.parts[0] == ".git":
            raise RepositoryError(f"path {path!r} points into the git directory")
        return candidate

    def read_dir(self, path: str) -> List[str]:
        target = self._resolve(path)
        try:
            names = [entry.name for entry in target.iterdir()]
        except OSError as exc:
            raise RepositoryError(f"unable to list {path!r} at {self._current}: {exc}") from exc
        if target == self.root:
            names = [n for n in names if n != ".git"]
        return sorted(names)

    def read_file(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except OSError as exc:
            raise RepositoryError(f"unable to read {path!r} at {self._current}: {exc}") from exc

    def is_dir(self, path: str) -> bool:
        return self._resolve(path).is_dir()

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def walk_files(self, path: str) -> List[str]:
        base = self._resolve(path)
        if not base.is_dir():
            raise RepositoryError(f"{path!r} is not a directory at {self._current}")
        files: List[str] = []
        for dirpath, dirnames, filenames in os.walk(base, followlinks=False):
            dirnames[:] = [d for d in dirnames if d != ".git"]
            for filename in filenames:
                full = Path(dirpath) / filename
                if full.is_symlink() or not full.is_file():
                    continue
                files.append(full.relative_to(base).as_posix())
        return sorted(files)

    def is_executable(self, path: str) -> bool:
        try:
            mode = self._resolve(path).stat().st_mode
        except OSError as exc:
            raise RepositoryError(f"unable to stat {path!r}: {exc}") from exc
        return bool(mode & stat.S_IXUSR)
