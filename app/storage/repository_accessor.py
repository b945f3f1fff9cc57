from abc import ABC, abstractmethod
from typing import Iterator, List, Optional

from app.domain.models import CommitRef


class RepositoryAccessor(ABC):
    """
    Abstract access to a version-controlled tree and its single working view.

    Read operations always reflect the most recent successful ``checkout``.
    Implementations are not thread-safe; callers serialize access through
    ``CheckoutController``.
    """

    @abstractmethod
    def open(self) -> None:
        """Prepare the working view (clone, fetch, ...)."""
        pass

    def close(self) -> None:
        """Release resources held by the working view."""
        pass

    @property
    @abstractmethod
    def current_commit(self) -> Optional[str]:
        """Hash of the commit the working view reflects, or None."""
        pass

    @abstractmethod
    def all_commits(self) -> Iterator[CommitRef]:
        """
        Every commit reachable from the default branch tip.

        Each call returns a fresh single-pass iterator; the order is
        deterministic for a fixed repository state.
        """
        pass

    @abstractmethod
    def checkout(self, commit_hash: str, timeout: Optional[float] = None) -> None:
        """Switch the working view to the given commit's tree."""
        pass

    @abstractmethod
    def read_dir(self, path: str) -> List[str]:
        """Sorted names of the entries directly under ``path``."""
        pass

    @abstractmethod
    def read_file(self, path: str) -> bytes:
        pass

    @abstractmethod
    def is_dir(self, path: str) -> bool:
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass

    @abstractmethod
    def walk_files(self, path: str) -> List[str]:
        """
        Regular files under ``path``, as POSIX paths relative to ``path``,
        sorted lexicographically.
        """
        pass

    @abstractmethod
    def is_executable(self, path: str) -> bool:
        pass
