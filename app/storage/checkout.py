from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from app.domain.errors import DeadlineExceeded
from app.storage.repository_accessor import RepositoryAccessor

logger = logging.getLogger(__name__)


class CheckoutController:
    """
    Owns the repository accessor and the one lock guarding its working view.

    Everything that checks out a commit and then reads from the working view
    (index building, chart materialization) must do so inside ``exclusive()``.
    Checkouts are therefore fully serialized.
    """

    def __init__(self, accessor: RepositoryAccessor):
        self.accessor = accessor
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def exclusive(self, timeout: Optional[float] = None) -> Iterator[RepositoryAccessor]:
        if timeout is None:
            acquired = self._lock.acquire()
        else:
            acquired = self._lock.acquire(timeout=max(timeout, 0))
        if not acquired:
            logger.warning(f"Timed out waiting {timeout:.1f}s for the working view lock")
            raise DeadlineExceeded(f"working view still busy after {timeout:.1f}s")
        try:
            yield self.accessor
        finally:
            self._lock.release()
