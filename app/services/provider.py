"""
Chart provider: the facade the HTTP layer talks to.

``ChartProvider`` is the capability (initialize / index file / chart); the
only backend today is Git, via ``GitChartProvider``.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from app.domain.entities import VersionIndex
from app.domain.errors import ProviderNotReady
from app.domain.models import Catalog, ChartPackage, Settings
from app.services.indexer import VersionIndexer
from app.services.materializer import Materializer
from app.storage.checkout import CheckoutController
from app.storage.git_repository import GitRepositoryAccessor
from app.storage.repository_accessor import RepositoryAccessor

logger = logging.getLogger(__name__)


class ChartProvider(ABC):
    @abstractmethod
    def initialize(self) -> None:
        """Build the version index. Raises on failure; nothing is served until it succeeds."""
        pass

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        pass

    @abstractmethod
    def get_index_file(self) -> Catalog:
        pass

    @abstractmethod
    def get_chart(self, name: str, version: str) -> ChartPackage:
        pass

    def status(self) -> Dict[str, Any]:
        """Summary reported by the health endpoint."""
        return {"ready": self.is_ready}


class GitChartProvider(ChartProvider):
    """
    Serves charts found anywhere in the history of a Git repository.

    The accessor's working view is shared between the indexer and the
    materializer through a single ``CheckoutController``.
    """

    def __init__(self, settings: Settings, accessor: Optional[RepositoryAccessor] = None):
        self.settings = settings
        self.accessor = accessor or GitRepositoryAccessor(
            settings.repo_url,
            clone_path=settings.clone_path,
            git_timeout=settings.git_timeout_seconds,
        )
        self.controller = CheckoutController(self.accessor)
        self.indexer = VersionIndexer(
            self.controller,
            base_path=settings.relative_dir,
            strict_metadata=settings.strict_metadata,
        )
        self.materializer = Materializer(self.controller, timeout=settings.timeout_seconds)
        self._index: Optional[VersionIndex] = None
        self._init_lock = threading.Lock()

    @property
    def is_ready(self) -> bool:
        return self._index is not None

    @property
    def index(self) -> VersionIndex:
        if self._index is None:
            raise ProviderNotReady("chart index has not been built")
        return self._index

    def initialize(self) -> None:
        """
        Open the repository and (re)build the index.

        The new index replaces the current one only when the build succeeds.
        """
        with self._init_lock:
            logger.info(f"Building chart index from {self.settings.repo_url} ({self.settings.relative_dir})")
            with self.controller.exclusive():
                self.accessor.open()
            self._index = self.indexer.build()
            self.materializer.forget_digests()

    def status(self) -> Dict[str, Any]:
        status = super().status()
        if self._index is not None:
            status["chart_versions"] = len(self._index)
            status["commits_walked"] = self._index.commits_walked
        status["working_view_busy"] = self.controller.busy
        return status

    def get_index_file(self) -> Catalog:
        return self.index.catalog

    def get_chart(self, name: str, version: str) -> ChartPackage:
        return self.materializer.materialize(self.index, name, version)

    def close(self) -> None:
        with self.controller.exclusive():
            self.accessor.close()
