"""
Builds the chart version index by walking the repository history.

Every commit reachable from the default branch is checked out in turn and
each directory under the configured base path is inspected for a
Chart.yaml. A chart version is pinned to the earliest commit (by committer
timestamp) that contains it, independently of the order the walk visits
commits in.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict

from app.domain.chart_utils import join_repo_path
from app.domain.entities import VersionIndex
from app.domain.errors import MetadataParseError, NotAPackage
from app.domain.models import CommitRef, IndexRecord, PackageKey
from app.services.metadata import extract_chart_metadata
from app.storage.checkout import CheckoutController
from app.storage.repository_accessor import RepositoryAccessor

logger = logging.getLogger(__name__)


@dataclass
class BuildStats:
    commits: int = 0
    charts_seen: int = 0
    skipped: int = 0
    without_base: int = 0


def _is_earlier(candidate: CommitRef, recorded: CommitRef) -> bool:
    # Ties go to the candidate: with reverse-topological walks the later
    # visited commit is the ancestor.
    return candidate.timestamp <= recorded.timestamp


class VersionIndexer:
    def __init__(self, controller: CheckoutController, base_path: str, strict_metadata: bool = True):
        self.controller = controller
        self.base_path = join_repo_path(base_path)
        self.strict_metadata = strict_metadata

    def build(self) -> VersionIndex:
        """
        Walk the whole history and return a new index.

        Commits without the base path are skipped. All-or-nothing
        otherwise: any RepositoryError (or MetadataParseError in strict
        mode) aborts the build and propagates to the caller.
        """
        started = time.monotonic()
        records: Dict[PackageKey, IndexRecord] = {}
        stats = BuildStats()

        with self.controller.exclusive() as accessor:
            for commit in accessor.all_commits():
                stats.commits += 1
                accessor.checkout(commit.hash)
                self._index_commit(accessor, commit, records, stats)

        index = VersionIndex(records, commits_walked=stats.commits)
        logger.info(
            f"Indexed {len(index)} chart versions from {stats.charts_seen} chart directories "
            f"across {stats.commits} commits in {time.monotonic() - started:.2f}s"
            + (f" ({stats.skipped} malformed skipped)" if stats.skipped else "")
            + (f" ({stats.without_base} without {self.base_path})" if stats.without_base else "")
        )
        return index

    def _index_commit(
        self,
        accessor: RepositoryAccessor,
        commit: CommitRef,
        records: Dict[PackageKey, IndexRecord],
        stats: BuildStats,
    ) -> None:
        if not accessor.exists(self.base_path):
            # Commits that predate the charts directory contribute nothing.
            stats.without_base += 1
            logger.debug(f"{self.base_path} absent at {commit.short_hash}")
            return
        for entry in accessor.read_dir(self.base_path):
            chart_path = join_repo_path(self.base_path, entry)
            try:
                metadata = extract_chart_metadata(accessor, chart_path)
            except NotAPackage:
                continue
            except MetadataParseError as exc:
                if self.strict_metadata:
                    raise
                stats.skipped += 1
                logger.warning(f"Skipping {chart_path} at {commit.short_hash}: {exc.reason}")
                continue

            stats.charts_seen += 1
            key = metadata.key
            recorded = records.get(key)
            if recorded is None or _is_earlier(commit, recorded.commit):
                records[key] = IndexRecord(commit=commit, chart_path=chart_path, metadata=metadata)
                logger.debug(f"{key} -> {commit.short_hash} ({chart_path})")
