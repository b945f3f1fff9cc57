"""
On-demand packaging of a chart version as it existed at its pinned commit.

Archives are gzip-compressed tarballs laid out the way ``helm package``
lays them out (``<chart>/Chart.yaml``, ``<chart>/templates/...``). Member
order, ownership, permissions and timestamps are normalized so the same
commit always produces byte-identical output.
"""
from __future__ import annotations

import gzip
import hashlib
import io
import logging
import tarfile
import threading
import time
from typing import Dict, Optional

from app.domain.chart_utils import join_repo_path
from app.domain.entities import VersionIndex
from app.domain.errors import (
    ArchiveBuildError,
    DeadlineExceeded,
    MetadataParseError,
    NotAPackage,
    RepositoryError,
)
from app.domain.models import ChartPackage, IndexRecord, PackageKey
from app.services.metadata import extract_chart_metadata
from app.storage.checkout import CheckoutController
from app.storage.repository_accessor import RepositoryAccessor

logger = logging.getLogger(__name__)

FILE_MODE = 0o644
EXECUTABLE_MODE = 0o755


class _Deadline:
    def __init__(self, timeout: Optional[float]):
        self.timeout = timeout
        self._expires = None if timeout is None else time.monotonic() + timeout

    def remaining(self) -> Optional[float]:
        if self._expires is None:
            return None
        return self._expires - time.monotonic()

    def check(self, what: str) -> None:
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise DeadlineExceeded(f"{what} exceeded the {self.timeout:.1f}s deadline")


class Materializer:
    """
    Resolves a (name, version) through the index and packages the chart
    directory at the pinned commit.

    Every call takes the working view lock for checkout and packaging, so
    materializations run one at a time. Archives are rebuilt on every request;
    their digests are computed once per chart version and index build.
    """

    def __init__(self, controller: CheckoutController, timeout: Optional[float] = None):
        self.controller = controller
        self.timeout = timeout
        self._digests: Dict[PackageKey, str] = {}
        self._digests_lock = threading.Lock()

    def digest_for(self, name: str, version: str) -> Optional[str]:
        with self._digests_lock:
            return self._digests.get(PackageKey(name=name, version=version))

    def forget_digests(self) -> None:
        with self._digests_lock:
            self._digests.clear()

    def materialize(self, index: VersionIndex, name: str, version: str) -> ChartPackage:
        record = index.lookup(name, version)
        key = PackageKey(name=name, version=version)
        deadline = _Deadline(self.timeout)

        with self.controller.exclusive(timeout=deadline.remaining()) as accessor:
            deadline.check(f"waiting for {key}")
            accessor.checkout(record.commit.hash, timeout=deadline.remaining())
            try:
                metadata = extract_chart_metadata(accessor, record.chart_path)
            except (NotAPackage, MetadataParseError) as exc:
                raise RepositoryError(f"{key} is no longer readable at {record.commit.short_hash}: {exc}") from exc
            if metadata.key != key:
                raise RepositoryError(
                    f"{record.chart_path} at {record.commit.short_hash} declares "
                    f"{metadata.key}, index expected {key}"
                )
            archive = self._package(accessor, record, deadline)

        # Archives are byte-identical per commit, so a cached digest stays valid
        # until the next rebuild.
        with self._digests_lock:
            digest = self._digests.get(key)
            if digest is None:
                digest = self._digests[key] = hashlib.sha256(archive).hexdigest()
        logger.info(f"Materialized {key} from {record.commit.short_hash} ({len(archive)} bytes, sha256 {digest[:12]})")
        return ChartPackage(key=key, commit=record.commit, metadata=metadata, archive=archive, digest=digest)

    def _package(self, accessor: RepositoryAccessor, record: IndexRecord, deadline: _Deadline) -> bytes:
        chart_name = record.metadata.name
        mtime = int(record.commit.timestamp.timestamp())
        buffer = io.BytesIO()
        try:
            # mtime=0 and an empty file name keep the gzip header stable.
            with gzip.GzipFile(filename="", mode="wb", fileobj=buffer, mtime=0) as gz:
                with tarfile.open(fileobj=gz, mode="w", format=tarfile.PAX_FORMAT) as tar:
                    for relative in accessor.walk_files(record.chart_path):
                        deadline.check(f"packaging {chart_name}")
                        source = join_repo_path(record.chart_path, relative)
                        data = accessor.read_file(source)
                        info = tarfile.TarInfo(name=f"{chart_name}/{relative}")
                        info.size = len(data)
                        info.mtime = mtime
                        info.mode = EXECUTABLE_MODE if accessor.is_executable(source) else FILE_MODE
                        info.uid = info.gid = 0
                        info.uname = info.gname = ""
                        tar.addfile(info, io.BytesIO(data))
        except (OSError, tarfile.TarError) as exc:
            raise ArchiveBuildError(f"unable to package {record.chart_path}: {exc}") from exc
        return buffer.getvalue()
