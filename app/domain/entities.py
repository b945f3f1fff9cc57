from __future__ import annotations

from datetime import datetime
from types import MappingProxyType
from typing import Iterator, Mapping, Optional

from app.domain.chart_utils import download_path
from app.domain.errors import VersionNotFound
from app.domain.models import Catalog, CatalogEntry, IndexRecord, PackageKey


class VersionIndex:
    """
    Read-only mapping of chart versions to the commit that introduced them,
    plus the sorted public catalog derived from it.
    """

    def __init__(self, records: Mapping[PackageKey, IndexRecord], commits_walked: int = 0):
        self._records: Mapping[PackageKey, IndexRecord] = MappingProxyType(dict(records))
        self.commits_walked = commits_walked
        self.catalog = self._build_catalog()

    def _build_catalog(self) -> Catalog:
        keys = sorted(self._records, key=PackageKey.sort_key)
        entries = []
        newest: Optional[datetime] = None
        for key in keys:
            record = self._records[key]
            entries.append(
                CatalogEntry(
                    name=key.name,
                    version=key.version,
                    download_path=download_path(key.name, key.version),
                    created=record.commit.timestamp,
                    metadata=record.metadata,
                )
            )
            if newest is None or record.commit.timestamp > newest:
                newest = record.commit.timestamp
        return Catalog(entries=tuple(entries), generated=newest)

    @property
    def records(self) -> Mapping[PackageKey, IndexRecord]:
        return self._records

    def lookup(self, name: str, version: str) -> IndexRecord:
        record = self._records.get(PackageKey(name=name, version=version))
        if record is None:
            raise VersionNotFound(name, version)
        return record

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __iter__(self) -> Iterator[PackageKey]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionIndex):
            return NotImplemented
        return dict(self._records) == dict(other._records)

    __hash__ = None
