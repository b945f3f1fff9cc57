"""
Pydantic models for the Git-backed chart repository.

This module defines the data models used throughout the application:
- Service settings (read from ``CHART_STREAMS_*`` environment variables)
- Chart identity and the commit that introduced it
- Parsed Chart.yaml metadata
- Public catalog entries and the rendered Helm ``index.yaml`` document
- Materialized chart archives

All models use Pydantic for validation and serialization.
"""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.domain.chart_utils import strip_nulls

ENV_PREFIX = "CHART_STREAMS_"

# Published in place of a real archive digest until a chart is materialized.
DIGEST_PLACEHOLDER = "deadbeef"

INDEX_API_VERSION = "v1"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class Settings(BaseModel):
    """
    Service configuration.

    Every field can be set through an environment variable named after the
    field, upper-cased and prefixed with ``CHART_STREAMS_`` (for example
    ``relative_dir`` becomes ``CHART_STREAMS_RELATIVE_DIR``).
    """

    repo_url: str = Field(
        min_length=1,
        description="Git repository to serve charts from (remote URL or local path).",
    )
    clone_path: Optional[Path] = Field(
        default=None,
        description="Directory holding the working view. A temporary directory is used when unset.",
    )
    relative_dir: str = Field(
        default="stable",
        description="Directory inside the repository whose children are chart directories.",
    )
    chart_url_prefix: str = Field(
        default="/chart",
        description="Prefix prepended to each chart download path in index.yaml.",
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound for a single chart materialization, lock wait included.",
    )
    git_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Upper bound for clone/fetch/log calls made while indexing.",
    )
    strict_metadata: bool = Field(
        default=True,
        description="Abort indexing on a malformed Chart.yaml instead of skipping it with a warning.",
    )
    log_level: str = Field(
        default="info",
        description="Log verbosity (debug, info, warning, error).",
    )
    listen_addr: str = Field(
        default="0.0.0.0:8080",
        description="Address the HTTP server binds to when run directly.",
    )

    @field_validator("chart_url_prefix")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("listen_addr")
    @classmethod
    def _check_listen_addr(cls, value: str) -> str:
        host, sep, port = value.rpartition(":")
        if not sep or not port.isdigit():
            raise ValueError(f"listen address must be host:port, got {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().lower()
        if level == "warn":
            level = "warning"
        if level not in {"debug", "info", "warning", "error", "critical"}:
            raise ValueError(f"unknown log level: {value}")
        return level

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        raw: Dict[str, Any] = {}
        for name in cls.model_fields:
            value = env.get(ENV_PREFIX + name.upper())
            if value is not None and value != "":
                raw[name] = value
        return cls(**raw)

    @property
    def host(self) -> str:
        return self.listen_addr.rsplit(":", 1)[0] or "0.0.0.0"

    @property
    def port(self) -> int:
        return int(self.listen_addr.rsplit(":", 1)[1])


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class PackageKey(BaseModel):
    """Composite identity of a chart version. At most one index entry per key."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str

    def sort_key(self) -> Tuple[bytes, bytes]:
        # Byte-wise ordering, not semantic-version aware.
        return (self.name.encode("utf-8"), self.version.encode("utf-8"))

    def __str__(self) -> str:
        return f"{self.name}-{self.version}"


class CommitRef(BaseModel):
    """A commit hash together with its committer timestamp (UTC)."""

    model_config = ConfigDict(frozen=True)

    hash: str
    timestamp: datetime

    @property
    def short_hash(self) -> str:
        return self.hash[:10]


# ---------------------------------------------------------------------------
# Chart metadata
# ---------------------------------------------------------------------------


class ChartMetadata(BaseModel):
    """
    The subset of Chart.yaml the repository cares about.

    Unknown keys are kept (``extra="allow"``) but not interpreted.
    """

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    version: str = Field(min_length=1)
    api_version: Optional[str] = Field(default=None, alias="apiVersion")
    app_version: Optional[str] = Field(default=None, alias="appVersion")
    description: Optional[str] = None
    home: Optional[str] = None
    icon: Optional[str] = None
    keywords: Optional[List[Any]] = None
    sources: Optional[List[Any]] = None
    maintainers: Optional[List[Any]] = None
    deprecated: Optional[bool] = None

    @field_validator("name", "version", "api_version", "app_version", "description", mode="before")
    @classmethod
    def _scalar_to_str(cls, value: Any) -> Any:
        # Numbers only arrive here when built from Python values, not from Chart.yaml text.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value

    @property
    def key(self) -> PackageKey:
        return PackageKey(name=self.name, version=self.version)

    def index_fields(self) -> Dict[str, Any]:
        """Chart.yaml fields as they appear in an index.yaml entry."""
        return strip_nulls(
            {
                "apiVersion": self.api_version,
                "appVersion": self.app_version,
                "description": self.description,
                "home": self.home,
                "icon": self.icon,
                "keywords": self.keywords,
                "sources": self.sources,
                "maintainers": self.maintainers,
                "deprecated": self.deprecated,
            }
        )


# ---------------------------------------------------------------------------
# Index records and catalog
# ---------------------------------------------------------------------------


class IndexRecord(BaseModel):
    """Where and when a chart version was first committed."""

    model_config = ConfigDict(frozen=True)

    commit: CommitRef
    chart_path: str = Field(description="Chart directory relative to the repository root.")
    metadata: ChartMetadata


class CatalogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    download_path: str
    digest: str = DIGEST_PLACEHOLDER
    created: datetime
    metadata: ChartMetadata

    def to_index_entry(self, url_prefix: str) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"name": self.name, "version": self.version}
        entry.update(self.metadata.index_fields())
        entry["created"] = self.created.isoformat()
        entry["digest"] = self.digest
        entry["urls"] = [f"{url_prefix}{self.download_path}"]
        return entry


class Catalog(BaseModel):
    """Public, sorted list of every known chart version. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    entries: Tuple[CatalogEntry, ...] = ()
    generated: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self.entries)

    def to_index_file(self, url_prefix: str = "") -> Dict[str, Any]:
        """Render a Helm repository index.yaml document."""
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for entry in self.entries:
            grouped.setdefault(entry.name, []).append(entry.to_index_entry(url_prefix))
        return {
            "apiVersion": INDEX_API_VERSION,
            "entries": grouped,
            "generated": self.generated.isoformat() if self.generated else None,
        }


# ---------------------------------------------------------------------------
# Materialized charts
# ---------------------------------------------------------------------------


class ChartPackage(BaseModel):
    """A packaged chart archive produced for a single request."""

    model_config = ConfigDict(frozen=True)

    key: PackageKey
    commit: CommitRef
    metadata: ChartMetadata
    archive: bytes = Field(repr=False)
    digest: str = Field(description="SHA-256 hex digest of the archive bytes.")

    @property
    def filename(self) -> str:
        return f"{self.key.name}-{self.key.version}.tgz"
