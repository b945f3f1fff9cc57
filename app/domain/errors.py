"""
Exception taxonomy for the chart repository.

Build-time errors (``RepositoryError``, ``MetadataParseError``) abort index
building entirely. Request-time errors are returned to the caller as-is; the
API layer is the only place they are mapped onto HTTP status codes.
"""

from __future__ import annotations


class ChartStreamsError(Exception):
    """Base class for all errors raised by the chart repository core."""


class RepositoryError(ChartStreamsError):
    """Invalid commit, failed checkout, or failed read from the working view."""


class DeadlineExceeded(RepositoryError):
    """An operation on the working view did not finish within its timeout."""


class NotAPackage(ChartStreamsError):
    """The candidate path is not a directory or has no Chart.yaml."""

    def __init__(self, path: str):
        super().__init__(f"{path} is not a chart directory")
        self.path = path


class MetadataParseError(ChartStreamsError):
    """Chart.yaml exists but cannot be parsed into a name and version."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"invalid chart metadata in {path}: {reason}")
        self.path = path
        self.reason = reason


class VersionNotFound(ChartStreamsError):
    def __init__(self, name: str, version: str):
        super().__init__(f"chart {name} version {version} not found")
        self.name = name
        self.version = version


class ArchiveBuildError(ChartStreamsError):
    """I/O failure while packaging a chart directory."""


class ProviderNotReady(ChartStreamsError):
    """The index has not been built successfully yet."""
