"""
Chart.yaml discovery and parsing.
"""
from __future__ import annotations

import logging

import yaml
from pydantic import ValidationError

from app.domain.chart_utils import join_repo_path
from app.domain.errors import MetadataParseError, NotAPackage
from app.domain.models import ChartMetadata
from app.storage.repository_accessor import RepositoryAccessor

logger = logging.getLogger(__name__)

CHART_METADATA_FILE = "Chart.yaml"

# Keys whose scalar text is kept verbatim ("1.10" must not become 1.1).
LITERAL_KEYS = ("name", "version", "apiVersion", "appVersion")


def parse_chart_metadata(raw: bytes, path: str = CHART_METADATA_FILE) -> ChartMetadata:
    """
    Parse the bytes of a Chart.yaml file.

    Raises MetadataParseError when the payload is not YAML, not a mapping,
    or lacks a non-empty name or version.
    """
    try:
        text = raw.decode("utf-8")
        document = yaml.safe_load(text)
        literal = yaml.load(text, Loader=yaml.BaseLoader)
    except UnicodeDecodeError as exc:
        raise MetadataParseError(path, f"not UTF-8: {exc}") from exc
    except yaml.YAMLError as exc:
        raise MetadataParseError(path, f"invalid YAML: {exc}") from exc

    if not isinstance(document, dict):
        raise MetadataParseError(path, f"expected a mapping, got {type(document).__name__}")

    if isinstance(literal, dict):
        for key in LITERAL_KEYS:
            if isinstance(literal.get(key), str) and document.get(key) is not None:
                document[key] = literal[key]

    try:
        return ChartMetadata.model_validate(document)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in exc.errors()
        )
        raise MetadataParseError(path, problems) from exc


def extract_chart_metadata(accessor: RepositoryAccessor, chart_path: str) -> ChartMetadata:
    """
    Read the chart metadata of a candidate directory in the current working view.

    Raises NotAPackage when ``chart_path`` is not a directory or has no
    Chart.yaml directly beneath it.
    """
    if not accessor.is_dir(chart_path):
        raise NotAPackage(chart_path)

    metadata_path = join_repo_path(chart_path, CHART_METADATA_FILE)
    if not accessor.exists(metadata_path) or accessor.is_dir(metadata_path):
        raise NotAPackage(chart_path)

    metadata = parse_chart_metadata(accessor.read_file(metadata_path), metadata_path)
    logger.debug(f"Found chart {metadata.name} {metadata.version} in {chart_path}")
    return metadata
