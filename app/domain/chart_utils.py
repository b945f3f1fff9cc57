from posixpath import normpath
from typing import Any

import yaml


def strip_nulls(value: Any) -> Any:
    """
    Recursively remove keys with value None from dictionaries.

    Lists are preserved, but their elements are also cleaned.
    """
    if isinstance(value, dict):
        return {k: strip_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [strip_nulls(v) for v in value]
    return value


def download_path(name: str, version: str) -> str:
    """
    Repository-relative download location of a chart version.
    """
    return f"/{name}/{version}"


def join_repo_path(*parts: str) -> str:
    """
    Join repository paths POSIX-style, normalizing "." and redundant slashes.
    """
    cleaned = [p.strip("/") for p in parts if p and p.strip("/")]
    if not cleaned:
        return "."
    return normpath("/".join(cleaned))


def dump_yaml(document: Any) -> str:
    """
    Serialize a document the way index.yaml is published: block style, key order kept.
    """
    return yaml.safe_dump(
        strip_nulls(document),
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )
