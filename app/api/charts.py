from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.core.dependencies import get_provider, get_settings
from app.domain.chart_utils import dump_yaml
from app.domain.errors import (
    ArchiveBuildError,
    DeadlineExceeded,
    ProviderNotReady,
    RepositoryError,
    VersionNotFound,
)
from app.domain.models import Settings
from app.services.provider import ChartProvider

logger = logging.getLogger(__name__)
router = APIRouter()

YAML_MEDIA_TYPE = "application/x-yaml"
CHART_MEDIA_TYPE = "application/gzip"

# ---------------------------------------------------------------------------
# 1. GET /index.yaml
# ---------------------------------------------------------------------------

@router.get("/index.yaml")
async def get_index_file(
    provider: ChartProvider = Depends(get_provider),
    settings: Settings = Depends(get_settings),
) -> Response:
    """
    Helm repository index listing every chart version found in history.
    """
    try:
        catalog = provider.get_index_file()
    except ProviderNotReady as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return Response(
        content=dump_yaml(catalog.to_index_file(settings.chart_url_prefix)),
        media_type=YAML_MEDIA_TYPE,
    )


# ---------------------------------------------------------------------------
# 2. GET /chart/{name}/{version}
# ---------------------------------------------------------------------------

@router.get("/chart/{name}/{version}")
async def download_chart(
    name: str,
    version: str,
    provider: ChartProvider = Depends(get_provider),
) -> Response:
    """
    Package the requested chart version from its pinned commit and return
    the tarball.
    """
    try:
        # Checkouts block on the working view lock; keep them off the event loop.
        package = await asyncio.to_thread(provider.get_chart, name, version)
    except VersionNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ProviderNotReady as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except DeadlineExceeded as e:
        logger.warning(f"Materializing {name} {version} timed out: {e}")
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(e))
    except (RepositoryError, ArchiveBuildError) as e:
        logger.error(f"Materializing {name} {version} failed: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return Response(
        content=package.archive,
        media_type=CHART_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{package.filename}"',
            "X-Chart-Digest": package.digest,
            "X-Chart-Commit": package.commit.hash,
        },
    )
