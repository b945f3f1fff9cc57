import asyncio
import logging

from fastapi import Depends, FastAPI

from app.api.charts import router as charts_router
from app.core.dependencies import get_provider, get_settings
from app.services.provider import ChartProvider

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


app = FastAPI(
    title="chart-streams",
    version="0.1.0",
    description="Helm chart repository serving every chart version found in a Git repository's history.",
)


@app.on_event("startup")
async def startup_event() -> None:
    """
    Walk the repository history and build the chart index before serving.

    A failed build aborts startup: the service never serves a partial index.
    """
    configure_logging(get_settings().log_level)
    provider = get_provider()
    if not provider.is_ready:
        await asyncio.to_thread(provider.initialize)


@app.get("/health")
async def health(provider: ChartProvider = Depends(get_provider)) -> dict:
    """
    Lightweight health check endpoint.
    """
    return {"status": "ok", **provider.status()}


app.include_router(charts_router, tags=["charts"])


if __name__ == "__main__":
    """
    Allow running `python -m app.main` to start the Uvicorn server.
    """
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
    )
