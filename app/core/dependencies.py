from typing import Optional

from app.domain.models import Settings
from app.services.provider import ChartProvider, GitChartProvider

_settings: Optional[Settings] = None
_provider: Optional[ChartProvider] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def get_provider() -> ChartProvider:
    global _provider
    if _provider is None:
        _provider = GitChartProvider(get_settings())
    return _provider


def set_provider(provider: Optional[ChartProvider]) -> None:
    """Install a provider instance (used by tests and embedding applications)."""
    global _provider
    _provider = provider
