"""
Source adapters.

Two retrieval kinds share one extraction discipline:
- DynamicRenderAdapter: headless Chromium through Playwright
- StaticHtmlAdapter: httpx GET parsed with BeautifulSoup
"""

from .base_adapter import (
    ANCHOR_FALLBACK,
    AdapterConfig,
    AnchorFallback,
    BaseSourceAdapter,
    ExtractionStrategy,
    FetchResult,
    SourceType,
    clean_text,
    synthetic_event_id,
)
from .dynamic_adapter import DynamicAdapterConfig, DynamicRenderAdapter
from .static_adapter import StaticAdapterConfig, StaticHtmlAdapter

__all__ = [
    "ANCHOR_FALLBACK",
    "AdapterConfig",
    "AnchorFallback",
    "BaseSourceAdapter",
    "DynamicAdapterConfig",
    "DynamicRenderAdapter",
    "ExtractionStrategy",
    "FetchResult",
    "SourceType",
    "StaticAdapterConfig",
    "StaticHtmlAdapter",
    "clean_text",
    "synthetic_event_id",
]
