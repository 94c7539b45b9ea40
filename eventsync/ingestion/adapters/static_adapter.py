"""
Static HTML Source Adapter.

Adapter for sources whose listing page is server-rendered: a single GET with
httpx, parsed with BeautifulSoup (lxml), no script execution.
"""

from dataclasses import dataclass
from typing import Any

import httpx
from bs4 import BeautifulSoup, Tag

from .base_adapter import (
    ANCHOR_FALLBACK,
    AdapterConfig,
    BaseSourceAdapter,
    ExtractionStrategy,
    SourceType,
    clean_text,
)


@dataclass
class StaticAdapterConfig(AdapterConfig):
    """Configuration for static HTML adapters."""

    accept_language: str = "en-US,en;q=0.5"

    def __post_init__(self):
        """Set source type to STATIC."""
        self.source_type = SourceType.STATIC


class StaticHtmlAdapter(BaseSourceAdapter):
    """
    Adapter for static HTML listing pages.

    Non-2xx responses raise inside _extract_raw and are turned into a soft
    failure by BaseSourceAdapter.fetch().
    """

    config_class = StaticAdapterConfig

    def __init__(self, config: StaticAdapterConfig, client: httpx.AsyncClient | None = None):
        """
        Initialize the static adapter.

        Args:
            config: StaticAdapterConfig with source settings
            client: Optional pre-built client (tests inject a MockTransport)
        """
        self._client = client
        self._owns_client = client is None
        super().__init__(config)

    @property
    def static_config(self) -> StaticAdapterConfig:
        """Get typed config."""
        return self.config  # type: ignore[return-value]

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None:
            self._owns_client = True
            headers = {
                "User-Agent": self.config.user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
                "Accept-Language": self.static_config.accept_language,
            }
            self._client = httpx.AsyncClient(
                headers=headers,
                timeout=self.config.request_timeout_s,
                follow_redirects=True,
            )
        return self._client

    async def fetch_html(self) -> str:
        """
        GET the listing page.

        Raises:
            httpx.HTTPError: On network errors, timeouts and non-2xx responses
        """
        client = self._get_client()
        response = await client.get(self.config.url)
        response.raise_for_status()
        return response.text

    async def _extract_raw(self, metadata: dict[str, Any]) -> list[dict[str, Any]]:
        html = await self.fetch_html()
        metadata["html_length"] = len(html)
        soup = BeautifulSoup(html, "lxml")
        return self.extract_items(soup, metadata)

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def extract_items(self, soup: BeautifulSoup, metadata: dict[str, Any]) -> list[dict[str, Any]]:
        """Apply strategies in order; fall back to the anchor heuristic."""
        for strategy in self.strategies:
            cards = soup.select(strategy.card)
            if not cards:
                continue

            self.logger.info(f"Found {len(cards)} cards with selector: {strategy.card}")
            metadata["strategy"] = strategy.name
            metadata["cards_matched"] = len(cards)

            items = []
            for card in cards:
                try:
                    item = self._extract_card(card, strategy)
                except Exception as e:
                    metadata["parse_failures"] = metadata.get("parse_failures", 0) + 1
                    self.logger.warning(f"Error parsing card: {e}")
                    continue
                if item:
                    items.append(item)
            return items

        if self.anchor_fallback is None:
            self.logger.warning("No cards found with any selector")
            return []

        self.logger.info("No cards found with any selector, trying generic link extraction")
        metadata["strategy"] = ANCHOR_FALLBACK
        items = []
        for anchor in soup.select(self.anchor_fallback.selector):
            title = clean_text(anchor.get_text(" ", strip=True))
            href = anchor.get("href")
            if self.anchor_fallback.accepts(title, href):
                items.append({"title": title, "url": href})
        metadata["cards_matched"] = len(items)
        return items

    def _extract_card(self, card: Tag, strategy: ExtractionStrategy) -> dict[str, Any] | None:
        title = _select_text(card, strategy.title)
        if not title:
            return None

        link = card.select_one(strategy.link)
        image = card.select_one(strategy.image) if strategy.image else None

        return {
            "title": title,
            "url": link.get("href") if link else None,
            "date_text": _select_text(card, strategy.date),
            "venue_name": _select_text(card, strategy.venue),
            "description": _select_text(card, strategy.description),
            "category": _select_text(card, strategy.category),
            "image": (image.get("src") or image.get("data-src")) if image else None,
        }

    async def close(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def _select_text(root: Tag, selector: str | None) -> str:
    if not selector:
        return ""
    el = root.select_one(selector)
    return clean_text(el.get_text(" ", strip=True)) if el else ""
