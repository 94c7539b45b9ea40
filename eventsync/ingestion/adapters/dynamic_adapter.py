"""
Dynamic-Render Source Adapter.

Adapter for sources that build their listing with JavaScript. The page is
loaded in headless Chromium through async Playwright, allowed to settle
(network idle plus an optional readiness selector) and the extraction
strategies are evaluated in-page against the live DOM.
"""

from dataclasses import asdict, dataclass
from typing import Any

from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from .base_adapter import (
    ANCHOR_FALLBACK,
    AdapterConfig,
    BaseSourceAdapter,
    SourceType,
)

# Evaluated in the page. Receives {strategies, fallback, fallbackName} and
# returns {strategy, cards, failures, items}.
EXTRACT_SCRIPT = """
({ strategies, fallback, fallbackName }) => {
  const text = (root, sel) => {
    if (!sel) return '';
    const el = root.querySelector(sel);
    return el ? (el.textContent || '').trim() : '';
  };

  for (const s of strategies) {
    const cards = document.querySelectorAll(s.card);
    if (cards.length === 0) continue;

    const items = [];
    let failures = 0;
    cards.forEach((card) => {
      try {
        const link = card.querySelector(s.link);
        const img = s.image ? card.querySelector(s.image) : null;
        items.push({
          title: text(card, s.title),
          url: link ? link.href : '',
          date_text: text(card, s.date),
          venue_name: text(card, s.venue),
          description: text(card, s.description),
          category: text(card, s.category),
          image: img ? (img.getAttribute('src') || img.getAttribute('data-src') || '') : '',
        });
      } catch (e) {
        failures += 1;
      }
    });
    return { strategy: s.name, cards: cards.length, failures, items };
  }

  if (!fallback) return { strategy: null, cards: 0, failures: 0, items: [] };

  const items = [];
  document.querySelectorAll(fallback.selector).forEach((a) => {
    const title = (a.textContent || '').trim();
    if (a.href && title.length >= fallback.min_title_length && title.length < fallback.max_title_length) {
      items.push({ title, url: a.href });
    }
  });
  return { strategy: fallbackName, cards: items.length, failures: 0, items };
}
"""


@dataclass
class DynamicAdapterConfig(AdapterConfig):
    """Configuration for browser-rendered adapters."""

    ready_timeout_s: float = 10.0
    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 800

    def __post_init__(self):
        """Set source type to DYNAMIC."""
        self.source_type = SourceType.DYNAMIC


class DynamicRenderAdapter(BaseSourceAdapter):
    """
    Adapter for JavaScript-rendered listing pages.

    A browser is launched per fetch and always closed afterwards; runs are
    hours apart, so nothing is kept warm between them.
    """

    config_class = DynamicAdapterConfig

    # Selector signalling that the listing has rendered; optional
    ready_selector: str | None = None

    @property
    def dynamic_config(self) -> DynamicAdapterConfig:
        """Get typed config."""
        return self.config  # type: ignore[return-value]

    def _validate_config(self) -> None:
        super()._validate_config()
        if self.dynamic_config.ready_timeout_s < 0:
            raise ValueError("ready_timeout_s must not be negative")

    def _script_args(self) -> dict[str, Any]:
        return {
            "strategies": [asdict(s) for s in self.strategies],
            "fallback": asdict(self.anchor_fallback) if self.anchor_fallback else None,
            "fallbackName": ANCHOR_FALLBACK,
        }

    async def _extract_raw(self, metadata: dict[str, Any]) -> list[dict[str, Any]]:
        cfg = self.dynamic_config

        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(
                headless=cfg.headless,
                args=["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"],
            )
            try:
                context = await browser.new_context(
                    user_agent=cfg.user_agent,
                    viewport={"width": cfg.viewport_width, "height": cfg.viewport_height},
                )
                page = await context.new_page()
                page.set_default_timeout(cfg.request_timeout_s * 1000)

                response = await page.goto(
                    cfg.url, wait_until="networkidle", timeout=cfg.request_timeout_s * 1000
                )
                if response is not None:
                    metadata["status_code"] = response.status
                    if response.status >= 400:
                        raise RuntimeError(f"HTTP {response.status} for {cfg.url}")

                await self._wait_until_ready(page)

                result = await page.evaluate(EXTRACT_SCRIPT, self._script_args())
            finally:
                await browser.close()

        metadata["strategy"] = result.get("strategy")
        metadata["cards_matched"] = result.get("cards", 0)
        metadata["parse_failures"] = metadata.get("parse_failures", 0) + result.get("failures", 0)

        if metadata["strategy"] == ANCHOR_FALLBACK:
            self.logger.info("No cards found with any selector, used generic link extraction")
        elif metadata["strategy"]:
            self.logger.info(f"Found {metadata['cards_matched']} cards with strategy: {metadata['strategy']}")
        else:
            self.logger.warning("No cards found with any selector")

        return list(result.get("items") or [])

    async def _wait_until_ready(self, page) -> None:
        """Wait for the readiness marker; carry on without it on timeout."""
        if not self.ready_selector:
            return
        try:
            await page.wait_for_selector(
                self.ready_selector, timeout=self.dynamic_config.ready_timeout_s * 1000
            )
        except PlaywrightTimeoutError:
            self.logger.info(
                f"Readiness selector {self.ready_selector!r} not found, extracting anyway"
            )
