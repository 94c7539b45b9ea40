"""
Eventbrite Sydney source.

The discovery page is rendered client-side, so this source uses the
Playwright-backed DynamicRenderAdapter.
"""

import re

from eventsync.ingestion.adapters.base_adapter import AnchorFallback, ExtractionStrategy
from eventsync.ingestion.adapters.dynamic_adapter import DynamicRenderAdapter
from eventsync.ingestion.registry import register_adapter
from eventsync.schemas.event import SourceName

EVENTBRITE_URL = "https://www.eventbrite.com.au/d/australia--sydney/events/"

_TITLE = 'h2, h3, [data-testid="event-card-title"], .eds-event-card__formatted-name--is-clamped'
_DATE = '[data-testid="event-card-date"], .eds-event-card-content__sub-title, time'
_VENUE = '[data-testid="event-card-venue"], .card-text--truncated__one'
_LINK = 'a[href*="eventbrite"]'


def _strategy(name: str, card: str) -> ExtractionStrategy:
    return ExtractionStrategy(
        name=name,
        card=card,
        title=_TITLE,
        link=_LINK,
        date=_DATE,
        venue=_VENUE,
        image="img",
    )


@register_adapter(SourceName.EVENTBRITE)
class EventbriteAdapter(DynamicRenderAdapter):
    """Eventbrite discovery listing for Sydney."""

    default_url = EVENTBRITE_URL
    ready_selector = '[data-testid="event-card"]'

    strategies = (
        _strategy("testid_card", '[data-testid="event-card"]'),
        _strategy("discover_card", ".discover-search-desktop-card"),
        _strategy("eds_card", ".eds-event-card"),
    )
    anchor_fallback = AnchorFallback(selector='a[href*="/e/"]')

    # ".../e/jazz-night-tickets-123456789?aff=..." -> "123456789"
    id_patterns = (
        re.compile(r"-(\d+)(?:[/?#]|$)"),
        re.compile(r"(\d+)(?:\?|$)"),
    )
    id_prefix = "eb"
    default_tags = ("eventbrite",)
