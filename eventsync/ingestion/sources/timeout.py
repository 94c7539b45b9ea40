"""
TimeOut Sydney source.

Server-rendered editorial listing; fetched with a single GET. Listing cards
rarely show a date, so most candidates carry an estimated date_time.
"""

import re

from eventsync.ingestion.adapters.base_adapter import AnchorFallback, ExtractionStrategy
from eventsync.ingestion.adapters.static_adapter import StaticHtmlAdapter
from eventsync.ingestion.registry import register_adapter
from eventsync.schemas.event import SourceName

TIMEOUT_URL = "https://www.timeout.com/sydney/things-to-do/things-to-do-in-sydney-this-week"
TIMEOUT_SECTION_URL = "https://www.timeout.com/sydney/things-to-do"


def _strategy(name: str, card: str) -> ExtractionStrategy:
    return ExtractionStrategy(
        name=name,
        card=card,
        title='h2, h3, [class*="title"], [class*="heading"]',
        link='a[href*="timeout.com"], a[href^="/sydney/"]',
        date="time",
        image="img",
        description='p, [class*="description"], [class*="summary"]',
        category='[class*="category"], [class*="tag"]',
    )


@register_adapter(SourceName.TIMEOUT)
class TimeOutAdapter(StaticHtmlAdapter):
    """TimeOut Sydney "things to do this week" listing."""

    default_url = TIMEOUT_URL

    strategies = (
        _strategy("article_card", 'article[class*="card"]'),
        _strategy("tile", '[class*="tile_tile"]'),
        _strategy("feature_item", ".feature-item"),
        _strategy("testid_tile", '[data-testid*="tile"]'),
        _strategy("article_content", ".articleContent"),
    )
    anchor_fallback = AnchorFallback(selector='a[href*="/sydney/"]')

    # Last path segment: ".../sydney/things-to-do/vivid-sydney" -> "vivid-sydney"
    id_patterns = (re.compile(r"/([^/?#]+)/?(?:[?#].*)?$"),)
    id_prefix = "to"
    default_category = "Things to Do"
    default_tags = ("things-to-do",)
    fallback_item_url = TIMEOUT_SECTION_URL
