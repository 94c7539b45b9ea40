"""
Base Source Adapter.

Abstract base class defining the interface for all source adapters.
Implements the Strategy pattern for different retrieval mechanisms
(JavaScript-rendered pages vs. static HTML).

Every adapter shares the same extraction discipline:
- an ordered tuple of ExtractionStrategy, most specific first; the first one
  whose card selector matches anything wins
- an anchor heuristic when no strategy matches (markup redesigns)
- external ids derived from the item URL, or a stable content hash
"""

import asyncio
import hashlib
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from urllib.parse import urljoin

from pydantic import ValidationError

from eventsync.ingestion.normalization import parse_datetime
from eventsync.schemas.event import EventCandidate, SourceName

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

ANCHOR_FALLBACK = "anchor_fallback"


class SourceType(str, Enum):
    """Retrieval mechanism of a source."""

    DYNAMIC = "dynamic"
    STATIC = "static"


# =============================================================================
# EXTRACTION STRATEGIES
# =============================================================================


@dataclass(frozen=True)
class ExtractionStrategy:
    """
    One hand-tuned set of CSS selectors for a listing page.

    `card` selects the repeated event element; the other selectors are
    evaluated inside each card. Field keys match what the dynamic adapter's
    in-page script expects.
    """

    name: str
    card: str
    title: str
    link: str
    date: str | None = None
    venue: str | None = None
    image: str | None = None
    description: str | None = None
    category: str | None = None


@dataclass(frozen=True)
class AnchorFallback:
    """Generic extraction used when no strategy matches any card."""

    selector: str
    min_title_length: int = 10
    max_title_length: int = 200

    def accepts(self, title: str, href: str | None) -> bool:
        return bool(href) and self.min_title_length <= len(title) < self.max_title_length


# =============================================================================
# RESULT & CONFIG
# =============================================================================


@dataclass
class FetchResult:
    """
    Result of one adapter fetch.

    `success` is False when nothing usable came back; the reason is in `errors`.
    """

    success: bool
    source_name: SourceName
    source_type: SourceType
    candidates: list[EventCandidate] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    fetch_started_at: datetime | None = None
    fetch_ended_at: datetime | None = None

    @property
    def total_fetched(self) -> int:
        return len(self.candidates)

    @property
    def duration_seconds(self) -> float:
        """Calculate fetch duration."""
        if self.fetch_started_at and self.fetch_ended_at:
            return (self.fetch_ended_at - self.fetch_started_at).total_seconds()
        return 0.0


@dataclass
class AdapterConfig:
    """
    Base configuration for source adapters.

    Extended by specific adapter kinds (dynamic, static).
    """

    source_name: SourceName
    source_type: SourceType
    url: str = ""
    request_timeout_s: float = 30.0
    fetch_timeout_s: float = 45.0
    city: str = "Sydney"
    timezone: str = "Australia/Sydney"
    user_agent: str = DEFAULT_USER_AGENT
    max_description_length: int = 500
    custom_config: dict[str, Any] = field(default_factory=dict)


def clean_text(value: Any) -> str:
    """Collapse whitespace; None becomes empty text."""
    if value is None:
        return ""
    return " ".join(str(value).split())


def synthetic_event_id(prefix: str, *parts: str) -> str:
    """Stable id for items whose URL carries no usable identifier."""
    digest = hashlib.sha1("|".join(p.strip().lower() for p in parts).encode("utf-8"))
    return f"{prefix}-{digest.hexdigest()[:16]}"


# =============================================================================
# BASE ADAPTER
# =============================================================================


class BaseSourceAdapter(ABC):
    """
    Abstract base class for source adapters.

    Adapters encapsulate the logic for retrieving and extracting listings from
    one external source. They never raise from fetch(): every retrieval or
    parsing failure is logged, recorded on the FetchResult and turned into an
    empty (or partial) candidate list.

    Subclasses must implement:
        - _extract_raw(): Retrieve the page and return raw item dicts

    Source classes configure:
        - strategies / anchor_fallback: extraction selectors
        - id_patterns: regexes whose first group is the external id
        - id_prefix, default_category, default_tags, fallback_item_url
    """

    config_class: type[AdapterConfig] = AdapterConfig
    default_url: str = ""

    strategies: tuple[ExtractionStrategy, ...] = ()
    anchor_fallback: AnchorFallback | None = None
    id_patterns: tuple[re.Pattern, ...] = ()
    id_prefix: str = "evt"
    default_category: str | None = None
    default_tags: tuple[str, ...] = ()
    fallback_item_url: str | None = None

    def __init__(self, config: AdapterConfig):
        """
        Initialize the adapter.

        Args:
            config: AdapterConfig with source-specific settings
        """
        self.config = config
        if not self.config.url:
            self.config.url = self.default_url
        self.logger = logging.getLogger(f"eventsync.adapter.{self.source_name.value}")
        self._validate_config()

    @property
    def source_type(self) -> SourceType:
        """Get the source type."""
        return self.config.source_type

    @property
    def source_name(self) -> SourceName:
        """Get the source identifier."""
        return SourceName(self.config.source_name)

    def _validate_config(self) -> None:
        """
        Validate adapter configuration.

        Raises:
            ValueError: If configuration is invalid
        """
        if not self.config.url:
            raise ValueError(f"Adapter '{self.source_name.value}' requires url")
        if self.config.fetch_timeout_s <= 0 or self.config.request_timeout_s <= 0:
            raise ValueError("Adapter timeouts must be positive")

    @abstractmethod
    async def _extract_raw(self, metadata: dict[str, Any]) -> list[dict[str, Any]]:
        """
        Retrieve the listing page and extract raw item dicts.

        Items use the keys title, url, date_text, venue_name, venue_address,
        image, description, category. Missing keys are fine.

        Args:
            metadata: Dict to record strategy used, cards matched, etc.

        Returns:
            Raw items in page order
        """

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    async def fetch(self) -> FetchResult:
        """
        Fetch and normalize this source's current listings.

        The whole call is bounded by config.fetch_timeout_s.

        Returns:
            FetchResult with validated, per-fetch deduplicated candidates
        """
        fetch_started = datetime.now(UTC)
        candidates: list[EventCandidate] = []
        errors: list[str] = []
        metadata: dict[str, Any] = {
            "strategy": None,
            "cards_matched": 0,
            "parse_failures": 0,
            "discarded": 0,
            "duplicates": 0,
        }

        self.logger.info(f"Fetching {self.config.url}")
        try:
            raw_items = await asyncio.wait_for(
                self._extract_raw(metadata), timeout=self.config.fetch_timeout_s
            )
            candidates = self.build_candidates(raw_items, metadata, now=fetch_started)
            if not candidates:
                errors.append("No events extracted")
        except TimeoutError:
            msg = f"Fetch timed out after {self.config.fetch_timeout_s}s"
            self.logger.error(msg)
            errors.append(msg)
        except Exception as e:
            self.logger.error(f"Fetch failed: {e}", exc_info=True)
            errors.append(str(e) or type(e).__name__)

        self.logger.info(
            f"Found {len(candidates)} events "
            f"(strategy={metadata['strategy']}, parse_failures={metadata['parse_failures']})"
        )

        return FetchResult(
            success=bool(candidates),
            source_name=self.source_name,
            source_type=self.source_type,
            candidates=candidates,
            errors=errors,
            metadata=metadata,
            fetch_started_at=fetch_started,
            fetch_ended_at=datetime.now(UTC),
        )

    async def fetch_candidates(self) -> list[EventCandidate]:
        """Fetch listings; returns an empty list on any failure."""
        result = await self.fetch()
        return result.candidates

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def build_candidates(
        self,
        raw_items: list[dict[str, Any]],
        metadata: dict[str, Any],
        *,
        now: datetime | None = None,
    ) -> list[EventCandidate]:
        """Validate raw items and drop duplicates by external id (first wins)."""
        now = now or datetime.now(UTC)
        candidates = []
        seen: set[str] = set()

        for index, raw in enumerate(raw_items):
            try:
                candidate = self.to_candidate(raw, now=now)
            except ValidationError as e:
                metadata["discarded"] = metadata.get("discarded", 0) + 1
                self.logger.debug(f"Discarding item {index}: {e.error_count()} validation errors")
                continue
            except Exception as e:
                metadata["parse_failures"] = metadata.get("parse_failures", 0) + 1
                self.logger.warning(f"Error parsing item {index}: {e}")
                continue

            if candidate.source_event_id in seen:
                metadata["duplicates"] = metadata.get("duplicates", 0) + 1
                continue
            seen.add(candidate.source_event_id)
            candidates.append(candidate)

        return candidates

    def to_candidate(self, raw: dict[str, Any], *, now: datetime | None = None) -> EventCandidate:
        """
        Convert one raw item into an EventCandidate.

        Raises:
            ValidationError: If title or URL is missing
        """
        now = now or datetime.now(UTC)
        title = clean_text(raw.get("title"))
        venue_name = clean_text(raw.get("venue_name"))
        item_url = self.absolute_url(raw.get("url"))

        date_time = parse_datetime(raw.get("date_text"), default_tz=self.config.timezone, now=now)
        estimated = date_time is None

        description = clean_text(raw.get("description"))
        if len(description) > self.config.max_description_length:
            description = description[: self.config.max_description_length]

        category = clean_text(raw.get("category")) or self.default_category
        tags = [category, *self.default_tags] if category else list(self.default_tags)

        return EventCandidate(
            title=title,
            date_time=now if estimated else date_time,
            date_time_estimated=estimated,
            venue_name=venue_name,
            venue_address=clean_text(raw.get("venue_address")),
            city=self.config.city,
            description=description,
            category_tags=tags,
            image_url=self.absolute_url(raw.get("image")),
            source_name=self.source_name,
            source_event_id=self.derive_external_id(item_url, title, venue_name),
            original_url=item_url or self.fallback_item_url or "",
        )

    def absolute_url(self, href: Any) -> str:
        """Resolve a possibly relative link against the listing URL."""
        href = clean_text(href)
        if not href or href.startswith(("data:", "javascript:")):
            return ""
        return urljoin(self.config.url, href)

    def derive_external_id(self, url: str, title: str, venue_name: str = "") -> str:
        """
        Derive the source-scoped id of an item.

        Prefers an id embedded in the URL; otherwise hashes the item content so
        the same listing gets the same id on every run.
        """
        if url:
            for pattern in self.id_patterns:
                match = pattern.search(url)
                if match:
                    return match.group(1)
        return synthetic_event_id(self.id_prefix, self.source_name.value, title, venue_name, url)

    async def close(self) -> None:
        """
        Release any resources held by the adapter.

        Override in subclasses that hold resources (e.g., HTTP clients).
        """

    async def __aenter__(self) -> "BaseSourceAdapter":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
