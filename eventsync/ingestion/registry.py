"""
Adapter registry.

Sources register their adapter class under a SourceName; the orchestrator is
assembled from the enabled sections of ingestion.yaml.
"""

import logging
from dataclasses import fields
from typing import Any

from eventsync.configs.config import Config
from eventsync.ingestion.adapters.base_adapter import BaseSourceAdapter
from eventsync.schemas.event import SourceName

logger = logging.getLogger(__name__)

# Adapter registry - maps source names to adapter classes
ADAPTER_REGISTRY: dict[SourceName, type[BaseSourceAdapter]] = {}


def register_adapter(source_name: SourceName):
    """
    Decorator to register a source adapter class.

    Usage:
        @register_adapter(SourceName.TIMEOUT)
        class TimeOutAdapter(StaticHtmlAdapter):
            ...
    """

    def decorator(adapter_cls: type[BaseSourceAdapter]) -> type[BaseSourceAdapter]:
        ADAPTER_REGISTRY[SourceName(source_name)] = adapter_cls
        return adapter_cls

    return decorator


def _load_sources() -> None:
    # Importing the package runs the @register_adapter decorators
    import eventsync.ingestion.sources  # noqa: F401


def list_registered_sources() -> list[str]:
    """Names of every registered source, in registration order."""
    _load_sources()
    return [name.value for name in ADAPTER_REGISTRY]


def build_adapter(source_name: str | SourceName, options: dict[str, Any] | None = None) -> BaseSourceAdapter:
    """
    Create an adapter from a YAML source section.

    Keys matching the adapter's config dataclass are passed through; anything
    else lands in custom_config.

    Args:
        source_name: Registered source name
        options: Source section from ingestion.yaml

    Returns:
        Configured adapter instance

    Raises:
        ValueError: If no adapter is registered under source_name
    """
    _load_sources()
    try:
        name = SourceName(source_name)
        adapter_cls = ADAPTER_REGISTRY[name]
    except (ValueError, KeyError):
        raise ValueError(f"No adapter registered for source '{source_name}'") from None

    config_cls = adapter_cls.config_class
    known = {f.name for f in fields(config_cls)} - {"source_name", "source_type", "custom_config"}

    kwargs: dict[str, Any] = {}
    custom: dict[str, Any] = {}
    for key, value in (options or {}).items():
        if key == "enabled":
            continue
        if key in known:
            kwargs[key] = value
        else:
            custom[key] = value

    # source_type is overwritten by the config's __post_init__
    config = config_cls(
        source_name=name,
        source_type=None,  # type: ignore[arg-type]
        custom_config=custom,
        **kwargs,
    )
    return adapter_cls(config)


def build_adapters_from_config(config: Config | None = None) -> list[BaseSourceAdapter]:
    """
    Build one adapter per enabled source section, in file order.

    Unknown sources are logged and skipped.
    """
    config = config or Config()
    adapters = []
    for name, options in config.get_source_configs(enabled_only=True).items():
        try:
            adapters.append(build_adapter(name, options))
        except ValueError as e:
            logger.error(f"Skipping source '{name}': {e}")
    return adapters
