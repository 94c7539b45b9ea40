"""Ingestion source configuration loader."""

from pathlib import Path

import yaml

from eventsync.configs.settings import Settings, get_settings


class Config:
    """Loads ingestion.yaml with ${VAR} placeholders filled from settings."""

    CONFIG_DIR = Path(__file__).parent.resolve()

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @property
    def ingestion_config_path(self) -> Path:
        return Path(self.settings.INGESTION_CONFIG_PATH)

    def load_ingestion_config(self) -> dict:
        """Load the YAML configuration for ingestion sources."""
        path = self.ingestion_config_path
        if not path.exists():
            raise FileNotFoundError(f"Missing config at {path}")

        with open(path, encoding="utf-8") as f:
            content = f.read()

        # Substitute environment variables from settings
        for key, value in self.settings.model_dump().items():
            placeholder = f"${{{key}}}"
            if placeholder in content:
                content = content.replace(placeholder, "" if value is None else str(value))

        return yaml.safe_load(content) or {}

    def get_source_configs(self, *, enabled_only: bool = True) -> dict[str, dict]:
        """Return the per-source sections of the ingestion config."""
        sources = self.load_ingestion_config().get("sources", {}) or {}
        if not enabled_only:
            return dict(sources)
        return {name: cfg or {} for name, cfg in sources.items() if (cfg or {}).get("enabled", True)}
