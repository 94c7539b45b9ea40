"""Settings (environment) and ingestion source configuration (YAML)."""
