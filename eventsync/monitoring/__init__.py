"""Logging setup shared by the CLI, the scheduler and the API."""
