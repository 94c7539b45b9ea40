"""
eventsync - Sydney event listing aggregator.

Scrapes a small set of event sources, reconciles every listing against the
stored catalogue (new / updated / unchanged), keeps a liveness signal per
event and serves the result to the curation dashboard.
"""

__version__ = "0.1.0"
