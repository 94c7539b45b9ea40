"""
Event ingestion: source adapters, reconciliation against the store and the
scheduled run loop.
"""
