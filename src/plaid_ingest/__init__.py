"""Plaid transaction ingest into a flat transactions sheet."""

__version__ = "0.1.0"
