"""PartKeeper: monthly partition creation and retention for PostgreSQL tables."""

__version__ = "0.1.0"
