"""HTTP API for PartKeeper."""
