"""HTTP API for the generation queue."""
