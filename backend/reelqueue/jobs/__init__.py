"""Background jobs and CLI entry points."""
