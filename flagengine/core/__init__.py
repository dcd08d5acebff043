"""Core engine: flag model, evaluation, registry and ambient services."""
