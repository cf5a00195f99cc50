"""Flask integration helpers."""
