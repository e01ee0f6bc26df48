"""Infrastructure adapters (cache backends)."""
