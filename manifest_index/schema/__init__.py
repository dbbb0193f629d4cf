"""Schema layer: version bookkeeping, the metadata area, and per-version backends."""
