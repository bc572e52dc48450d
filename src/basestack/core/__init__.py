"""Cross-cutting primitives: errors and structured logging."""
