"""Cross-cutting primitives: errors, ids, clock, enums, configuration."""
