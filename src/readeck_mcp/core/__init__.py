"""Configuration and per-request context."""
