"""Configuration and caching."""
