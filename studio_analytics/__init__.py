"""Studio retention and revenue analytics service."""

__version__ = "0.1.0"
