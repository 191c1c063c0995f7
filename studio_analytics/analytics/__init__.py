"""Pure aggregation and projection engine over normalized records."""
