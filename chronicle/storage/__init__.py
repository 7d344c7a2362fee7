"""Job and book persistence."""
