"""Event bus and event type constants."""
