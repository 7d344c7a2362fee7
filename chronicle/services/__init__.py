"""Service layer used by the HTTP routes."""
