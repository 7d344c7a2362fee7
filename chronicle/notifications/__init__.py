"""User notifications for terminal job transitions."""
