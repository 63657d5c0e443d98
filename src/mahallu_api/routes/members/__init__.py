"""Members routes."""
