"""Users routes."""
