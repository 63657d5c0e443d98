"""Member user self-service routes."""
