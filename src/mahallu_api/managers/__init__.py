"""Business logic managers for Mahallu API."""
