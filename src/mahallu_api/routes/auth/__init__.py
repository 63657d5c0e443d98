"""Authentication dependencies for Mahallu API."""
