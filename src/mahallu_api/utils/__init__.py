"""Utility modules for Mahallu API."""
