"""Families routes."""
