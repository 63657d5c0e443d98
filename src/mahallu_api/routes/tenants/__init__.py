"""Tenants routes."""
