"""Kaban HTTP API."""
