"""Logging configuration and tags."""
