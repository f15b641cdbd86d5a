"""Shared helpers: configuration, logging and unit conversion."""
