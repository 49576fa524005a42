"""Shared models, errors and utilities."""
