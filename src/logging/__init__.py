# src/logging/__init__.py - v1
"""Logging setup, formatters and context."""
