# src/config/__init__.py - v1
"""Settings and project configuration."""
