# src/storage/__init__.py - v1
"""On-disk layout and atomic writes."""
