# src/executable/__init__.py - v1
"""Weaver executable acquisition and lifecycle."""
