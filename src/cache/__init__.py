# src/cache/__init__.py - v1
"""Fingerprints and result cache stores."""
