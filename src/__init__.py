# src/__init__.py - v1
"""weaverkit: fingerprint-gated cache and executable manager for weaver."""
