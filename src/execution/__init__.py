# src/execution/__init__.py - v1
"""Subprocess execution of weaver commands."""
