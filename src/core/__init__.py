# src/core/__init__.py - v1
"""Errors and cancellation."""
