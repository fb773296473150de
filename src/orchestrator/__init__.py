# src/orchestrator/__init__.py - v1
"""Operation state machine."""
