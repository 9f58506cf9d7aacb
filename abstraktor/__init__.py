"""Abstraktor - annotation-driven instrumentation for distributed-system fuzzing."""

__version__ = "1.0.0"
