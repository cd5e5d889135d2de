"""
Observability module for the progression engine.

Provides metrics collection with Prometheus.
"""

__all__ = ["metrics"]
