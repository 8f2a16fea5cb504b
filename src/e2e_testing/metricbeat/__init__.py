"""
Metricbeat Module

Step handlers for scenarios running Metricbeat against service modules.
"""

from .steps import MetricbeatContext

__all__ = [
    "MetricbeatContext",
]
