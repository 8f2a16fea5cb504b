"""
Fleet Module

This module contains the Fleet (Kibana ingest-manager) API client, its typed
responses and the step handlers of the Fleet-mode scenarios.
"""

from .api import FleetClient
from .steps import FleetContext

__all__ = [
    "FleetClient",
    "FleetContext",
]
