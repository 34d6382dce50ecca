"""
Fleet Registry Package
"""

from .fleet_registry import FleetRegistry, NearbyAmbulance

__all__ = ["FleetRegistry", "NearbyAmbulance"]
