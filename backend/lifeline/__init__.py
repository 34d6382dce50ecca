"""
Lifeline Emergency Dispatch Coordination
Backend Application Package

Coordinates emergency cases between ambulance crews, hospitals and
police: case lifecycle, fleet registry, hospital matching and live
ambulance tracking.
"""

__version__ = "1.0.0"
