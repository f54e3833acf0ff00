"""FleetShift: fleet-wide software lifecycle operations over SSH."""

__version__ = "0.1.0"
