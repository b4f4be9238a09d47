"""Habitat node core: JSON-patched state, a replicating state machine, configuration and admin routes."""

__version__ = "0.1.0"